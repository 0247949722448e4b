# -*- coding: utf-8 -*-
import psutil
import pytest
from unittest.mock import patch
from fastapi.testclient import TestClient
from Libs.errores import CardinalidadEtiquetas, DescriptorInvalido
from Libs.exportador import leer_muestras
from Libs.metricas import Registro
from servidor.main import crear_app, leer_buckets


@pytest.fixture
def registro():
    return Registro()


@pytest.fixture
def client(registro):
    return TestClient(crear_app(registro, buckets=[0.1, 0.5, 1], metricas_proceso=False))


def test_saludo_en_cualquier_ruta(client):
    for ruta in ("/", "/hola", "/a/b/c"):
        r = client.get(ruta)
        assert r.status_code == 200
        assert r.text == "Hello from Kubernetes!"
    assert client.post("/enviar").status_code == 200


def test_metrics_expone_histograma_por_metodo_ruta_y_codigo(client):
    client.get("/")
    client.get("/")
    client.post("/otra")

    r = client.get("/metrics")
    assert r.status_code == 200
    assert r.headers["content-type"] == "text/plain; version=0.0.4; charset=utf-8"

    muestras = leer_muestras(r.text)
    cuentas = {
        (e["method"], e["route"], e["code"]): v
        for n, e, v in muestras
        if n == "http_request_duration_seconds_count"
    }
    assert cuentas == {("GET", "/", "200"): 2, ("POST", "/otra", "200"): 1}
    totales = {(e["method"], e["route"]): v for n, e, v in muestras if n == "http_requests_total"}
    assert totales == {("GET", "/"): 2, ("POST", "/otra"): 1}


def test_la_propia_consulta_se_registra_despues(client):
    """La petición a /metrics se observa al terminar, no aparece en su propio cuerpo."""
    primero = client.get("/metrics").text
    assert "http_request_duration_seconds_count" not in primero
    segundo = client.get("/metrics").text
    assert 'route="/metrics",code="200"} 1' in segundo


def test_fallo_al_exportar_devuelve_500_vacio(client):
    with patch("servidor.main.exportar_texto", side_effect=RuntimeError("boom")):
        r = client.get("/metrics")
    assert r.status_code == 500
    assert r.text == ""


def test_observacion_rechazada_no_corta_la_respuesta(client, registro, caplog):
    duracion = registro.obtener("http_request_duration_seconds")
    with patch.object(registro, "observe", side_effect=CardinalidadEtiquetas("x", (), ("a",))):
        r = client.get("/")
    assert r.status_code == 200
    assert r.text == "Hello from Kubernetes!"
    assert duracion.series == {}
    assert "Observación rechazada" in caplog.text


def test_error_del_manejador_se_registra_con_codigo_500(registro):
    app = crear_app(registro, buckets=[0.1, 0.5, 1], metricas_proceso=False)

    def explota():
        raise RuntimeError("fallo")

    # delante de la ruta comodín
    app.add_api_route("/explota", explota, methods=["GET"])
    app.router.routes.insert(0, app.router.routes.pop())

    client = TestClient(app, raise_server_exceptions=False)
    assert client.get("/explota").status_code == 500

    muestras = leer_muestras(client.get("/metrics").text)
    codigos = {e["code"] for n, e, _ in muestras if n == "http_requests_total" and e["route"] == "/explota"}
    assert codigos == {"500"}


def test_leer_buckets():
    assert leer_buckets("0.1, 0.5,1") == (0.1, 0.5, 1.0)
    with pytest.raises(DescriptorInvalido):
        leer_buckets("0.1,rapido")


def test_buckets_invalidos_abortan_el_arranque():
    with pytest.raises(DescriptorInvalido):
        crear_app(Registro(), buckets=[1, 0.5], metricas_proceso=False)


def test_registro_compartido_es_idempotente(registro):
    """Dos apps sobre el mismo registro comparten las métricas HTTP."""
    crear_app(registro, buckets=[0.1, 0.5, 1], metricas_proceso=False)
    crear_app(registro, buckets=[0.1, 0.5, 1], metricas_proceso=False)
    nombres = [d.nombre for d in registro.descriptores()]
    assert nombres == ["http_request_duration_seconds", "http_requests_total"]


def test_dos_apps_con_metricas_de_proceso_no_duplican_la_cpu(registro):
    crear_app(registro, buckets=[0.1, 0.5, 1], metricas_proceso=True)
    client = TestClient(crear_app(registro, buckets=[0.1, 0.5, 1], metricas_proceso=True))
    texto = client.get("/metrics").text
    tiempos = psutil.Process().cpu_times()
    (cpu,) = [v for n, _, v in leer_muestras(texto) if n == "process_cpu_seconds_total"]
    assert cpu <= tiempos.user + tiempos.system + 0.01


def test_rutas_por_encima_del_maximo_se_agrupan(registro):
    client = TestClient(crear_app(registro, buckets=[0.1, 0.5, 1], metricas_proceso=False, rutas_maximas=2))
    for ruta in ("/a", "/b", "/c", "/d", "/a"):
        assert client.get(ruta).status_code == 200

    muestras = leer_muestras(client.get("/metrics").text)
    totales = {e["route"]: v for n, e, v in muestras if n == "http_requests_total"}
    assert totales == {"/a": 2, "/b": 1, "otros": 2}
