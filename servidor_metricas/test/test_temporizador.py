# -*- coding: utf-8 -*-
import pytest
from Libs.errores import CardinalidadEtiquetas, MetricaError, TemporizadorDetenido
from Libs.metricas import Registro

ETIQUETAS = {"method": "GET", "route": "/", "code": "200"}


class RelojFalso:
    def __init__(self, *lecturas):
        self.lecturas = list(lecturas)

    def __call__(self):
        return self.lecturas.pop(0)


@pytest.fixture
def histograma():
    reg = Registro()
    h = reg.histograma("http_request_duration_seconds", "Duración", ("method", "route", "code"), [0.1, 0.5, 1])
    return reg, h


def test_detener_aplica_el_tiempo_transcurrido(histograma):
    reg, h = histograma
    t = reg.iniciar_temporizador(h, reloj=RelojFalso(10.0, 10.3))
    transcurrido = t.detener(ETIQUETAS)
    assert transcurrido == pytest.approx(0.3)
    (muestra,) = reg.snapshot()
    assert muestra.estado.cuenta == 1
    assert muestra.estado.acumulados == (0, 1, 1, 1)


def test_detener_dos_veces_aplica_una_sola_observacion(histograma):
    reg, h = histograma
    t = h.iniciar_temporizador(reloj=RelojFalso(0.0, 0.2, 0.4))
    t.detener(ETIQUETAS)
    with pytest.raises(TemporizadorDetenido):
        t.detener(ETIQUETAS)
    assert reg.snapshot()[0].estado.cuenta == 1


def test_reloj_no_monotono_se_recorta_a_cero(histograma, caplog):
    reg, h = histograma
    t = reg.iniciar_temporizador(h, reloj=RelojFalso(5.0, 4.0))
    assert t.detener(ETIQUETAS) == 0.0
    estado = reg.snapshot()[0].estado
    assert estado.suma == 0.0
    assert estado.acumulados[0] == 1
    assert "no monótono" in caplog.text


def test_with_detiene_aunque_haya_excepcion(histograma):
    """El bloque falla, pero la observación se aplica igual."""
    reg, h = histograma
    with pytest.raises(RuntimeError):
        with h.iniciar_temporizador(reloj=RelojFalso(1.0, 3.0)) as t:
            t.etiquetas = {"method": "GET", "route": "/", "code": "500"}
            raise RuntimeError("fallo del manejador")
    (muestra,) = reg.snapshot()
    assert muestra.etiquetas == ("GET", "/", "500")
    assert muestra.estado.suma == 2.0
    assert t.detenido


def test_with_sin_etiquetas_no_tapa_la_excepcion_original(histograma):
    reg, h = histograma
    with pytest.raises(RuntimeError):
        with h.iniciar_temporizador():
            raise RuntimeError("original")
    assert reg.snapshot() == []


def test_with_sin_etiquetas_ni_excepcion_rechaza_la_observacion(histograma):
    reg, h = histograma
    with pytest.raises(CardinalidadEtiquetas):
        with h.iniciar_temporizador():
            pass
    assert reg.snapshot() == []


def test_solo_histogramas_admiten_temporizador():
    reg = Registro()
    c = reg.contador("x_total", "x")
    with pytest.raises(MetricaError):
        reg.iniciar_temporizador(c)
