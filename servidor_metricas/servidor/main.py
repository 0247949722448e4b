# -*- coding: utf-8 -*-
"""
Servidor HTTP de ejemplo: saluda en cualquier ruta y expone /metrics.
Cada petición se cronometra en un histograma por método, ruta y código.
Arranque: uvicorn servidor.main:app
"""

import logging, os, threading
from typing import Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from Libs.errores import DescriptorInvalido, MetricaError
from Libs.exportador import CONTENT_TYPE, exportar_texto
from Libs.metricas import Registro
from Libs.proceso import registrar_metricas_proceso

# --- Configuración desde variables de entorno ---
NOMBRE = os.getenv("NOMBRE", "servidor")
SALUDO = os.getenv("SALUDO", "Hello from Kubernetes!")
BUCKETS = os.getenv("BUCKETS", "0.1,0.3,0.5,0.7,1,3,5,7,10")
METRICAS_PROCESO = os.getenv("METRICAS_PROCESO", "1") != "0"
# rutas distintas con serie propia; el resto se agrupa en "otros" (0 = sin límite)
RUTAS_MAXIMAS = int(os.getenv("RUTAS_MAXIMAS", "1000"))
NIVEL_LOG = os.getenv("NIVEL_LOG", "INFO").upper()

logging.basicConfig(level=NIVEL_LOG, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
log = logging.getLogger(__name__)

ETIQUETAS = ("method", "route", "code")
METODOS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]
RUTA_DESBORDE = "otros"


def leer_buckets(texto: str):
    try:
        return tuple(float(b) for b in texto.split(",") if b.strip())
    except ValueError as e:
        raise DescriptorInvalido(f"BUCKETS inválido: {texto!r}") from e


def crear_app(
    registro: Optional[Registro] = None,
    buckets: Optional[Sequence[float]] = None,
    metricas_proceso: bool = METRICAS_PROCESO,
    saludo: str = SALUDO,
    rutas_maximas: int = RUTAS_MAXIMAS,
) -> FastAPI:
    registro = registro if registro is not None else Registro()
    # un descriptor inválido aborta el arranque
    duracion = registro.histograma(
        "http_request_duration_seconds",
        "Duración de las peticiones HTTP, en segundos",
        ETIQUETAS,
        buckets if buckets is not None else leer_buckets(BUCKETS),
    )
    peticiones = registro.contador("http_requests_total", "Peticiones HTTP atendidas", ETIQUETAS)
    if metricas_proceso:
        registrar_metricas_proceso(registro)

    rutas_vistas = set()
    lock_rutas = threading.Lock()

    def etiqueta_ruta(ruta: str) -> str:
        # cada ruta nueva crea series permanentes: se acota su número
        if rutas_maximas <= 0:
            return ruta
        with lock_rutas:
            if ruta in rutas_vistas:
                return ruta
            if len(rutas_vistas) < rutas_maximas:
                rutas_vistas.add(ruta)
                return ruta
        return RUTA_DESBORDE

    app = FastAPI(title=f"Servidor {NOMBRE} - métricas")
    app.state.registro = registro

    @app.on_event("startup")
    def inicio():
        log.info("[%s] Servidor listo; métricas en /metrics", NOMBRE)

    @app.middleware("http")
    async def cronometrar(request: Request, call_next):
        temporizador = duracion.iniciar_temporizador()
        codigo = 500
        try:
            respuesta = await call_next(request)
            codigo = respuesta.status_code
            return respuesta
        finally:
            etiquetas = {"method": request.method, "route": etiqueta_ruta(request.url.path), "code": codigo}
            try:
                temporizador.detener(etiquetas)
                peticiones.inc(etiquetas)
            except MetricaError as e:
                log.warning("[%s] Observación rechazada: %s", NOMBRE, e)

    @app.get("/metrics")
    def metrics():
        try:
            cuerpo = exportar_texto(registro)
        except Exception:
            log.exception("[%s] Falló la exportación de métricas", NOMBRE)
            return Response(content="", status_code=500, media_type=CONTENT_TYPE)
        return Response(content=cuerpo, media_type=CONTENT_TYPE)

    @app.api_route("/{ruta:path}", methods=METODOS)
    def saludar(ruta: str):
        return PlainTextResponse(saludo)

    return app


# --- Instancia global para uvicorn ---
app = crear_app()
