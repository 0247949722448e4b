# -*- coding: utf-8 -*-
"""
Temporizador de una sola observación para histogramas.
Se detiene una única vez; usarlo con `with` garantiza que se detenga
en todos los caminos de salida, incluidos los de error.
"""
import logging, threading, time

from Libs.errores import MetricaError, TemporizadorDetenido

log = logging.getLogger(__name__)


class Temporizador:
    def __init__(self, registro, manejador, reloj=None):
        self.registro = registro
        self.manejador = manejador
        self.reloj = reloj or time.perf_counter
        self.inicio = self.reloj()
        self.etiquetas = None  # para el modo `with`
        self._lock = threading.Lock()
        self._detenido = False

    @property
    def detenido(self) -> bool:
        return self._detenido

    def detener(self, etiquetas=None) -> float:
        """Aplica la observación (segundos transcurridos) y la devuelve."""
        with self._lock:
            if self._detenido:
                log.warning("[Temporizador] '%s' ya estaba detenido; se ignora", self.manejador.descriptor.nombre)
                raise TemporizadorDetenido(self.manejador.descriptor.nombre)
            self._detenido = True
        transcurrido = self.reloj() - self.inicio
        if transcurrido < 0:
            log.warning("[Temporizador] Reloj no monótono (%.6fs); se usa 0", transcurrido)
            transcurrido = 0.0
        if etiquetas is None:
            etiquetas = self.etiquetas
        self.registro.observe(self.manejador, etiquetas, transcurrido)
        return transcurrido

    def __enter__(self):
        return self

    def __exit__(self, tipo, valor, tb):
        if self._detenido:
            return False
        try:
            self.detener()
        except MetricaError as e:
            if tipo is None:
                raise
            # no tapar la excepción original del bloque
            log.warning("[Temporizador] Observación descartada: %s", e)
        return False
