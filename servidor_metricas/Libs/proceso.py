# -*- coding: utf-8 -*-
"""
Métricas de proceso por defecto (CPU, memoria, arranque, intérprete).
Un recolector las refresca en cada exportación; hay uno solo por registro.
"""
import platform, threading
import psutil

RECOLECTOR = "proceso"


def registrar_metricas_proceso(registro, proceso=None):
    proceso = proceso or psutil.Process()
    cpu = registro.contador("process_cpu_seconds_total", "Tiempo de CPU de usuario y sistema, en segundos")
    memoria = registro.gauge("process_resident_memory_bytes", "Memoria residente actual, en bytes")
    arranque = registro.gauge("process_start_time_seconds", "Inicio del proceso desde el epoch Unix, en segundos")
    info = registro.gauge("python_info", "Información del intérprete", ("implementation", "version"))

    info.observe((platform.python_implementation(), platform.python_version()), 1)
    arranque.observe((), proceso.create_time())

    lock = threading.Lock()

    def recolectar():
        tiempos = proceso.cpu_times()
        # el contador sigue al total absoluto: solo se suma lo que falta
        with lock:
            serie = cpu.series.get(())
            actual = serie.leer().valor if serie is not None else 0.0
            delta = tiempos.user + tiempos.system - actual
            if delta > 0:
                cpu.inc((), delta)
        memoria.observe((), proceso.memory_info().rss)

    recolector = registro.registrar_recolector(RECOLECTOR, recolectar)
    recolector()
    return recolector
