# -*- coding: utf-8 -*-
"""
Errores del registro de métricas.
DescriptorInvalido y NombreDuplicado son fallos de programación (arranque);
el resto son rechazos puntuales de una sola observación.
"""


class MetricaError(Exception):
    """Base de todos los errores de métricas."""


class DescriptorInvalido(MetricaError):
    pass


class NombreDuplicado(MetricaError):
    def __init__(self, nombre: str):
        super().__init__(f"La métrica '{nombre}' ya existe con otra forma")
        self.nombre = nombre


class CardinalidadEtiquetas(MetricaError):
    def __init__(self, nombre: str, esperadas, recibidas):
        super().__init__(
            f"Etiquetas incorrectas para '{nombre}': esperadas {list(esperadas)}, recibidas {list(recibidas)}"
        )
        self.nombre = nombre


class ObservacionNegativa(MetricaError):
    def __init__(self, nombre: str, valor: float):
        super().__init__(f"El contador '{nombre}' no admite el valor {valor}")
        self.nombre = nombre
        self.valor = valor


class TemporizadorDetenido(MetricaError):
    pass
