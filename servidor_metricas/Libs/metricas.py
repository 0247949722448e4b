# -*- coding: utf-8 -*-
"""
Registro de métricas en memoria, estilo Prometheus (texto).
Cada serie (descriptor + tupla de etiquetas) tiene su propio lock; el lock del
registro solo protege el alta de descriptores y de series nuevas.
"""
import logging, math, re, threading
from bisect import bisect_left
from typing import Any, Callable, Dict, List, Literal, Mapping, NamedTuple, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from Libs.errores import (
    CardinalidadEtiquetas,
    DescriptorInvalido,
    MetricaError,
    NombreDuplicado,
    ObservacionNegativa,
)
from Libs.temporizador import Temporizador

log = logging.getLogger(__name__)

CONTADOR = "counter"
GAUGE = "gauge"
HISTOGRAMA = "histogram"

BUCKETS_POR_DEFECTO = (0.1, 0.3, 0.5, 0.7, 1.0, 3.0, 5.0, 7.0, 10.0)
INF = float("inf")

_NOMBRE_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
_ETIQUETA_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


class Descriptor(BaseModel):
    """Identidad estática de una métrica. Inmutable una vez construido."""

    model_config = ConfigDict(frozen=True)

    nombre: str
    ayuda: str = ""
    tipo: Literal["counter", "gauge", "histogram"]
    etiquetas: Tuple[str, ...] = ()
    buckets: Tuple[float, ...] = ()

    @field_validator("nombre")
    @classmethod
    def _validar_nombre(cls, v: str) -> str:
        if not _NOMBRE_RE.match(v):
            raise ValueError(f"nombre de métrica inválido: {v!r}")
        return v

    @field_validator("etiquetas")
    @classmethod
    def _validar_etiquetas(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        for e in v:
            if not _ETIQUETA_RE.match(e) or e.startswith("__"):
                raise ValueError(f"nombre de etiqueta inválido: {e!r}")
        if len(set(v)) != len(v):
            raise ValueError(f"etiquetas repetidas: {list(v)}")
        return v

    @model_validator(mode="after")
    def _validar_buckets(self) -> "Descriptor":
        if self.tipo != HISTOGRAMA:
            if self.buckets:
                raise ValueError("solo los histogramas llevan buckets")
            return self
        if "le" in self.etiquetas:
            raise ValueError("'le' está reservada en histogramas")
        if not self.buckets:
            raise ValueError("un histograma necesita al menos un bucket")
        for b in self.buckets:
            if not math.isfinite(b) or b <= 0:
                raise ValueError(f"bucket no positivo o no finito: {b}")
        for a, b in zip(self.buckets, self.buckets[1:]):
            if b <= a:
                raise ValueError(f"buckets no estrictamente crecientes: {list(self.buckets)}")
        return self

    @classmethod
    def crear(cls, **campos: Any) -> "Descriptor":
        try:
            return cls(**campos)
        except ValidationError as e:
            raise DescriptorInvalido(str(e)) from e

    def misma_forma(self, otro: "Descriptor") -> bool:
        return (self.tipo, self.etiquetas, self.buckets) == (otro.tipo, otro.etiquetas, otro.buckets)


# --- Estados leídos en un snapshot (copias inmutables) ---
class EstadoValor(NamedTuple):
    valor: float


class EstadoHistograma(NamedTuple):
    limites: Tuple[float, ...]  # termina en +Inf
    acumulados: Tuple[int, ...]
    suma: float
    cuenta: int


class Muestra(NamedTuple):
    descriptor: Descriptor
    etiquetas: Tuple[str, ...]
    estado: Any


# --- Series ---
class SerieContador:
    __slots__ = ("_lock", "valor")

    def __init__(self):
        self._lock = threading.Lock()
        self.valor = 0.0

    def observar(self, valor: float):
        with self._lock:
            self.valor += valor

    def leer(self) -> EstadoValor:
        with self._lock:
            return EstadoValor(self.valor)


class SerieGauge(SerieContador):
    __slots__ = ()

    def observar(self, valor: float):
        with self._lock:
            self.valor = valor


class SerieHistograma:
    __slots__ = ("_lock", "limites", "acumulados", "suma", "cuenta")

    def __init__(self, buckets: Sequence[float]):
        self._lock = threading.Lock()
        self.limites = tuple(buckets) + (INF,)
        self.acumulados = [0] * len(self.limites)
        self.suma = 0.0
        self.cuenta = 0

    def observar(self, valor: float):
        # primer bucket con límite >= valor; NaN solo cuenta en +Inf
        i = len(self.limites) - 1 if math.isnan(valor) else bisect_left(self.limites, valor)
        with self._lock:
            for j in range(i, len(self.acumulados)):
                self.acumulados[j] += 1
            self.suma += valor
            self.cuenta += 1

    def leer(self) -> EstadoHistograma:
        with self._lock:
            return EstadoHistograma(self.limites, tuple(self.acumulados), self.suma, self.cuenta)


_SERIES = {CONTADOR: SerieContador, GAUGE: SerieGauge}


class Manejador:
    """Acceso directo a una métrica registrada, sin resolver por nombre."""

    def __init__(self, registro: "Registro", descriptor: Descriptor):
        self.registro = registro
        self.descriptor = descriptor
        self.series: Dict[Tuple[str, ...], Any] = {}

    def observe(self, etiquetas, valor: float):
        self.registro.observe(self, etiquetas, valor)

    def inc(self, etiquetas=(), valor: float = 1.0):
        self.registro.observe(self, etiquetas, valor)

    def iniciar_temporizador(self, reloj=None) -> Temporizador:
        return self.registro.iniciar_temporizador(self, reloj=reloj)

    def __repr__(self):
        return f"Manejador({self.descriptor.tipo} {self.descriptor.nombre})"


class Registro:
    def __init__(self):
        self._lock = threading.Lock()
        self._metricas: Dict[str, Manejador] = {}  # orden de registro
        self._recolectores: Dict[str, Callable[[], None]] = {}

    # --- Alta ---
    def registrar(self, descriptor: Descriptor) -> Manejador:
        with self._lock:
            existente = self._metricas.get(descriptor.nombre)
            if existente is not None:
                if not existente.descriptor.misma_forma(descriptor):
                    raise NombreDuplicado(descriptor.nombre)
                return existente
            manejador = Manejador(self, descriptor)
            self._metricas[descriptor.nombre] = manejador
        log.debug("[Registro] %s '%s' registrado", descriptor.tipo, descriptor.nombre)
        return manejador

    def contador(self, nombre: str, ayuda: str, etiquetas: Sequence[str] = ()) -> Manejador:
        return self.registrar(Descriptor.crear(nombre=nombre, ayuda=ayuda, tipo=CONTADOR, etiquetas=tuple(etiquetas)))

    def gauge(self, nombre: str, ayuda: str, etiquetas: Sequence[str] = ()) -> Manejador:
        return self.registrar(Descriptor.crear(nombre=nombre, ayuda=ayuda, tipo=GAUGE, etiquetas=tuple(etiquetas)))

    def histograma(
        self,
        nombre: str,
        ayuda: str,
        etiquetas: Sequence[str] = (),
        buckets: Sequence[float] = BUCKETS_POR_DEFECTO,
    ) -> Manejador:
        return self.registrar(
            Descriptor.crear(
                nombre=nombre, ayuda=ayuda, tipo=HISTOGRAMA, etiquetas=tuple(etiquetas), buckets=tuple(buckets)
            )
        )

    def registrar_recolector(self, nombre: str, fn: Callable[[], None]) -> Callable[[], None]:
        """fn refresca sus métricas en cada `recolectar`. Un nombre ya usado conserva el primero."""
        with self._lock:
            return self._recolectores.setdefault(nombre, fn)

    def obtener(self, nombre: str) -> Optional[Manejador]:
        return self._metricas.get(nombre)

    def descriptores(self) -> List[Descriptor]:
        with self._lock:
            return [m.descriptor for m in self._metricas.values()]

    # --- Observaciones ---
    def _normalizar(self, descriptor: Descriptor, etiquetas) -> Tuple[str, ...]:
        nombres = descriptor.etiquetas
        if etiquetas is None:
            etiquetas = ()
        if isinstance(etiquetas, (str, bytes)):
            raise CardinalidadEtiquetas(descriptor.nombre, nombres, [etiquetas])
        if isinstance(etiquetas, Mapping):
            if len(etiquetas) != len(nombres) or set(etiquetas) != set(nombres):
                raise CardinalidadEtiquetas(descriptor.nombre, nombres, etiquetas.keys())
            return tuple(str(etiquetas[n]) for n in nombres)
        valores = tuple(etiquetas)
        if len(valores) != len(nombres):
            raise CardinalidadEtiquetas(descriptor.nombre, nombres, valores)
        return tuple(str(v) for v in valores)

    def observe(self, manejador: Manejador, etiquetas, valor: float):
        d = manejador.descriptor
        if self._metricas.get(d.nombre) is not manejador:
            raise MetricaError(f"'{d.nombre}' no pertenece a este registro")
        clave = self._normalizar(d, etiquetas)
        valor = float(valor)
        if d.tipo == CONTADOR and not valor >= 0:
            raise ObservacionNegativa(d.nombre, valor)

        serie = manejador.series.get(clave)
        if serie is None:
            with self._lock:
                serie = manejador.series.get(clave)
                if serie is None:
                    if d.tipo == HISTOGRAMA:
                        serie = SerieHistograma(d.buckets)
                    else:
                        serie = _SERIES[d.tipo]()
                    manejador.series[clave] = serie
        serie.observar(valor)

    def iniciar_temporizador(self, manejador: Manejador, reloj=None) -> Temporizador:
        if manejador.descriptor.tipo != HISTOGRAMA:
            raise MetricaError(f"'{manejador.descriptor.nombre}' no es un histograma")
        return Temporizador(self, manejador, reloj=reloj)

    # --- Lectura ---
    def recolectar(self):
        """Ejecuta los recolectores; un fallo se registra y no corta al resto."""
        with self._lock:
            recolectores = list(self._recolectores.items())
        for nombre, fn in recolectores:
            try:
                fn()
            except Exception:
                log.exception("[Registro] Falló el recolector '%s'", nombre)

    def snapshot(self) -> List[Muestra]:
        """Lectura pura: no ejecuta recolectores."""
        with self._lock:
            pares = [(m.descriptor, list(m.series.items())) for m in self._metricas.values()]
        return [Muestra(d, clave, serie.leer()) for d, series in pares for clave, serie in series]
