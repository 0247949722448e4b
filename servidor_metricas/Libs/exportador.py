# -*- coding: utf-8 -*-
"""
Exposición en texto (formato 0.0.4 de Prometheus) y lector de muestras.
"""
import math
from typing import Dict, List, Sequence, Tuple

from Libs.metricas import HISTOGRAMA, Registro

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


def formatear_numero(v: float) -> str:
    if math.isnan(v):
        return "NaN"
    if math.isinf(v):
        return "+Inf" if v > 0 else "-Inf"
    if v == int(v) and abs(v) < 1e15:
        return str(int(v))
    return repr(float(v))


def _escapar_ayuda(texto: str) -> str:
    return texto.replace("\\", "\\\\").replace("\n", "\\n")


def _escapar_valor(texto: str) -> str:
    return texto.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _etiquetas(pares: Sequence[Tuple[str, str]]) -> str:
    if not pares:
        return ""
    return "{" + ",".join(f'{k}="{_escapar_valor(v)}"' for k, v in pares) + "}"


def exportar_texto(registro: Registro) -> str:
    """Refresca los recolectores y serializa un snapshot del registro.

    Métricas en orden de registro; series en orden de primera observación.
    Cada histograma emite sus buckets ascendentes, +Inf, _sum y _count.
    """
    registro.recolectar()
    muestras = registro.snapshot()
    por_nombre: Dict[str, list] = {}
    for m in muestras:
        por_nombre.setdefault(m.descriptor.nombre, []).append(m)

    lineas: List[str] = []
    # después del snapshot: incluye cualquier métrica que éste haya visto
    for d in registro.descriptores():
        lineas.append(f"# HELP {d.nombre} {_escapar_ayuda(d.ayuda)}")
        lineas.append(f"# TYPE {d.nombre} {d.tipo}")
        for m in por_nombre.get(d.nombre, ()):
            pares = list(zip(d.etiquetas, m.etiquetas))
            if d.tipo == HISTOGRAMA:
                e = m.estado
                for limite, acumulado in zip(e.limites, e.acumulados):
                    le = _etiquetas(pares + [("le", formatear_numero(limite))])
                    lineas.append(f"{d.nombre}_bucket{le} {acumulado}")
                lineas.append(f"{d.nombre}_sum{_etiquetas(pares)} {formatear_numero(e.suma)}")
                lineas.append(f"{d.nombre}_count{_etiquetas(pares)} {e.cuenta}")
            else:
                lineas.append(f"{d.nombre}{_etiquetas(pares)} {formatear_numero(m.estado.valor)}")
    return "\n".join(lineas) + "\n" if lineas else ""


def _leer_etiquetas(linea: str, i: int) -> Tuple[Dict[str, str], int]:
    etiquetas: Dict[str, str] = {}
    i += 1  # '{'
    while linea[i] != "}":
        j = linea.index("=", i)
        nombre = linea[i:j].strip()
        if linea[j + 1] != '"':
            raise ValueError(f"valor de etiqueta sin comillas: {linea!r}")
        i = j + 2
        valor = []
        while linea[i] != '"':
            c = linea[i]
            if c == "\\":
                i += 1
                c = "\n" if linea[i] == "n" else linea[i]
            valor.append(c)
            i += 1
        etiquetas[nombre] = "".join(valor)
        i += 1
        if linea[i] == ",":
            i += 1
    return etiquetas, i + 1


def leer_muestras(texto: str) -> List[Tuple[str, Dict[str, str], float]]:
    """Devuelve [(nombre, etiquetas, valor)] de las líneas de muestra, en orden."""
    muestras = []
    for linea in texto.splitlines():
        linea = linea.strip()
        if not linea or linea.startswith("#"):
            continue
        try:
            if "{" in linea:
                i = linea.index("{")
                nombre = linea[:i]
                etiquetas, fin = _leer_etiquetas(linea, i)
                resto = linea[fin:]
            else:
                nombre, _, resto = linea.partition(" ")
                etiquetas = {}
            valor = float(resto.split()[0])
        except (IndexError, ValueError) as e:
            raise ValueError(f"línea de muestra malformada: {linea!r}") from e
        muestras.append((nombre, etiquetas, valor))
    return muestras
