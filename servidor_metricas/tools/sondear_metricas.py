# -*- coding: utf-8 -*-
"""
Script de conveniencia: consulta /metrics de un servidor y estima cuantiles
de un histograma a partir de sus buckets acumulados.
"""
import argparse, requests
import numpy as np
from typing import Dict, Optional

from Libs.exportador import leer_muestras


def obtener(url: str, timeout: float = 2.0) -> str:
    r = requests.get(url.rstrip("/") + "/metrics", timeout=timeout)
    r.raise_for_status()
    return r.text


def buckets_de(muestras, nombre: str, filtro: Optional[Dict[str, str]] = None):
    """Suma los buckets de todas las series de `nombre` que cumplan el filtro."""
    totales: Dict[float, float] = {}
    for n, etiquetas, valor in muestras:
        if n != nombre + "_bucket":
            continue
        if filtro and any(etiquetas.get(k) != v for k, v in filtro.items()):
            continue
        le = float(etiquetas["le"])
        totales[le] = totales.get(le, 0.0) + valor
    limites = np.array(sorted(totales), dtype=float)
    acumulados = np.array([totales[l] for l in limites], dtype=float)
    return limites, acumulados


def estimar_cuantil(q: float, limites: np.ndarray, acumulados: np.ndarray) -> float:
    """Interpolación lineal dentro del bucket, como histogram_quantile."""
    if not 0.0 <= q <= 1.0:
        raise ValueError(f"cuantil fuera de [0, 1]: {q}")
    if len(limites) == 0 or acumulados[-1] == 0:
        return float("nan")
    objetivo = q * acumulados[-1]
    i = int(np.searchsorted(acumulados, objetivo, side="left"))
    if np.isinf(limites[i]):
        # cae en +Inf: se devuelve el mayor límite finito
        return float(limites[i - 1]) if i > 0 else float("nan")
    inferior = 0.0 if i == 0 else limites[i - 1]
    previo = 0.0 if i == 0 else acumulados[i - 1]
    if acumulados[i] == previo:
        return float(limites[i])
    return float(np.interp(objetivo, [previo, acumulados[i]], [inferior, limites[i]]))


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--url", default="http://localhost:8000")
    ap.add_argument("--metrica", default="http_request_duration_seconds")
    ap.add_argument("--cuantiles", default="0.5,0.9,0.99")
    args = ap.parse_args()

    try:
        texto = obtener(args.url)
    except requests.RequestException as e:
        print(args.url, "->", "sin respuesta:", e)
        return 1

    limites, acumulados = buckets_de(leer_muestras(texto), args.metrica)
    if len(limites) == 0:
        print(f"{args.metrica}: sin observaciones")
        return 0
    print(f"{args.metrica}: {int(acumulados[-1])} observaciones")
    for le, n in zip(limites, acumulados):
        print(f"  le={le:<8g} {int(n)}")
    for q in (float(c) for c in args.cuantiles.split(",")):
        print(f"  p{q * 100:g} ~ {estimar_cuantil(q, limites, acumulados):.4f}s")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
