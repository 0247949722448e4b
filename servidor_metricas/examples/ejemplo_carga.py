# -*- coding: utf-8 -*-
"""
Ejemplo: genera tráfico contra el servidor y muestra el histograma resultante.
"""
import argparse, requests
import numpy as np


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--servidor", default="http://localhost:8000")
    ap.add_argument("--peticiones", type=int, default=50)
    args = ap.parse_args()

    rng = np.random.default_rng(0)
    rutas = ["/", "/hola", "/api/usuarios", "/no/existe"]
    metodos = ["GET", "GET", "GET", "POST"]
    for _ in range(args.peticiones):
        i = int(rng.integers(len(rutas)))
        requests.request(metodos[i], args.servidor + rutas[i], timeout=5)

    r = requests.get(args.servidor + "/metrics", timeout=5)
    r.raise_for_status()
    print(r.headers.get("content-type"))
    for linea in r.text.splitlines():
        if linea.startswith("http_request_duration_seconds"):
            print(linea)


if __name__ == "__main__":
    main()
