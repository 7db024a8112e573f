"""
Daemon that runs the periodic order and PORT maintenance routines.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from gestao.db import EntityStore
from gestao.dependencies import get_store
from gestao.pedidos import limpar_residuos, monitorar_pedidos_atrasados
from gestao.ports import atualizar_status_ports, reconciliar_ports

logger = logging.getLogger(__name__)

# Reconciliation runs before status advancement so freshly linked orders count.
ROTINAS = (
    ("limpar_residuos", limpar_residuos),
    ("monitorar_pedidos_atrasados", monitorar_pedidos_atrasados),
    ("reconciliar_ports", reconciliar_ports),
    ("atualizar_status_ports", atualizar_status_ports),
)


def run_once(store: EntityStore) -> dict:
    """Run every routine once; a failing routine does not stop the others."""
    resultados = {}
    for nome, rotina in ROTINAS:
        try:
            resultados[nome] = rotina(store)
            logger.info("%s: %s", nome, resultados[nome])
        except Exception as exc:
            logger.exception("%s failed: %s", nome, exc)
            resultados[nome] = {"success": False, "error": str(exc)}
    return resultados


def main() -> int:
    parser = argparse.ArgumentParser(description="Order and PORT maintenance daemon")
    parser.add_argument(
        "--interval-seconds",
        type=int,
        default=3600,
        help="Seconds between runs",
    )
    parser.add_argument(
        "--jitter-seconds",
        type=int,
        default=60,
        help="Max random jitter added to sleep",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run the routines a single time and exit",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    store = get_store()
    while True:
        run_once(store)

        if args.once:
            return 0

        sleep_for = args.interval_seconds + random.uniform(0, args.jitter_seconds)
        logger.info("Sleeping for %.1fs", sleep_for)
        time.sleep(sleep_for)


if __name__ == "__main__":
    raise SystemExit(main())
