"""
Verrous stock (guard) par clé.

Un verrou par médicament (et par ordonnance) sérialise les sections
"vérifier puis écrire" du ledger dans le process. Les clés d'une même
opération sont toujours prises dans le même ordre (ordonnance d'abord, puis
médicaments par id croissant) : deux dispensations qui touchent des
médicaments communs ne peuvent pas s'interbloquer.

Sur PostgreSQL, les lignes sont en plus verrouillées par SELECT ... FOR UPDATE
à l'intérieur du guard (voir services.inventory.lock_medicines).
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Iterable, Iterator

from pharmacy.app.core.config import settings
from pharmacy.services.errors import ConcurrencyConflict

logger = logging.getLogger(__name__)

# (rang, id) : le rang fixe l'ordre entre familles de clés
PRESCRIPTION = 0
MEDICINE = 1

GuardKey = tuple[int, int]


def prescription_key(prescription_id: int) -> GuardKey:
    return (PRESCRIPTION, int(prescription_id))


def medicine_key(medicine_id: int) -> GuardKey:
    return (MEDICINE, int(medicine_id))


class StockGuard:
    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        # clé -> [verrou, nombre de détenteurs ou d'attentes]
        self._locks: dict[GuardKey, list] = {}

    def _checkout(self, key: GuardKey) -> threading.Lock:
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: GuardKey) -> None:
        # dernier utilisateur parti : l'entrée disparaît du registre
        with self._registry_lock:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, keys: Iterable[GuardKey], timeout: float | None = None) -> Iterator[None]:
        """
        Prend tous les verrous de `keys` (triés, dédoublonnés) ou aucun.

        `timeout` borne l'attente totale ; au-delà, les verrous déjà obtenus
        sont relâchés et ConcurrencyConflict est levée.
        """
        ordered = sorted(set(keys))
        budget = settings.STOCK_GUARD_TIMEOUT_SECONDS if timeout is None else timeout
        deadline = time.monotonic() + budget

        acquired: list[tuple[GuardKey, threading.Lock]] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                remaining = max(0.0, deadline - time.monotonic())
                if not lock.acquire(timeout=remaining):
                    self._checkin(key)
                    logger.warning("stock guard timeout on %s after %.2fs", key, budget)
                    raise ConcurrencyConflict(
                        "Stock is busy, retry later",
                        details={"resource": _describe(key), "timeout_seconds": budget},
                    )
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)


def _describe(key: GuardKey) -> str:
    rank, ident = key
    return f"{'prescription' if rank == PRESCRIPTION else 'medicine'}:{ident}"


# instance unique du process
stock_guard = StockGuard()
