"""In-memory ledger of payment claims, keyed by transaction hash.

Single-process only: records are lost on restart. The blockchain stays the
source of truth, so a lost record is recovered by verifying the transaction
again.
"""

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable

logger = logging.getLogger(__name__)

MIN_PAID_PERCENT = 99


@dataclass
class PaymentRecord:
    """A payment claim submitted after the wallet broadcast a transaction."""

    tx_hash: str
    duration: int
    prompt: str
    size: str
    created_at: float
    expected_amount: int
    image: str | None = None
    confirmed: bool = False
    verified_amount: int | None = None


@dataclass(frozen=True)
class PaymentParams:
    """Job parameters the user paid for."""

    duration: int
    prompt: str
    size: str
    image: str | None = None


def meets_expected_amount(paid: int, expected: int) -> bool:
    """True if *paid* covers at least 99% of *expected* (0 means "any amount")."""
    if expected <= 0:
        return True
    return paid * 100 >= expected * MIN_PAID_PERCENT


class PaymentLedger:
    """Thread-safe map of ``tx_hash -> PaymentRecord``.

    Callers only ever see copies; all mutation goes through the methods below.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._records: dict[str, PaymentRecord] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, tx_hash: object) -> bool:
        with self._lock:
            return tx_hash in self._records

    def record(self, tx_hash: str, params: PaymentParams, expected_amount: int) -> PaymentRecord:
        """Insert (or overwrite) the claim for *tx_hash*."""
        entry = PaymentRecord(
            tx_hash=tx_hash,
            duration=params.duration,
            prompt=params.prompt,
            size=params.size,
            image=params.image,
            created_at=self._clock(),
            expected_amount=expected_amount,
        )
        with self._lock:
            self._records[tx_hash] = entry
        logger.info("Recorded payment claim %s (expected %d lovelace)", tx_hash, expected_amount)
        return replace(entry)

    def get(self, tx_hash: str) -> PaymentRecord | None:
        with self._lock:
            entry = self._records.get(tx_hash)
            return replace(entry) if entry is not None else None

    def mark_confirmed(self, tx_hash: str, verified_amount: int) -> bool:
        """Mark *tx_hash* as paid.

        Returns False if the claim is unknown. A claim that is already
        confirmed is left as it is. Raises ``ValueError`` if
        *verified_amount* is below 99% of the expected amount.
        """
        with self._lock:
            entry = self._records.get(tx_hash)
            if entry is None:
                return False
            if entry.confirmed:
                return True
            if not meets_expected_amount(verified_amount, entry.expected_amount):
                raise ValueError(
                    f"Verified amount {verified_amount} is below 99% of expected {entry.expected_amount}"
                )
            entry.confirmed = True
            entry.verified_amount = verified_amount
        logger.info("Payment %s confirmed (%d lovelace)", tx_hash, verified_amount)
        return True

    def evict_older_than(self, max_age_seconds: float) -> int:
        """Remove claims older than *max_age_seconds*, return how many."""
        cutoff = self._clock() - max_age_seconds
        with self._lock:
            expired = [k for k, v in self._records.items() if v.created_at < cutoff]
            for k in expired:
                del self._records[k]
        if expired:
            logger.info("Cleaned up %d expired payment claims", len(expired))
        return len(expired)
