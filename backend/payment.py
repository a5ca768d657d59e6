"""Payment workflow: check claims against the chain and gate generation.

Ties the in-memory ledger to the Blockfrost verifier. The ledger only
changes through ``PaymentLedger.mark_confirmed``, applied here after a
successful verification.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from blockfrost import PaymentVerifier, VerificationResult
from config import PAYMENT_POLL_ATTEMPTS, POLL_INTERVAL_SECONDS
from errors import VerificationFailure
from ledger import PaymentLedger
from polling import PollStatus, poll

logger = logging.getLogger(__name__)


class PaymentStatus(str, Enum):
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PaymentOutcome:
    """How waiting for a payment ended, with the last verification seen."""

    status: PaymentStatus
    result: VerificationResult | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.status is PaymentStatus.CONFIRMED


# ---------------------------------------------------------------------------
# Status check
# ---------------------------------------------------------------------------

async def check_payment(
    ledger: PaymentLedger, verifier: PaymentVerifier, tx_hash: str,
) -> VerificationResult:
    """Return the confirmation state of *tx_hash*.

    A cached confirmation is returned without touching the network.
    Transactions without a local claim are checked for existence and
    destination only.
    """
    record = ledger.get(tx_hash)
    if record is not None and record.confirmed:
        return VerificationResult.ok(record.verified_amount or 0)

    expected = record.expected_amount if record is not None else 0
    result = await verifier.verify(tx_hash, expected)

    if result.confirmed and record is not None:
        try:
            ledger.mark_confirmed(tx_hash, result.amount or 0)
        except ValueError as e:
            # claim was overwritten with a higher amount while we verified
            logger.warning("Payment %s not applied: %s", tx_hash, e)
            return VerificationResult.fail(VerificationFailure.INSUFFICIENT_AMOUNT, str(e), amount=result.amount)

    return result


async def wait_for_payment(
    ledger: PaymentLedger,
    verifier: PaymentVerifier,
    tx_hash: str,
    interval: float = POLL_INTERVAL_SECONDS,
    max_attempts: int = PAYMENT_POLL_ATTEMPTS,
    cancel: asyncio.Event | None = None,
    sleep=asyncio.sleep,
) -> PaymentOutcome:
    """Poll ``check_payment`` until confirmed, finally rejected, or out of attempts.

    Server-side helper for callers that wait on a payment in-process. The
    HTTP surface leaves waiting to the browser, which polls
    ``/api/check-payment`` and stops on ``final``.
    """
    outcome = await poll(
        lambda: check_payment(ledger, verifier, tx_hash),
        interval=interval,
        max_attempts=max_attempts,
        is_done=lambda r: r.confirmed or r.is_final,
        cancel=cancel,
        sleep=sleep,
        label=f"payment {tx_hash}",
    )
    result = outcome.value

    if outcome.status is PollStatus.CANCELLED:
        return PaymentOutcome(PaymentStatus.CANCELLED, result, outcome.attempts)
    if outcome.status is PollStatus.TIMEOUT:
        return PaymentOutcome(PaymentStatus.TIMEOUT, result, outcome.attempts)

    status = PaymentStatus.CONFIRMED if result.confirmed else PaymentStatus.REJECTED
    return PaymentOutcome(status, result, outcome.attempts)


# ---------------------------------------------------------------------------
# Generation precondition
# ---------------------------------------------------------------------------

async def require_payment(
    ledger: PaymentLedger, verifier: PaymentVerifier, tx_hash: str | None,
) -> VerificationResult:
    """Decide whether *tx_hash* is a usable payment for a generation job."""
    if not tx_hash:
        logger.info("Generation requested without a transaction hash")
        return VerificationResult.fail(VerificationFailure.NOT_FOUND, "Payment required")

    record = ledger.get(tx_hash)
    if record is not None and record.confirmed:
        logger.info("Payment %s confirmed (from cache)", tx_hash)
        return VerificationResult.ok(record.verified_amount or 0)

    result = await verifier.verify(tx_hash, 0)
    if result.confirmed:
        logger.info("Payment %s confirmed on chain", tx_hash)
    else:
        logger.info("Payment %s not confirmed: %s", tx_hash, result.error)
    return result
