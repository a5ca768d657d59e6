"""On-chain payment verification through the Blockfrost Cardano API.

A payment is confirmed when the transaction exists, one of its outputs pays
the receiving address, and (unless the expected amount is 0) that output
carries at least 99% of the expected lovelace.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any

import httpx

from config import BLOCKFROST_API_URL, BLOCKFROST_PROJECT_ID, RECEIVING_ADDRESS
from errors import VerificationFailure
from ledger import meets_expected_amount

logger = logging.getLogger(__name__)

TX_HASH_PATTERN = re.compile(r"[0-9a-fA-F]{64}")
UPSTREAM_MESSAGE = "Blockchain service unavailable"


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verifying one transaction."""

    confirmed: bool
    amount: int | None = None
    error: str | None = None
    failure: VerificationFailure | None = None

    @classmethod
    def ok(cls, amount: int) -> "VerificationResult":
        return cls(confirmed=True, amount=amount)

    @classmethod
    def fail(cls, failure: VerificationFailure, error: str, amount: int | None = None) -> "VerificationResult":
        return cls(confirmed=False, amount=amount, error=error, failure=failure)

    @property
    def is_final(self) -> bool:
        """True if this transaction will never confirm for the expected amount."""
        return self.failure is not None and self.failure.is_final

    def to_dict(self) -> dict[str, Any]:
        return {
            "confirmed": self.confirmed,
            "amount": self.amount,
            "error": self.error,
            "failure": self.failure.value if self.failure else None,
        }


def is_valid_tx_hash(tx_hash: str | None) -> bool:
    """A Cardano transaction hash is 32 bytes, hex encoded."""
    return bool(tx_hash) and TX_HASH_PATTERN.fullmatch(tx_hash) is not None


class BlockfrostClient:
    """Thin async wrapper over the two Blockfrost endpoints we need."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        project_id: str = BLOCKFROST_PROJECT_ID,
        base_url: str = BLOCKFROST_API_URL,
    ) -> None:
        self.client = client
        self.project_id = project_id
        self.base_url = base_url.rstrip("/")

    async def _get(self, path: str) -> Any:
        response = await self.client.get(
            f"{self.base_url}{path}",
            headers={"project_id": self.project_id},
        )
        response.raise_for_status()
        return response.json()

    async def get_transaction(self, tx_hash: str) -> dict[str, Any]:
        return await self._get(_tx_path(tx_hash))

    async def get_transaction_utxos(self, tx_hash: str) -> dict[str, Any]:
        return await self._get(_tx_path(tx_hash, "/utxos"))


def _tx_path(tx_hash: str, suffix: str = "") -> str:
    if not is_valid_tx_hash(tx_hash):
        raise ValueError(f"Invalid transaction hash: {tx_hash!r}")
    return f"/txs/{tx_hash}{suffix}"


def _lovelace(output: dict[str, Any]) -> int:
    for asset in output.get("amount", []):
        if asset.get("unit") == "lovelace":
            return int(asset.get("quantity") or 0)
    return 0


class PaymentVerifier:
    """Checks that a transaction paid the receiving address."""

    def __init__(self, blockfrost: BlockfrostClient, receiving_address: str = RECEIVING_ADDRESS) -> None:
        self.blockfrost = blockfrost
        self.receiving_address = receiving_address

    async def verify(self, tx_hash: str, expected_amount: int) -> VerificationResult:
        """Verify *tx_hash* against *expected_amount* lovelace.

        ``expected_amount == 0`` only checks that the transaction exists and
        pays the receiving address. Never raises: every failure is returned
        as an unconfirmed result; upstream details only go to the log.
        """
        if not is_valid_tx_hash(tx_hash):
            logger.warning("Rejected malformed transaction hash %r", tx_hash)
            return VerificationResult.fail(VerificationFailure.NOT_FOUND, "Invalid transaction hash")

        try:
            return await self._verify(tx_hash, expected_amount)
        except (httpx.HTTPError, ValueError, TypeError, AttributeError):
            logger.exception("Verification error for %s", tx_hash)
            return VerificationResult.fail(VerificationFailure.UPSTREAM_UNAVAILABLE, UPSTREAM_MESSAGE)

    async def _verify(self, tx_hash: str, expected_amount: int) -> VerificationResult:
        try:
            tx = await self.blockfrost.get_transaction(tx_hash)
        except httpx.HTTPStatusError as e:
            # Blockfrost answers 400 for hashes it cannot parse
            if e.response.status_code not in (400, 404):
                raise
            tx = None
        if not tx:
            return VerificationResult.fail(VerificationFailure.NOT_FOUND, "Transaction not found on blockchain")

        try:
            utxos = await self.blockfrost.get_transaction_utxos(tx_hash)
        except httpx.HTTPStatusError as e:
            logger.warning("Outputs for %s unavailable: %s", tx_hash, e)
            return VerificationResult.fail(VerificationFailure.NOT_FOUND, "Transaction outputs not found")

        output = next(
            (o for o in utxos.get("outputs", []) if o.get("address") == self.receiving_address),
            None,
        )
        if output is None:
            return VerificationResult.fail(VerificationFailure.WRONG_DESTINATION, "Payment not sent to correct address")

        paid = _lovelace(output)

        if not meets_expected_amount(paid, expected_amount):
            return VerificationResult.fail(
                VerificationFailure.INSUFFICIENT_AMOUNT,
                f"Insufficient payment amount. Expected: {expected_amount}, Received: {paid}",
                amount=paid,
            )

        logger.info("Payment %s verified: %d lovelace", tx_hash, paid)
        return VerificationResult.ok(paid)
