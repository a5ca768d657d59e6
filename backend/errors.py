"""Error kinds shared by the quoting, verification and generation layers."""

from enum import Enum


class UpstreamUnavailable(Exception):
    """An external service (price oracle, indexer, video API) failed or is unreachable."""

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service
        self.message = message


class VerificationFailure(str, Enum):
    """Why an on-chain payment could not be confirmed."""

    NOT_FOUND = "not_found"
    WRONG_DESTINATION = "wrong_destination"
    INSUFFICIENT_AMOUNT = "insufficient_amount"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"

    @property
    def is_final(self) -> bool:
        """True when re-checking the same transaction can never succeed."""
        return self in (VerificationFailure.WRONG_DESTINATION, VerificationFailure.INSUFFICIENT_AMOUNT)
