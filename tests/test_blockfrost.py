"""
Unit tests for on-chain payment verification.

The Blockfrost API is replaced by ``FakeChain`` from conftest.
"""

import asyncio

import pytest

from errors import VerificationFailure

TX1 = "a1" * 32
UNKNOWN_TX = "ff" * 32
EXPECTED = 1_000_000


def verify(verifier, tx_hash, expected=EXPECTED):
    return asyncio.run(verifier.verify(tx_hash, expected))


class TestVerifySuccess:
    """Test confirmed payments."""

    def test_exact_amount(self, verifier, chain):
        chain.pay(TX1, lovelace=EXPECTED)
        result = verify(verifier, TX1)
        assert result.confirmed is True
        assert result.amount == EXPECTED
        assert result.error is None
        assert result.failure is None

    def test_ninety_nine_percent_accepted(self, verifier, chain):
        chain.pay(TX1, lovelace=990_000)
        result = verify(verifier, TX1)
        assert result.confirmed is True
        assert result.amount == 990_000

    def test_overpayment_accepted(self, verifier, chain):
        chain.pay(TX1, lovelace=2 * EXPECTED)
        assert verify(verifier, TX1).confirmed is True

    def test_picks_output_to_receiving_address(self, verifier, chain):
        chain.pay(TX1, address="addr1_change", lovelace=50_000_000)
        chain.pay(TX1, lovelace=EXPECTED)
        result = verify(verifier, TX1)
        assert result.confirmed is True
        assert result.amount == EXPECTED


class TestVerifyFailures:
    """Test structured failure results."""

    def test_ninety_eight_percent_is_insufficient(self, verifier, chain):
        chain.pay(TX1, lovelace=980_000)
        result = verify(verifier, TX1)
        assert result.confirmed is False
        assert result.failure is VerificationFailure.INSUFFICIENT_AMOUNT
        assert result.amount == 980_000
        assert "Expected: 1000000" in result.error
        assert "Received: 980000" in result.error
        assert result.is_final is True

    def test_missing_transaction(self, verifier):
        result = verify(verifier, UNKNOWN_TX)
        assert result.confirmed is False
        assert result.failure is VerificationFailure.NOT_FOUND
        assert result.error == "Transaction not found on blockchain"
        assert result.is_final is False

    def test_outputs_unavailable(self, verifier, chain):
        chain.pay(TX1)
        chain.broken_utxos.add(TX1)
        result = verify(verifier, TX1)
        assert result.confirmed is False
        assert result.failure is VerificationFailure.NOT_FOUND

    def test_wrong_destination(self, verifier, chain):
        chain.pay(TX1, address="addr1_someone_else", lovelace=EXPECTED)
        result = verify(verifier, TX1)
        assert result.confirmed is False
        assert result.failure is VerificationFailure.WRONG_DESTINATION
        assert result.error == "Payment not sent to correct address"
        assert result.is_final is True

    def test_transport_error_is_converted(self, verifier, chain):
        chain.down = True
        result = verify(verifier, TX1)
        assert result.confirmed is False
        assert result.failure is VerificationFailure.UPSTREAM_UNAVAILABLE
        assert result.error == "Blockchain service unavailable"

    def test_bad_request_means_not_found(self, verifier, chain):
        chain.reject(TX1, 400)
        result = verify(verifier, TX1)
        assert result.failure is VerificationFailure.NOT_FOUND
        assert result.error == "Transaction not found on blockchain"

    def test_upstream_error_details_stay_in_logs(self, verifier, chain, caplog):
        chain.reject(TX1, 403)
        result = verify(verifier, TX1)
        assert result.failure is VerificationFailure.UPSTREAM_UNAVAILABLE
        assert result.error == "Blockchain service unavailable"
        assert "blockfrost.test" in caplog.text


class TestTransactionHashFormat:
    """Malformed hashes never reach the Blockfrost API."""

    @pytest.mark.parametrize("tx_hash", [
        "../../addresses/addr1_test_receiver",
        TX1 + "/utxos",
        TX1[:-1],
        "zz" * 32,
        "",
    ])
    def test_rejected_without_request(self, verifier, chain, tx_hash):
        result = verify(verifier, tx_hash)
        assert result.confirmed is False
        assert result.failure is VerificationFailure.NOT_FOUND
        assert result.error == "Invalid transaction hash"
        assert chain.calls == []

    def test_client_refuses_path_segments(self, verifier, chain):
        with pytest.raises(ValueError):
            asyncio.run(verifier.blockfrost.get_transaction_utxos("../../epochs/latest"))
        assert chain.calls == []

    def test_uppercase_hex_accepted(self, verifier, chain):
        chain.pay(TX1.upper(), lovelace=EXPECTED)
        assert verify(verifier, TX1.upper()).confirmed is True


class TestExistenceOnly:
    """expected_amount=0 never fails on amount grounds."""

    def test_any_amount_confirms(self, verifier, chain):
        chain.pay(TX1, lovelace=1)
        result = verify(verifier, TX1, expected=0)
        assert result.confirmed is True
        assert result.amount == 1

    def test_still_requires_existence(self, verifier):
        result = verify(verifier, UNKNOWN_TX, expected=0)
        assert result.failure is VerificationFailure.NOT_FOUND

    def test_still_requires_destination(self, verifier, chain):
        chain.pay(TX1, address="addr1_someone_else")
        result = verify(verifier, TX1, expected=0)
        assert result.failure is VerificationFailure.WRONG_DESTINATION


def test_to_dict(verifier, chain):
    chain.pay(TX1, address="addr1_someone_else")
    assert verify(verifier, TX1).to_dict() == {
        "confirmed": False,
        "amount": None,
        "error": "Payment not sent to correct address",
        "failure": "wrong_destination",
    }
