"""Tests for allowance calculation and batch requests."""

from __future__ import annotations

import pytest

from conftest import ALICE_CS, BOB_CS, TOKEN_CS
from tokenbatch.allowance import (
    AllowanceEstimate,
    BatchRequest,
    ConvertedRecipient,
    build_batch_request,
    required_allowance,
)
from tokenbatch.errors import InvalidAmount
from tokenbatch.recipients import RecipientRecord


RECORDS = [
    RecipientRecord(address=ALICE_CS, amount="1.5"),
    RecipientRecord(address=BOB_CS, amount="2.5"),
]


def test_required_allowance_is_exact_sum_plus_fee() -> None:
    amounts, total, required = required_allowance(RECORDS, 18, 1000)

    assert amounts == [1_500_000_000_000_000_000, 2_500_000_000_000_000_000]
    assert total == 4_000_000_000_000_000_000
    assert required == 4_000_000_000_000_000_000 + 1000


def test_many_small_amounts_do_not_drift() -> None:
    records = [RecipientRecord(address=ALICE_CS, amount="0.1")] * 10

    _, total, required = required_allowance(records, 18, 0)

    assert total == 10 ** 18
    assert required == 10 ** 18


def test_unconvertible_amount_rejects_whole_batch() -> None:
    records = RECORDS + [RecipientRecord(address=BOB_CS, amount="0.0000001", label="Bob")]

    with pytest.raises(InvalidAmount) as exc_info:
        required_allowance(records, 6, 1000)

    assert "Recipient 3 (Bob)" in str(exc_info.value)


def test_negative_fee_rejected() -> None:
    with pytest.raises(ValueError):
        required_allowance(RECORDS, 18, -1)


def test_build_batch_request() -> None:
    batch = build_batch_request(TOKEN_CS, RECORDS, 6, 250)

    assert batch.token_address == TOKEN_CS
    assert batch.addresses == [ALICE_CS, BOB_CS]
    assert batch.amounts == [1_500_000, 2_500_000]
    assert batch.total_base_units == 4_000_000
    assert batch.fee_base_units == 250
    assert batch.required_allowance == 4_000_250
    assert batch.describe() == "2 recipients, 4 tokens + 0.00025 fee"


def test_batch_request_is_immutable() -> None:
    batch = build_batch_request(TOKEN_CS, RECORDS, 18, 0)

    with pytest.raises(AttributeError):
        batch.total_base_units = 1


def test_batch_request_checks_invariants() -> None:
    recipients = (ConvertedRecipient(ALICE_CS, 10), ConvertedRecipient(BOB_CS, 20))

    with pytest.raises(ValueError):
        BatchRequest(TOKEN_CS, recipients, total_base_units=31, fee_base_units=0,
                     required_allowance=31, precision=0)
    with pytest.raises(ValueError):
        BatchRequest(TOKEN_CS, recipients, total_base_units=30, fee_base_units=5,
                     required_allowance=30, precision=0)


def test_estimate_flags() -> None:
    estimate = AllowanceEstimate(
        token_address=TOKEN_CS,
        precision=6,
        recipient_count=2,
        total_base_units=4_000_000,
        fee_base_units=250,
        required_allowance=4_000_250,
        current_allowance=1_000_000,
        balance=5_000_000,
    )

    assert estimate.approval_needed
    assert estimate.balance_sufficient

    summary = estimate.summary()
    assert "Required allowance: 4.00025" in summary
    assert "Approval: required" in summary
    assert "Balance: SUFFICIENT" in summary
