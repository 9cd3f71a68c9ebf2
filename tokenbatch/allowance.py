"""
Allowance calculation for a batch payment.

The batch contract pulls every transfer plus its protocol fee from the
payer, so the allowance granted to it must equal the exact integer sum of
all converted amounts plus the fee.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .amounts import from_base_units, to_base_units
from .errors import InvalidAmount
from .recipients import RecipientRecord


@dataclass(frozen=True)
class ConvertedRecipient:
    address: str
    amount_base_units: int


@dataclass(frozen=True)
class BatchRequest:
    """
    Everything one batchTransfer call needs, fixed at approval time.

    Never mutated: a new approval produces a new request, so a payment
    always sends exactly what was approved.
    """

    token_address: str
    recipients: tuple[ConvertedRecipient, ...]
    total_base_units: int
    fee_base_units: int
    required_allowance: int
    precision: int

    def __post_init__(self):
        if self.total_base_units != sum(r.amount_base_units for r in self.recipients):
            raise ValueError("total_base_units does not match the recipient amounts")
        if self.required_allowance != self.total_base_units + self.fee_base_units:
            raise ValueError("required_allowance must equal total plus fee")

    @property
    def addresses(self) -> list[str]:
        return [r.address for r in self.recipients]

    @property
    def amounts(self) -> list[int]:
        return [r.amount_base_units for r in self.recipients]

    def describe(self) -> str:
        """One-line human-readable description of the batch."""
        return (
            f"{len(self.recipients)} recipients, "
            f"{from_base_units(self.total_base_units, self.precision)} tokens "
            f"+ {from_base_units(self.fee_base_units, self.precision)} fee"
        )


def _check_fee(fee: int) -> None:
    if isinstance(fee, bool) or not isinstance(fee, int) or fee < 0:
        raise ValueError(f"Fee must be a non-negative integer, got {fee!r}")


def required_allowance(
    records: Sequence[RecipientRecord],
    precision: int,
    fee: int,
) -> tuple[list[int], int, int]:
    """
    Convert every record and compute the allowance the batch needs.

    Returns (amounts_base_units, total_base_units, required_allowance).
    A single unconvertible amount rejects the whole batch with
    InvalidAmount.
    """
    _check_fee(fee)

    amounts = []
    for i, r in enumerate(records):
        try:
            amounts.append(to_base_units(r.amount, precision))
        except InvalidAmount as e:
            raise InvalidAmount(f"Recipient {i + 1} ({r.label or r.address}): {e}") from e

    total = sum(amounts)
    return amounts, total, total + fee


def build_batch_request(
    token_address: str,
    records: Sequence[RecipientRecord],
    precision: int,
    fee: int,
) -> BatchRequest:
    amounts, total, required = required_allowance(records, precision, fee)
    return BatchRequest(
        token_address=token_address,
        recipients=tuple(
            ConvertedRecipient(address=r.address, amount_base_units=amount)
            for r, amount in zip(records, amounts)
        ),
        total_base_units=total,
        fee_base_units=fee,
        required_allowance=required,
        precision=precision,
    )


@dataclass
class AllowanceEstimate:
    """Read-only pre-flight check for a batch payment."""

    token_address: str
    precision: int
    recipient_count: int
    total_base_units: int
    fee_base_units: int
    required_allowance: int
    current_allowance: int
    balance: int

    @property
    def approval_needed(self) -> bool:
        return self.current_allowance < self.required_allowance

    @property
    def balance_sufficient(self) -> bool:
        return self.balance >= self.required_allowance

    def summary(self) -> str:
        """Human-readable estimate."""
        p = self.precision
        status = "SUFFICIENT" if self.balance_sufficient else "INSUFFICIENT"
        approval = "required" if self.approval_needed else "already granted"
        lines = [
            "=== tokenbatch — Allowance Estimate ===",
            f"Token: {self.token_address} ({p} decimals)",
            f"Recipients: {self.recipient_count}",
            f"Total transfer amount: {from_base_units(self.total_base_units, p)}",
            f"Protocol fee: {from_base_units(self.fee_base_units, p)}",
            f"Required allowance: {from_base_units(self.required_allowance, p)}",
            f"Current allowance: {from_base_units(self.current_allowance, p)}",
            f"Approval: {approval}",
            f"Current balance: {from_base_units(self.balance, p)}",
            f"Balance: {status}",
        ]
        return "\n".join(lines)
