"""
Recipient list parsing.

Expected text format, one recipient per line:
    address,amount[,label]
    0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266,10.5,Alice
    0x70997970C51812dc3A010C7d01b50e0d17dc79C8,5,Bob

Parsing is best-effort: a line that does not hold a valid address and a
plain non-negative decimal amount is skipped, so a preview can be shown
while the operator is still editing. Skipped lines never reach a
transaction.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional

from eth_utils import is_address, to_checksum_address

from .amounts import MAX_PRECISION, fraction_digits, is_decimal_amount, sum_decimal_amounts


@dataclass(frozen=True)
class RecipientRecord:
    """A single validated payment row."""

    address: str  # EIP-55 checksummed
    amount: str  # decimal string as entered
    label: str = ""  # optional label/note


@dataclass(frozen=True)
class SkippedLine:
    line_number: int
    text: str
    reason: str


@dataclass
class ParseReport:
    """Accepted records and the lines that were left out."""

    records: list[RecipientRecord] = field(default_factory=list)
    skipped: list[SkippedLine] = field(default_factory=list)

    @property
    def total(self) -> str:
        """Exact decimal total of the accepted amounts."""
        return sum_decimal_amounts(r.amount for r in self.records)


def _check_row(address: str, amount: str) -> Optional[str]:
    """Return the reason a row is unusable, or None if it is valid."""
    if not is_address(address):
        return f"invalid address '{address}'"
    if not is_decimal_amount(amount):
        return f"invalid amount '{amount}'"
    if fraction_digits(amount) > MAX_PRECISION:
        return f"amount '{amount}' has more fractional digits than any token supports"
    return None


def _is_header(parts: list[str]) -> bool:
    return len(parts) >= 2 and [p.strip().lower() for p in parts[:2]] == ["address", "amount"]


def inspect_recipients_text(raw_text: str) -> ParseReport:
    """Parse recipient text, keeping track of every skipped line."""
    report = ParseReport()
    if not raw_text or not raw_text.strip():
        return report

    first_row = True
    for line_number, line in enumerate(raw_text.splitlines(), start=1):
        if not line.strip():
            continue

        parts = line.split(",")
        if first_row:
            first_row = False
            if _is_header(parts):
                continue
        if len(parts) < 2:
            report.skipped.append(SkippedLine(line_number, line, "expected 'address,amount'"))
            continue

        address = parts[0].strip()
        amount = parts[1].strip()
        reason = _check_row(address, amount)
        if reason:
            report.skipped.append(SkippedLine(line_number, line, reason))
            continue

        label = parts[2].strip() if len(parts) > 2 else ""
        report.records.append(RecipientRecord(
            address=to_checksum_address(address),
            amount=amount,
            label=label,
        ))

    return report


def parse_recipients_text(raw_text: str) -> list[RecipientRecord]:
    """Parse recipient text into the valid subset of rows, in input order."""
    return inspect_recipients_text(raw_text).records


def _inspect_json_entries(data: Any) -> ParseReport:
    if not isinstance(data, list):
        raise ValueError("JSON must contain a list of recipient objects")

    report = ParseReport()
    for i, entry in enumerate(data, start=1):
        text = json.dumps(entry)
        if not isinstance(entry, dict):
            report.skipped.append(SkippedLine(i, text, "entry must be an object"))
            continue

        address = entry.get("address")
        amount = entry.get("amount")
        # JSON floats are already binary floats; only strings and integers
        # carry an exact amount.
        if isinstance(amount, int) and not isinstance(amount, bool):
            amount = str(amount)
        if not isinstance(address, str) or not isinstance(amount, str):
            report.skipped.append(SkippedLine(i, text, "missing 'address' or exact 'amount'"))
            continue

        address = address.strip()
        amount = amount.strip()
        reason = _check_row(address, amount)
        if reason:
            report.skipped.append(SkippedLine(i, text, reason))
            continue

        report.records.append(RecipientRecord(
            address=to_checksum_address(address),
            amount=amount,
            label=str(entry.get("label", entry.get("name", "")) or ""),
        ))

    return report


def inspect_recipients_file(filepath: str | Path) -> ParseReport:
    """
    Load a recipient file and report accepted and skipped rows.

    ``.json`` files hold a list of objects:
        [
            {"address": "0xf39F...", "amount": "10.5", "label": "Alice"},
            {"address": "0x7099...", "amount": 5}
        ]
    Every other suffix is read as comma-separated text.
    """
    filepath = Path(filepath)
    with open(filepath, "r", encoding="utf-8") as f:
        content = f.read()

    if filepath.suffix.lower() == ".json":
        return _inspect_json_entries(json.loads(content))
    return inspect_recipients_text(content)


def load_recipients(filepath: str | Path) -> list[RecipientRecord]:
    """Auto-detect file format and return the valid recipients."""
    return inspect_recipients_file(filepath).records


def render_recipients_csv(records: Iterable[RecipientRecord]) -> str:
    """Render records as ``address,amount,label`` text with a header row."""
    lines = ["address,amount,label"]
    for r in records:
        lines.append(f"{r.address},{r.amount},{r.label}")
    return "\n".join(lines) + "\n"


def render_recipients_json(records: Iterable[RecipientRecord]) -> str:
    entries = [{"address": r.address, "amount": r.amount, "label": r.label} for r in records]
    return json.dumps(entries, indent=2) + "\n"
