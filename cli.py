#!/usr/bin/env python3
"""
tokenbatch — CLI for batch ERC-20 payments.

Usage:
    tokenbatch transfer --token <addr> --file <path> [--rpc <url>] [--contract <addr>] [--dry-run] [--yes]
    tokenbatch estimate --token <addr> --file <path> [--rpc <url>] [--contract <addr>]
    tokenbatch validate --file <path>
    tokenbatch generate-template --output <path> [--format csv|json] [--count <n>]

Examples:
    # Approve and pay every recipient in a CSV file
    tokenbatch transfer --token 0x55d398326f99059fF775485246999027B3197955 --file recipients.csv

    # Check allowance, fee and balance before paying
    tokenbatch estimate --token 0x55d398326f99059fF775485246999027B3197955 --file recipients.csv

    # Check a recipient list offline
    tokenbatch validate --file recipients.csv

The signing key is read from TOKENBATCH_PRIVATE_KEY (a .env file in the
working directory is loaded first).
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv
from eth_utils import to_checksum_address
from loguru import logger

from tokenbatch import __version__
from tokenbatch.amounts import from_base_units
from tokenbatch.clients import (
    LocalAccountConnector,
    Web3BatchPaymentClient,
    Web3TokenClient,
    build_web3,
)
from tokenbatch.config import Settings
from tokenbatch.errors import BatchPaymentError
from tokenbatch.orchestrator import PaymentOrchestrator, Severity, StatusEvent
from tokenbatch.recipients import (
    ParseReport,
    RecipientRecord,
    inspect_recipients_file,
    render_recipients_csv,
    render_recipients_json,
)


BANNER = r"""
  _       _              _           _       _
 | |_ ___| | _____ _ __ | |__   __ _| |_ ___| |__
 | __/ _ \ |/ / _ \ '_ \| '_ \ / _` | __/ __| '_ \
 | || (_) |   <  __/ | | | |_) | (_| | || (__| | | |
  \__\___/|_|\_\___|_| |_|_.__/ \__,_|\__\___|_| |_|
  Batch ERC-20 payments in one transaction
"""

# Well-known local development accounts (Hardhat/Anvil defaults)
SAMPLE_ADDRESSES = [
    "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
    "0x70997970C51812dc3A010C7d01b50e0d17dc79C8",
    "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC",
    "0x90F79bf6EB2c4f870365E785982E1f101E93b906",
    "0x15d34AAf54267DB7D7c367839AAf71A00a2C6A65",
]

SAMPLE_LABELS = ["Alice", "Bob", "Charlie", "Dave", "Eve", "Contributor_1",
                 "Contributor_2", "Reviewer_1", "Bounty_Winner", "Grant_1"]

STATUS_MARKS = {
    Severity.INFO: "·",
    Severity.SUCCESS: "✓",
    Severity.ERROR: "✗",
}


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def print_status(event: StatusEvent) -> None:
    print(f"  {STATUS_MARKS[event.severity]} {event.message}")


def load_settings(args: argparse.Namespace) -> Settings:
    """Environment settings with command-line overrides applied."""
    settings = Settings.from_env()
    if getattr(args, "rpc", None):
        settings.rpc_url = args.rpc
    if getattr(args, "contract", None):
        settings.contract_address = args.contract
    return settings


def build_orchestrator(settings: Settings) -> PaymentOrchestrator:
    web3 = build_web3(settings.rpc_url)
    wallet = LocalAccountConnector(web3, settings.private_key)
    batch_client = Web3BatchPaymentClient(
        web3, settings.contract_address, wallet, settings.receipt_timeout
    )

    def token_client_factory(token_address: str) -> Web3TokenClient:
        return Web3TokenClient(web3, token_address, wallet, settings.receipt_timeout)

    orchestrator = PaymentOrchestrator(wallet, token_client_factory, batch_client)
    orchestrator.subscribe(print_status)
    return orchestrator


def load_report(path: str) -> ParseReport | None:
    try:
        return inspect_recipients_file(path)
    except (OSError, ValueError) as e:
        print(f"Error parsing file: {e}")
        return None


def print_skipped(report: ParseReport) -> None:
    if not report.skipped:
        return
    print(f"Skipped {len(report.skipped)} invalid rows:")
    for s in report.skipped:
        print(f"  ✗ line {s.line_number}: {s.reason}")


async def _transfer(args: argparse.Namespace, settings: Settings, records: list[RecipientRecord]) -> int:
    orchestrator = build_orchestrator(settings)

    account = await orchestrator.connect()
    print(f"Account: {account}")
    orchestrator.set_recipients(records)

    if args.dry_run:
        print("\n[DRY RUN] Reading allowance and fee without submitting...")
        estimate = await orchestrator.estimate(args.token)
        print()
        print(estimate.summary())
        return 0

    if not args.yes:
        response = input(f"\nApprove and pay {len(records)} recipients? [y/N]: ")
        if response.lower() not in ("y", "yes"):
            print("Aborted.")
            return 0

    print("\nApproving...")
    batch = await orchestrator.approve(args.token)
    print("\nPaying...")
    receipt = await orchestrator.pay()

    print()
    print("=== tokenbatch — Batch Transfer — SUCCESS ===")
    print(f"Recipients: {len(batch.recipients)}")
    print(f"Total amount: {from_base_units(batch.total_base_units, batch.precision)}")
    print(f"Protocol fee: {from_base_units(batch.fee_base_units, batch.precision)}")
    print(f"Transaction: {receipt.tx_hash}")
    if receipt.block_number is not None:
        print(f"Block: {receipt.block_number}")
    return 0


def cmd_transfer(args: argparse.Namespace) -> int:
    """Approve the allowance and execute the batch transfer."""
    print(BANNER)

    report = load_report(args.file)
    if report is None:
        return 1

    print(f"Loaded {len(report.records)} recipients from {args.file}")
    print_skipped(report)
    if not report.records:
        print("No valid recipients.")
        return 1
    print(f"Total to transfer: {report.total} tokens across {len(report.records)} recipients")

    try:
        settings = load_settings(args)
        print(f"RPC: {settings.rpc_url}")
        print(f"Batch contract: {settings.contract_address}")
        print()
        return asyncio.run(_transfer(args, settings, report.records))
    except BatchPaymentError:
        # Already reported through the status stream
        return 1
    except ValueError as e:
        print(f"\nError: {e}")
        return 1


async def _estimate(args: argparse.Namespace, settings: Settings, records: list[RecipientRecord]) -> int:
    orchestrator = build_orchestrator(settings)
    await orchestrator.connect()
    orchestrator.set_recipients(records)
    estimate = await orchestrator.estimate(args.token)
    print()
    print(estimate.summary())
    return 0


def cmd_estimate(args: argparse.Namespace) -> int:
    """Estimate the allowance a batch transfer needs."""
    print(BANNER)

    report = load_report(args.file)
    if report is None:
        return 1

    print(f"Estimating allowance for {len(report.records)} recipients...")
    print_skipped(report)

    try:
        return asyncio.run(_estimate(args, load_settings(args), report.records))
    except BatchPaymentError:
        return 1
    except ValueError as e:
        print(f"Error: {e}")
        return 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a recipient list."""
    print(BANNER)

    report = load_report(args.file)
    if report is None:
        return 1

    records = report.records
    print(f"Loaded {len(records)} valid recipients from {args.file}")
    print_skipped(report)

    if not records:
        print("\n✗ No valid recipients")
        return 1

    print(f"\n✓ {len(records)} recipients will be paid")
    print(f"  Total amount: {report.total} tokens")

    print(f"\nPreview (first 5):")
    for r in records[:5]:
        label = f" ({r.label})" if r.label else ""
        print(f"  {r.address[:10]}...{r.address[-8:]} → {r.amount}{label}")
    if len(records) > 5:
        print(f"  ... and {len(records) - 5} more")

    return 1 if report.skipped and args.strict else 0


def cmd_generate_template(args: argparse.Namespace) -> int:
    """Generate a template recipient file."""
    print(BANNER)

    count = args.count
    output = Path(args.output)

    records = []
    for i in range(count):
        label = SAMPLE_LABELS[i] if i < len(SAMPLE_LABELS) else f"Recipient_{i + 1}"
        records.append(RecipientRecord(
            address=to_checksum_address(SAMPLE_ADDRESSES[i % len(SAMPLE_ADDRESSES)]),
            amount=f"{1 + i // 2}.{5 if i % 2 else 0}",
            label=label,
        ))

    fmt = args.format
    content = render_recipients_json(records) if fmt == "json" else render_recipients_csv(records)
    with open(output, "w", encoding="utf-8", newline="") as f:
        f.write(content)

    print(f"Generated template with {count} recipients: {output}")
    print(f"Format: {fmt.upper()}")
    print(f"\nEdit the file with your actual recipient addresses and amounts,")
    print(f"then run: tokenbatch validate --file {output}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tokenbatch",
        description="tokenbatch — Batch ERC-20 payments through a batch payment contract",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", action="version", version=f"tokenbatch {__version__}"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Show debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Transfer command
    transfer_parser = subparsers.add_parser(
        "transfer", help="Approve and execute a batch transfer"
    )
    transfer_parser.add_argument(
        "--token", "-t", required=True, help="ERC-20 token contract address"
    )
    transfer_parser.add_argument(
        "--file", "-f", required=True, help="Path to recipient list (CSV or JSON)"
    )
    transfer_parser.add_argument(
        "--rpc", help="JSON-RPC endpoint. Default: TOKENBATCH_RPC_URL"
    )
    transfer_parser.add_argument(
        "--contract", help="Batch payment contract address. Default: TOKENBATCH_CONTRACT"
    )
    transfer_parser.add_argument(
        "--dry-run", action="store_true",
        help="Read allowance, fee and balance without submitting transactions"
    )
    transfer_parser.add_argument(
        "--yes", "-y", action="store_true",
        help="Skip confirmation prompt"
    )

    # Estimate command
    estimate_parser = subparsers.add_parser(
        "estimate", help="Estimate the allowance a batch needs"
    )
    estimate_parser.add_argument(
        "--token", "-t", required=True, help="ERC-20 token contract address"
    )
    estimate_parser.add_argument(
        "--file", "-f", required=True, help="Path to recipient list"
    )
    estimate_parser.add_argument("--rpc", help="JSON-RPC endpoint")
    estimate_parser.add_argument("--contract", help="Batch payment contract address")

    # Validate command
    validate_parser = subparsers.add_parser(
        "validate", help="Validate a recipient list"
    )
    validate_parser.add_argument(
        "--file", "-f", required=True, help="Path to recipient list"
    )
    validate_parser.add_argument(
        "--strict", action="store_true", help="Fail if any row was skipped"
    )

    # Generate template command
    template_parser = subparsers.add_parser(
        "generate-template", help="Generate a template recipient file"
    )
    template_parser.add_argument(
        "--output", "-o", default="recipients.csv", help="Output file path"
    )
    template_parser.add_argument(
        "--format", choices=["csv", "json"], default="csv", help="File format"
    )
    template_parser.add_argument(
        "--count", "-c", type=int, default=5, help="Number of sample recipients"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings.from_env()
        configure_logging("DEBUG" if args.verbose else settings.log_level)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "transfer": cmd_transfer,
        "estimate": cmd_estimate,
        "validate": cmd_validate,
        "generate-template": cmd_generate_template,
    }

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
