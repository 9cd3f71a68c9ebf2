"""Pytest configuration and shared fixtures for all tests."""

from __future__ import annotations

import asyncio
from typing import Optional

import pytest
from eth_utils import to_checksum_address

from tokenbatch.clients import Receipt
from tokenbatch.errors import TransactionFailed
from tokenbatch.orchestrator import PaymentOrchestrator


# Local development accounts, written lowercase so checksumming is
# always done by eth_utils.
ALICE = "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"
BOB = "0x70997970c51812dc3a010c7d01b50e0d17dc79c8"
OWNER = "0x3c44cdddb6a900fa2b585dd299e03d12fa4293bc"
SPENDER = "0x90f79bf6eb2c4f870365e785982e1f101e93b906"
TOKEN = "0x15d34aaf54267db7d7c367839aaf71a00a2c6a65"

ALICE_CS = to_checksum_address(ALICE)
BOB_CS = to_checksum_address(BOB)
TOKEN_CS = to_checksum_address(TOKEN)


class FakePendingTx:
    def __init__(self, tx_hash: str, error: Optional[Exception] = None, gate: Optional[asyncio.Event] = None, on_confirm=None):
        self.tx_hash = tx_hash
        self.error = error
        self.gate = gate
        self.on_confirm = on_confirm

    async def await_confirmation(self) -> Receipt:
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.on_confirm is not None:
            self.on_confirm()
        return Receipt(tx_hash=self.tx_hash, block_number=100, gas_used=50_000)


class FakeWallet:
    def __init__(self, address: str = OWNER, error: Optional[Exception] = None):
        self.address = address
        self.error = error
        self.calls = 0

    async def request_connection(self) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.address


class FakeTokenClient:
    """In-memory ERC-20: approvals take effect once confirmed."""

    def __init__(self, precision: int = 18, allowance: int = 0, balance: int = 10 ** 30):
        self._precision = precision
        self._allowance = allowance
        self._balance = balance
        self.approvals: list[tuple[str, int]] = []
        self.precision_reads = 0
        self.allowance_reads = 0
        self.revert_approvals = False
        self.gate: Optional[asyncio.Event] = None

    async def precision(self) -> int:
        self.precision_reads += 1
        return self._precision

    async def allowance(self, owner: str, spender: str) -> int:
        self.allowance_reads += 1
        return self._allowance

    async def balance_of(self, owner: str) -> int:
        return self._balance

    async def approve(self, spender: str, amount_base_units: int) -> FakePendingTx:
        self.approvals.append((spender, amount_base_units))
        tx_hash = f"0xapprove{len(self.approvals)}"
        if self.revert_approvals:
            return FakePendingTx(tx_hash, error=TransactionFailed("execution reverted", tx_hash=tx_hash))

        def confirm():
            self._allowance = amount_base_units

        return FakePendingTx(tx_hash, gate=self.gate, on_confirm=confirm)


class FakeBatchClient:
    def __init__(self, fee: int = 1000, address: str = SPENDER):
        self.address = address
        self._fee = fee
        self.transfers: list[tuple[str, list[str], list[int]]] = []
        self.revert_transfers = False
        self.gate: Optional[asyncio.Event] = None

    async def fee(self) -> int:
        return self._fee

    async def batch_transfer(self, token_address, recipients, amounts_base_units) -> FakePendingTx:
        self.transfers.append((token_address, list(recipients), list(amounts_base_units)))
        tx_hash = f"0xbatch{len(self.transfers)}"
        if self.revert_transfers:
            return FakePendingTx(tx_hash, error=TransactionFailed("execution reverted", tx_hash=tx_hash))
        return FakePendingTx(tx_hash, gate=self.gate)


@pytest.fixture
def wallet():
    return FakeWallet()


@pytest.fixture
def token():
    return FakeTokenClient()


@pytest.fixture
def batch_client():
    return FakeBatchClient()


@pytest.fixture
def orchestrator(wallet, token, batch_client):
    return PaymentOrchestrator(wallet, lambda address: token, batch_client)


@pytest.fixture
def events(orchestrator):
    """Status events emitted by the orchestrator fixture."""
    collected = []
    orchestrator.subscribe(collected.append)
    return collected
