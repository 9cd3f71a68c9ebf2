"""
Batch payment orchestration: connect → approve → pay.

PaymentOrchestrator owns a single OrchestrationState and is the only code
that replaces it. Each command checks its guard, moves the state forward,
awaits the on-chain collaborators and either commits the next stable state
or falls back to the last one, recording the failure on the state so the
operator can retry.

Lifecycle:

    DISCONNECTED → CONNECTED → READY(token) → APPROVING → APPROVED(batch)
                                                              │
                                     COMPLETED ← PAYING ←─────┘

APPROVING and PAYING are in flight: while either is set, every other
command is rejected with OperationInProgress and nothing is submitted.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, NamedTuple, Optional, Sequence

from eth_utils import is_address, to_checksum_address
from loguru import logger

from .allowance import AllowanceEstimate, BatchRequest, build_batch_request
from .amounts import from_base_units, sum_decimal_amounts
from .clients import BatchPaymentClient, Receipt, TokenClient, WalletConnector
from .errors import (
    InvalidTokenAddress,
    NoValidRecipients,
    NotApproved,
    OperationInProgress,
    WalletUnavailable,
)
from .recipients import RecipientRecord, inspect_recipients_text


class Phase(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    READY = "ready"
    APPROVING = "approving"
    APPROVED = "approved"
    PAYING = "paying"
    COMPLETED = "completed"


IN_FLIGHT = frozenset({Phase.APPROVING, Phase.PAYING})
APPROVABLE = frozenset({Phase.CONNECTED, Phase.READY, Phase.APPROVED, Phase.COMPLETED})


class Severity(Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class StatusEvent(NamedTuple):
    message: str
    severity: Severity = Severity.INFO


@dataclass(frozen=True)
class ErrorInfo:
    """Last failure: what went wrong and during which phase."""

    kind: str
    message: str
    phase: Phase

    @classmethod
    def capture(cls, error: Exception, phase: Phase) -> "ErrorInfo":
        return cls(kind=getattr(error, "kind", type(error).__name__), message=str(error), phase=phase)


@dataclass(frozen=True)
class OrchestrationState:
    phase: Phase = Phase.DISCONNECTED
    account: Optional[str] = None
    token_address: Optional[str] = None
    batch: Optional[BatchRequest] = None
    receipt: Optional[Receipt] = None
    error: Optional[ErrorInfo] = None
    version: int = 0

    @property
    def in_flight(self) -> bool:
        return self.phase in IN_FLIGHT


# ── Guards ──────────────────────────────────────────────────────
# Shared by the orchestrator and any front end deciding what to offer.


def can_connect(state: OrchestrationState) -> bool:
    return not state.in_flight


def can_approve(state: OrchestrationState) -> bool:
    return state.phase in APPROVABLE


def can_pay(state: OrchestrationState) -> bool:
    return state.phase is Phase.APPROVED and state.batch is not None


def is_valid_token_address(token_address: str) -> bool:
    """Advisory check used to enable the approve step."""
    return isinstance(token_address, str) and is_address(token_address.strip())


StatusListener = Callable[[StatusEvent], None]
TokenClientFactory = Callable[[str], TokenClient]


class PaymentOrchestrator:
    """
    Drives one operator's batch payment.

    Parameters:
        wallet: Supplies the paying account on connect().
        token_client_factory: Builds a TokenClient for a checksummed token address.
        batch_client: The batch payment contract; its ``address`` is the spender.
        skip_if_allowance_sufficient: If True, approve() reads the current
            allowance and skips the approval transaction when it already
            covers the batch.
    """

    def __init__(
        self,
        wallet: WalletConnector,
        token_client_factory: TokenClientFactory,
        batch_client: BatchPaymentClient,
        skip_if_allowance_sufficient: bool = True,
    ):
        self.wallet = wallet
        self.token_client_factory = token_client_factory
        self.batch_client = batch_client
        self.skip_if_allowance_sufficient = skip_if_allowance_sufficient

        self._state = OrchestrationState()
        self._records: list[RecipientRecord] = []
        self._listeners: list[StatusListener] = []

    # ── State and events ──

    def current_state(self) -> OrchestrationState:
        return self._state

    @property
    def records(self) -> list[RecipientRecord]:
        return list(self._records)

    def subscribe(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def _transition(self, **changes) -> OrchestrationState:
        previous = self._state.phase
        self._state = replace(self._state, version=self._state.version + 1, **changes)
        if self._state.phase is not previous:
            logger.debug(f"State {previous.value} → {self._state.phase.value} (v{self._state.version})")
        return self._state

    def _emit(self, message: str, severity: Severity = Severity.INFO) -> None:
        if severity is Severity.ERROR:
            logger.error(message)
        elif severity is Severity.SUCCESS:
            logger.success(message)
        else:
            logger.info(message)

        event = StatusEvent(message, severity)
        for listener in list(self._listeners):
            listener(event)

    def _reject(self, error: Exception) -> None:
        self._emit(str(error), Severity.ERROR)
        raise error

    # ── Input ──

    def set_csv_input(self, text: str) -> str:
        """
        Replace the current recipient input and return the preview total.

        Invalid rows are left out of both the preview and any later
        approval. Does not affect an approval already granted.
        """
        report = inspect_recipients_text(text)
        if report.skipped:
            logger.debug(f"Skipped {len(report.skipped)} malformed recipient lines")
        self._records = report.records
        return report.total

    def set_recipients(self, records: Sequence[RecipientRecord]) -> str:
        """Replace the current input with already-parsed records."""
        self._records = list(records)
        return sum_decimal_amounts(r.amount for r in self._records)

    # ── Commands ──

    async def connect(self) -> str:
        """(Re)connect the wallet. Always starts from DISCONNECTED."""
        if not can_connect(self._state):
            self._reject(OperationInProgress("Cannot reconnect while a transaction is pending"))

        self._transition(
            phase=Phase.DISCONNECTED,
            account=None,
            token_address=None,
            batch=None,
            receipt=None,
            error=None,
        )
        self._emit("Connecting wallet...")

        try:
            account = await self.wallet.request_connection()
        except Exception as e:
            self._transition(error=ErrorInfo.capture(e, Phase.CONNECTED))
            self._emit(f"Connection failed: {e}", Severity.ERROR)
            raise

        self._transition(phase=Phase.CONNECTED, account=account)
        self._emit("Wallet connected. Ready to configure.", Severity.SUCCESS)
        return account

    def _pre_approval_changes(self, state: OrchestrationState) -> dict:
        """Stable state to fall back to when an approval attempt fails."""
        if state.phase is Phase.CONNECTED:
            return {"phase": Phase.CONNECTED, "token_address": None, "batch": None, "receipt": None}
        # READY, or an earlier approval that must not be reused
        return {"phase": Phase.READY, "token_address": state.token_address, "batch": None, "receipt": None}

    async def approve(self, token_address: str) -> BatchRequest:
        """
        Grant the batch contract the allowance the current input needs.

        Builds a fresh BatchRequest from the current recipients, the token's
        precision and the contract fee, then approves
        ``total + fee`` and waits for confirmation. On any failure the
        previous approval is dropped and the state falls back to READY (or
        CONNECTED if no token had been chosen).
        """
        state = self._state
        if state.in_flight:
            self._reject(OperationInProgress("An approval or payment is already in progress"))
        if not can_approve(state):
            self._reject(WalletUnavailable("Connect a wallet first"))

        fallback = self._pre_approval_changes(state)
        records = list(self._records)

        if not is_valid_token_address(token_address):
            error = InvalidTokenAddress(f"Invalid token address '{token_address}'")
        elif not records:
            error = NoValidRecipients("No valid recipients")
        else:
            error = None
        if error is not None:
            self._transition(**fallback, error=ErrorInfo.capture(error, Phase.APPROVING))
            self._reject(error)

        token = to_checksum_address(token_address.strip())
        self._transition(phase=Phase.READY, token_address=token, batch=None, receipt=None, error=None)
        self._transition(phase=Phase.APPROVING)
        owner = state.account
        spender = self.batch_client.address

        try:
            self._emit("Checking token...")
            token_client = self.token_client_factory(token)
            precision = await token_client.precision()
            fee = await self.batch_client.fee()
            batch = build_batch_request(token, records, precision, fee)
            logger.debug(f"Batch request: {batch.describe()}")

            required = from_base_units(batch.required_allowance, precision)
            current = None
            if self.skip_if_allowance_sufficient:
                current = await token_client.allowance(owner, spender)

            if current is not None and current >= batch.required_allowance:
                self._emit(f"Existing allowance covers {required} tokens, no approval needed")
            else:
                self._emit(f"Approving {required} tokens...")
                pending = await token_client.approve(spender, batch.required_allowance)
                self._emit("Approving... waiting for confirmation")
                await pending.await_confirmation()
        except Exception as e:
            self._transition(
                phase=Phase.READY,
                token_address=token,
                batch=None,
                error=ErrorInfo.capture(e, Phase.APPROVING),
            )
            self._emit(f"Approval failed: {e}", Severity.ERROR)
            raise

        self._transition(phase=Phase.APPROVED, batch=batch)
        self._emit("Approved! You can now batch pay.", Severity.SUCCESS)
        return batch

    async def pay(self) -> Receipt:
        """
        Submit the approved batch exactly as it was approved.

        The current recipient input is not consulted. On failure the state
        returns to APPROVED with the same batch so the payment can be
        retried without a new approval.
        """
        state = self._state
        if state.in_flight:
            self._reject(OperationInProgress("An approval or payment is already in progress"))
        if not can_pay(state):
            self._reject(NotApproved("Please approve first"))

        batch = state.batch
        self._transition(phase=Phase.PAYING, error=None)

        try:
            self._emit("Sending transaction...")
            pending = await self.batch_client.batch_transfer(
                batch.token_address, batch.addresses, batch.amounts
            )
            self._emit(f"Transaction sent: {pending.tx_hash}. Waiting...")
            receipt = await pending.await_confirmation()
        except Exception as e:
            self._transition(phase=Phase.APPROVED, batch=batch, error=ErrorInfo.capture(e, Phase.PAYING))
            self._emit(f"Payment failed: {e}", Severity.ERROR)
            raise

        self._transition(phase=Phase.COMPLETED, receipt=receipt)
        self._emit(f"Batch payment successful: {batch.describe()}", Severity.SUCCESS)
        return receipt

    async def estimate(self, token_address: str) -> AllowanceEstimate:
        """Read what approve() would need, without submitting anything."""
        state = self._state
        if state.phase is Phase.DISCONNECTED:
            self._reject(WalletUnavailable("Connect a wallet first"))
        if not is_valid_token_address(token_address):
            self._reject(InvalidTokenAddress(f"Invalid token address '{token_address}'"))
        records = list(self._records)
        if not records:
            self._reject(NoValidRecipients("No valid recipients"))

        token = to_checksum_address(token_address.strip())
        token_client = self.token_client_factory(token)
        try:
            precision = await token_client.precision()
            fee = await self.batch_client.fee()
            batch = build_batch_request(token, records, precision, fee)
            current = await token_client.allowance(state.account, self.batch_client.address)
            balance = await token_client.balance_of(state.account)
        except Exception as e:
            self._emit(f"Estimate failed: {e}", Severity.ERROR)
            raise

        return AllowanceEstimate(
            token_address=token,
            precision=precision,
            recipient_count=len(batch.recipients),
            total_base_units=batch.total_base_units,
            fee_base_units=batch.fee_base_units,
            required_allowance=batch.required_allowance,
            current_allowance=current,
            balance=balance,
        )
