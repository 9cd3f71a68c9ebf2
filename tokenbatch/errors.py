"""Error taxonomy for batch payments."""

from __future__ import annotations

from typing import Optional


class BatchPaymentError(Exception):
    """Base class for every failure surfaced by tokenbatch."""

    kind = "batch_payment_error"


class InvalidAmount(BatchPaymentError, ValueError):
    """An amount is not a plain decimal or exceeds the token's precision."""

    kind = "invalid_amount"


class InvalidTokenAddress(BatchPaymentError, ValueError):
    """The token address is not a valid EVM address."""

    kind = "invalid_token_address"


class NoValidRecipients(BatchPaymentError):
    """The recipient input has no usable rows."""

    kind = "no_valid_recipients"


class WalletUnavailable(BatchPaymentError):
    """No wallet could be connected or the wallet is not connected yet."""

    kind = "wallet_unavailable"


class ConnectionRejected(BatchPaymentError):
    """The wallet owner declined the connection request."""

    kind = "connection_rejected"


class TransactionFailed(BatchPaymentError):
    """An on-chain submission was rejected, reverted or could not be sent."""

    kind = "transaction_failed"

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class NotApproved(BatchPaymentError):
    """Payment was requested without an approved batch."""

    kind = "not_approved"


class OperationInProgress(BatchPaymentError):
    """Another approve or pay call has not finished yet."""

    kind = "operation_in_progress"
