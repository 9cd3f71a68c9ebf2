"""
On-chain collaborators used by the payment orchestrator.

The orchestrator only sees the Protocol classes below. The Web3*
implementations talk to an EVM node through web3.py's AsyncWeb3 and sign
locally with an eth_account key. Gas and fee fields are left to the node.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Sequence

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address
from loguru import logger
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from .config import DEFAULT_RECEIPT_TIMEOUT
from .errors import ConnectionRejected, TransactionFailed, WalletUnavailable


ERC20_ABI = [
    {"inputs": [], "name": "decimals", "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"internalType": "address", "name": "spender", "type": "address"}, {"internalType": "uint256", "name": "amount", "type": "uint256"}], "name": "approve", "outputs": [{"internalType": "bool", "name": "", "type": "bool"}], "stateMutability": "nonpayable", "type": "function"},
    {"inputs": [{"internalType": "address", "name": "owner", "type": "address"}, {"internalType": "address", "name": "spender", "type": "address"}], "name": "allowance", "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"internalType": "address", "name": "account", "type": "address"}], "name": "balanceOf", "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
]

BATCH_PAYMENT_ABI = [
    {"inputs": [{"internalType": "address", "name": "tokenAddress", "type": "address"}, {"internalType": "address[]", "name": "recipients", "type": "address[]"}, {"internalType": "uint256[]", "name": "amounts", "type": "uint256[]"}], "name": "batchTransfer", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
    {"inputs": [], "name": "fee", "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
]

# Errors a node or contract call can raise
_CALL_ERRORS = (Web3Exception, ValueError, OSError)


# ── Collaborator interfaces ─────────────────────────────────────


@dataclass(frozen=True)
class Receipt:
    """Confirmed transaction."""

    tx_hash: str
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    status: int = 1


class PendingTx(Protocol):
    tx_hash: str

    async def await_confirmation(self) -> Receipt: ...


class WalletConnector(Protocol):
    async def request_connection(self) -> str: ...


class TokenClient(Protocol):
    async def precision(self) -> int: ...

    async def allowance(self, owner: str, spender: str) -> int: ...

    async def balance_of(self, owner: str) -> int: ...

    async def approve(self, spender: str, amount_base_units: int) -> PendingTx: ...


class BatchPaymentClient(Protocol):
    address: str

    async def fee(self) -> int: ...

    async def batch_transfer(
        self,
        token_address: str,
        recipients: Sequence[str],
        amounts_base_units: Sequence[int],
    ) -> PendingTx: ...


# ── web3 implementations ────────────────────────────────────────


def build_web3(rpc_url: str) -> AsyncWeb3:
    """Create an AsyncWeb3 instance for an HTTP JSON-RPC endpoint."""
    return AsyncWeb3(AsyncHTTPProvider(rpc_url))


class LocalAccountConnector:
    """
    Wallet backed by a local private key.

    ``confirm`` is called with the account address before the connection is
    accepted; returning False rejects the connection.
    """

    def __init__(
        self,
        web3: AsyncWeb3,
        private_key: Optional[str],
        confirm: Optional[Callable[[str], bool]] = None,
    ):
        self.web3 = web3
        self._private_key = private_key
        self._confirm = confirm
        self.account: Optional[LocalAccount] = None

    async def request_connection(self) -> str:
        if not self._private_key:
            raise WalletUnavailable("No private key configured")

        try:
            account = Account.from_key(self._private_key)
        except ValueError as e:
            raise WalletUnavailable(f"Private key is not usable: {e}") from e

        try:
            connected = await self.web3.is_connected()
        except _CALL_ERRORS as e:
            raise WalletUnavailable(f"RPC node unreachable: {e}") from e
        if not connected:
            raise WalletUnavailable("RPC node unreachable")

        if self._confirm is not None and not self._confirm(account.address):
            raise ConnectionRejected(f"Connection to {account.address} declined")

        self.account = account
        logger.debug(f"Local account connected: {account.address}")
        return account.address


class Web3PendingTx:
    """Submitted transaction waiting for its receipt."""

    def __init__(self, web3: AsyncWeb3, tx_hash: str, timeout: float = DEFAULT_RECEIPT_TIMEOUT):
        self.web3 = web3
        self.tx_hash = tx_hash
        self.timeout = timeout

    async def await_confirmation(self) -> Receipt:
        try:
            receipt = await self.web3.eth.wait_for_transaction_receipt(
                self.tx_hash, timeout=self.timeout
            )
        except TimeExhausted as e:
            raise TransactionFailed(
                f"Transaction {self.tx_hash} not confirmed after {self.timeout}s",
                tx_hash=self.tx_hash,
            ) from e
        except _CALL_ERRORS as e:
            raise TransactionFailed(str(e), tx_hash=self.tx_hash) from e

        if receipt["status"] != 1:
            raise TransactionFailed(
                f"Transaction {self.tx_hash} reverted", tx_hash=self.tx_hash
            )

        logger.debug(f"Receipt for {self.tx_hash}: block {receipt['blockNumber']}")
        return Receipt(
            tx_hash=self.tx_hash,
            block_number=receipt["blockNumber"],
            gas_used=receipt["gasUsed"],
            status=receipt["status"],
        )


class _SigningClient:
    """Contract client that signs with the connected local account."""

    def __init__(
        self,
        web3: AsyncWeb3,
        address: str,
        abi: list[dict[str, Any]],
        wallet: LocalAccountConnector,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ):
        self.web3 = web3
        self.address = to_checksum_address(address)
        self.wallet = wallet
        self.receipt_timeout = receipt_timeout
        self.contract = web3.eth.contract(address=self.address, abi=abi)

    async def _submit(self, function: Any, description: str) -> Web3PendingTx:
        account = self.wallet.account
        if account is None:
            raise WalletUnavailable("Wallet is not connected")

        try:
            nonce = await self.web3.eth.get_transaction_count(account.address, "pending")
            tx = await function.build_transaction({
                "from": account.address,
                "nonce": nonce,
            })
            signed = account.sign_transaction(tx)
            tx_hash = await self.web3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as e:
            raise TransactionFailed(f"{description} would revert: {e}") from e
        except _CALL_ERRORS as e:
            raise TransactionFailed(f"{description} could not be sent: {e}") from e

        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"{description} submitted: {tx_hash_hex}")
        return Web3PendingTx(self.web3, tx_hash_hex, timeout=self.receipt_timeout)


class Web3TokenClient(_SigningClient):
    """ERC-20 token the batch is paid in."""

    def __init__(
        self,
        web3: AsyncWeb3,
        token_address: str,
        wallet: LocalAccountConnector,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ):
        super().__init__(web3, token_address, ERC20_ABI, wallet, receipt_timeout)

    async def precision(self) -> int:
        try:
            return int(await self.contract.functions.decimals().call())
        except _CALL_ERRORS as e:
            raise TransactionFailed(f"Could not read decimals() of {self.address}: {e}") from e

    async def allowance(self, owner: str, spender: str) -> int:
        try:
            return int(await self.contract.functions.allowance(
                to_checksum_address(owner), to_checksum_address(spender)
            ).call())
        except _CALL_ERRORS as e:
            raise TransactionFailed(f"Could not read allowance of {self.address}: {e}") from e

    async def balance_of(self, owner: str) -> int:
        try:
            return int(await self.contract.functions.balanceOf(
                to_checksum_address(owner)
            ).call())
        except _CALL_ERRORS as e:
            raise TransactionFailed(f"Could not read balance of {self.address}: {e}") from e

    async def approve(self, spender: str, amount_base_units: int) -> Web3PendingTx:
        function = self.contract.functions.approve(to_checksum_address(spender), amount_base_units)
        return await self._submit(function, f"approve({spender}, {amount_base_units})")


class Web3BatchPaymentClient(_SigningClient):
    """Batch payment contract: charges fee() and runs batchTransfer."""

    def __init__(
        self,
        web3: AsyncWeb3,
        contract_address: str,
        wallet: LocalAccountConnector,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ):
        super().__init__(web3, contract_address, BATCH_PAYMENT_ABI, wallet, receipt_timeout)

    async def fee(self) -> int:
        try:
            return int(await self.contract.functions.fee().call())
        except _CALL_ERRORS as e:
            raise TransactionFailed(f"Could not read fee() of {self.address}: {e}") from e

    async def batch_transfer(
        self,
        token_address: str,
        recipients: Sequence[str],
        amounts_base_units: Sequence[int],
    ) -> Web3PendingTx:
        function = self.contract.functions.batchTransfer(
            to_checksum_address(token_address),
            [to_checksum_address(r) for r in recipients],
            list(amounts_base_units),
        )
        return await self._submit(function, f"batchTransfer of {len(recipients)} recipients")
