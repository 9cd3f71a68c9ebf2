"""
Configuration for tokenbatch.

Protocol defaults live in module constants. Deployment-specific values are
read from the environment (the CLI loads a ``.env`` file first), and
command-line flags override both.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


# Batch payment contract: batchTransfer(token, recipients[], amounts[]) + fee()
BATCH_PAYMENT_ADDRESS = "0xc1AD5414f3dE089F47A00736Bf5990cAC7aC05e5"

DEFAULT_RPC_URL = "http://127.0.0.1:8545"

# Seconds to wait for a receipt before the client gives up on a transaction
DEFAULT_RECEIPT_TIMEOUT = 300.0

# Status events are printed by the CLI; the log sink only adds warnings and errors
DEFAULT_LOG_LEVEL = "WARNING"

ENV_PREFIX = "TOKENBATCH_"


@dataclass
class Settings:
    rpc_url: str = DEFAULT_RPC_URL
    private_key: Optional[str] = None
    contract_address: str = BATCH_PAYMENT_ADDRESS
    receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ``TOKENBATCH_*`` environment variables."""
        env = os.environ if environ is None else environ

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name, "").strip()
            return value or None

        timeout = get("RECEIPT_TIMEOUT")
        try:
            receipt_timeout = float(timeout) if timeout else DEFAULT_RECEIPT_TIMEOUT
        except ValueError:
            raise ValueError(f"{ENV_PREFIX}RECEIPT_TIMEOUT must be a number, got '{timeout}'")

        return cls(
            rpc_url=get("RPC_URL") or DEFAULT_RPC_URL,
            private_key=get("PRIVATE_KEY"),
            contract_address=get("CONTRACT") or BATCH_PAYMENT_ADDRESS,
            receipt_timeout=receipt_timeout,
            log_level=(get("LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        )
