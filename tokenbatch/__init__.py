"""
tokenbatch — Batch ERC-20 payments through an on-chain batch payment contract.

Grants the batch contract an allowance covering every transfer plus the
contract's protocol fee, then pays all recipients in a single
batchTransfer call.
"""

__version__ = "0.1.0"
__author__ = "tokenbatch contributors"
