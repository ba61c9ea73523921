"""Shielded account state, Merkle tree and account registry"""
from shielder.core.state.types import (
    Token,
    native_token,
    erc20_token,
    AccountState,
    AccountStateMerkleIndexed,
    AnyAccountState,
    TransactionType,
    WithdrawDetails,
    ShielderTransaction,
    empty_account_state,
    with_index,
    advance,
)
from shielder.core.state.merkle import MerkleTree, MerklePath
from shielder.core.state.registry import AccountRegistry

__all__ = [
    "Token",
    "native_token",
    "erc20_token",
    "AccountState",
    "AccountStateMerkleIndexed",
    "AnyAccountState",
    "TransactionType",
    "WithdrawDetails",
    "ShielderTransaction",
    "empty_account_state",
    "with_index",
    "advance",
    "MerkleTree",
    "MerklePath",
    "AccountRegistry",
]
