"""
Transition builder: new account, deposit and withdraw actions.
"""

from shielder.core.actions.base import ShielderAction
from shielder.core.actions.calldata import (
    DepositCalldata,
    NewAccountCalldata,
    ProofCalldata,
    WithdrawCalldata,
    deposit_commitment,
    withdraw_commitment,
)
from shielder.core.actions.deposit import DepositAction
from shielder.core.actions.new_account import NewAccountAction
from shielder.core.actions.withdraw import WithdrawAction

__all__ = [
    "ShielderAction",
    "NewAccountAction",
    "DepositAction",
    "WithdrawAction",
    "ProofCalldata",
    "NewAccountCalldata",
    "DepositCalldata",
    "WithdrawCalldata",
    "deposit_commitment",
    "withdraw_commitment",
]
