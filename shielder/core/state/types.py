"""
Account State Model for the shielder client.

Conceptual Background:
---------------------
Per token, a user's shielded balance is a private hash chain of notes.
Each note commits to (version, account id, nullifier, balance). The ledger
stores only note hashes (as Merkle tree leaves) and the hashes of spent
nullifiers.

State Lifecycle:
---------------
1. Created empty (nonce 0, balance 0) the first time a token is registered
2. Each applied transition spends the current note and creates a new one
3. nonce advances by exactly one per transition, never skips or repeats
4. Once the new note is observed on-chain, its Merkle index is recorded

An AccountState without a Merkle index has not been seen on-chain yet.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from shielder.core.config import NATIVE_TOKEN_ADDRESS
from shielder.crypto import address_to_scalar, hex_to_scalar, scalar_to_hex


# =============================================================================
# Token
# =============================================================================


@dataclass(frozen=True)
class Token:
    """
    A supported asset. The native asset uses the zero address.

    Attributes:
        address: 0x-prefixed 20-byte contract address (lowercase)
    """
    address: str = NATIVE_TOKEN_ADDRESS

    def __post_init__(self):
        address = self.address.lower()
        if not address.startswith("0x") or len(address) != 42:
            raise ValueError(f"Invalid token address: {self.address}")
        int(address, 16)
        object.__setattr__(self, "address", address)

    @property
    def is_native(self) -> bool:
        return self.address == NATIVE_TOKEN_ADDRESS

    @property
    def scalar(self) -> int:
        return address_to_scalar(self.address)

    def __str__(self) -> str:
        return "native" if self.is_native else self.address


def native_token() -> Token:
    return Token(NATIVE_TOKEN_ADDRESS)


def erc20_token(address: str) -> Token:
    return Token(address)


# =============================================================================
# Account State
# =============================================================================


@dataclass(frozen=True)
class AccountState:
    """
    Local state of a shielded account for one token.

    Attributes:
        id: Account id, derived from the seed and the account index
        token: Account token
        nonce: Number of applied transitions
        balance: Shielded balance (smallest unit)
        current_note: Hash of the latest note (0 for an empty account)
    """
    id: int
    token: Token
    nonce: int
    balance: int
    current_note: int

    def __post_init__(self):
        if self.nonce < 0:
            raise ValueError(f"nonce must be non-negative, got {self.nonce}")
        if self.balance < 0:
            raise ValueError(f"balance must be non-negative, got {self.balance}")

    @property
    def is_indexed(self) -> bool:
        return False

    def to_dict(self) -> dict:
        return {
            "id": scalar_to_hex(self.id),
            "token": self.token.address,
            "nonce": self.nonce,
            "balance": str(self.balance),
            "current_note": scalar_to_hex(self.current_note),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


@dataclass(frozen=True)
class AccountStateMerkleIndexed(AccountState):
    """AccountState whose current note has been observed on-chain."""
    current_note_index: int = 0

    def __post_init__(self):
        super().__post_init__()
        if self.current_note_index < 0:
            raise ValueError(f"current_note_index must be non-negative, got {self.current_note_index}")

    @property
    def is_indexed(self) -> bool:
        return True

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["current_note_index"] = self.current_note_index
        return data


AnyAccountState = Union[AccountState, AccountStateMerkleIndexed]


def empty_account_state(account_id: int, token: Token) -> AccountState:
    return AccountState(id=account_id, token=token, nonce=0, balance=0, current_note=0)


def account_state_from_dict(data: dict) -> AnyAccountState:
    """Restore a persisted state. The Merkle index decides the state kind."""
    fields = dict(
        id=hex_to_scalar(data["id"]),
        token=Token(data["token"]),
        nonce=int(data["nonce"]),
        balance=int(data["balance"]),
        current_note=hex_to_scalar(data["current_note"]),
    )
    if data.get("current_note_index") is not None:
        return AccountStateMerkleIndexed(
            current_note_index=int(data["current_note_index"]), **fields
        )
    return AccountState(**fields)


def account_state_from_json(raw: str) -> AnyAccountState:
    return account_state_from_dict(json.loads(raw))


def with_index(state: AccountState, index: int) -> AccountStateMerkleIndexed:
    """Mark `state` as observed on-chain at Merkle leaf `index`."""
    return AccountStateMerkleIndexed(
        id=state.id,
        token=state.token,
        nonce=state.nonce,
        balance=state.balance,
        current_note=state.current_note,
        current_note_index=index,
    )


# =============================================================================
# Shielder Transactions
# =============================================================================


class TransactionType(Enum):
    NEW_ACCOUNT = "NewAccount"
    DEPOSIT = "Deposit"
    WITHDRAW = "Withdraw"


@dataclass(frozen=True)
class WithdrawDetails:
    """Fields only a withdrawal carries."""
    to: str
    relayer_fee: int
    pocket_money: int


@dataclass(frozen=True)
class ShielderTransaction:
    """
    Immutable record of an applied transition.

    `withdraw` is present iff `type` is WITHDRAW.
    """
    type: TransactionType
    amount: int
    tx_hash: str
    block: int
    token: Token
    new_note: int
    protocol_fee: int = 0
    memo: bytes = b""
    withdraw: Optional[WithdrawDetails] = field(default=None)

    def __post_init__(self):
        if (self.type is TransactionType.WITHDRAW) != (self.withdraw is not None):
            raise ValueError(f"{self.type.value} transaction withdraw details mismatch")

    @property
    def balance_delta(self) -> int:
        """Signed change to the account balance."""
        if self.type is TransactionType.WITHDRAW:
            return -self.amount
        return self.amount

    @property
    def to(self) -> Optional[str]:
        return self.withdraw.to if self.withdraw else None

    @property
    def relayer_fee(self) -> Optional[int]:
        return self.withdraw.relayer_fee if self.withdraw else None

    @property
    def pocket_money(self) -> Optional[int]:
        return self.withdraw.pocket_money if self.withdraw else None

    def __repr__(self) -> str:
        return (
            f"ShielderTransaction({self.type.value}, amount={self.amount}, "
            f"token={self.token}, block={self.block}, tx={self.tx_hash[:10]}...)"
        )


def advance(state: AccountState, balance: int, note: int) -> AccountState:
    """Next un-indexed state: nonce + 1 with the given balance and note."""
    return AccountState(
        id=state.id,
        token=state.token,
        nonce=state.nonce + 1,
        balance=balance,
        current_note=note,
    )
