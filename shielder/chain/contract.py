"""
Shielder contract reader interface and on-chain event model.

The client only needs four queries to replay an account:
- which block spent a given nullifier hash
- the shielder events of a block
- the Merkle authentication path of a note
- the note stored at a Merkle index
"""

from dataclasses import dataclass
from typing import List, Optional, Protocol

from shielder.core.state.merkle import MerklePath
from shielder.core.state.types import (
    ShielderTransaction,
    Token,
    TransactionType,
    WithdrawDetails,
)
from shielder.errors import ShielderError


@dataclass(frozen=True)
class ShielderEvent:
    """
    A shielder contract event.

    Attributes:
        nullifier_hash: Hash spent by the transition (the prenullifier hash
            for NewAccount)
        new_note: Note created by the transition
        new_note_index: Merkle index of `new_note`
    """
    type: TransactionType
    token: Token
    amount: int
    nullifier_hash: int
    new_note: int
    new_note_index: int
    tx_hash: str
    block: int
    protocol_fee: int = 0
    memo: bytes = b""
    to: Optional[str] = None
    relayer_fee: Optional[int] = None
    pocket_money: Optional[int] = None

    def to_transaction(self) -> ShielderTransaction:
        withdraw = None
        if self.type is TransactionType.WITHDRAW:
            withdraw = WithdrawDetails(
                to=self.to or "",
                relayer_fee=self.relayer_fee or 0,
                pocket_money=self.pocket_money or 0,
            )
        return ShielderTransaction(
            type=self.type,
            amount=self.amount,
            tx_hash=self.tx_hash,
            block=self.block,
            token=self.token,
            new_note=self.new_note,
            protocol_fee=self.protocol_fee,
            memo=self.memo,
            withdraw=withdraw,
        )


class ShielderContract(Protocol):
    async def nullifier_block(self, nullifier_hash: int) -> Optional[int]:
        """Block in which `nullifier_hash` was spent, or None."""
        ...

    async def get_events(self, block: int) -> List[ShielderEvent]:
        ...

    async def get_merkle_path(self, index: int) -> MerklePath:
        ...

    async def get_note(self, index: int) -> Optional[int]:
        ...


class ContractVersionRejected(ShielderError):
    """The contract does not accept the client's expected version."""
