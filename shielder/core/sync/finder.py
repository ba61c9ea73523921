"""
Chain Transition Finder - locate the next on-chain transition of an account.

Every transition spends exactly one marker on-chain:
- NewAccount spends the account's prenullifier hash
- Deposit and Withdraw spend nullifier_hash(nullifier(id, nonce - 1)),
  the nullifier embedded in the current note

So the next transition of a state is found by asking the contract which
block spent that marker and picking the event that spent it. All lookups
are pure chain queries, which makes the finder idempotent.
"""

from dataclasses import dataclass
from typing import List, Optional

from shielder.chain.contract import ShielderContract, ShielderEvent
from shielder.core.config import NOTE_VERSION
from shielder.core.state.types import (
    AccountState,
    AccountStateMerkleIndexed,
    ShielderTransaction,
    Token,
    TransactionType,
)
from shielder.crypto import SecretManager, note_hash, nullifier_hash, prenullifier_hash
from shielder.errors import AccountStateMismatch, ProtocolInvariantViolation
from shielder.utils.logger import get_logger

logger = get_logger("sync")


@dataclass(frozen=True)
class StateTransition:
    """A discovered transaction and the state it leads to."""
    transaction: ShielderTransaction
    new_state: AccountStateMerkleIndexed


def _spent_marker(secrets: SecretManager, state: AccountState) -> int:
    if state.nonce == 0:
        return prenullifier_hash(state.id)
    return nullifier_hash(secrets.nullifier(state.id, state.nonce - 1))


async def _spending_events(
    contract: ShielderContract, marker: int
) -> Optional[List[ShielderEvent]]:
    block = await contract.nullifier_block(marker)
    if block is None:
        return None
    events = [e for e in await contract.get_events(block) if e.nullifier_hash == marker]
    if not events:
        raise ProtocolInvariantViolation(
            f"Block {block} reports marker {hex(marker)} spent but has no matching event"
        )
    if len(events) > 1:
        raise ProtocolInvariantViolation(
            f"Marker {hex(marker)} spent by {len(events)} distinct events in block {block}"
        )
    return events


class ChainStateTransition:
    """Finds the at most one transition that follows a given state."""

    def __init__(self, contract: ShielderContract, secrets: SecretManager):
        self.contract = contract
        self.secrets = secrets

    async def find_state_transition(self, state: AccountState) -> Optional[StateTransition]:
        """
        Next transition of `state`, or None if nothing is on-chain yet.

        Raises:
            ProtocolInvariantViolation: Duplicate spend or an event that does
                not reproduce the expected note
        """
        events = await _spending_events(self.contract, _spent_marker(self.secrets, state))
        if events is None:
            return None
        event = events[0]

        expected_type = state.nonce == 0
        if (event.type is TransactionType.NEW_ACCOUNT) != expected_type:
            raise ProtocolInvariantViolation(
                f"Unexpected {event.type.value} event for {state.token} at nonce {state.nonce}"
            )
        if event.token != state.token:
            raise ProtocolInvariantViolation(
                f"Event token {event.token} does not match account token {state.token}"
            )

        transaction = event.to_transaction()
        new_balance = state.balance + transaction.balance_delta
        if new_balance < 0:
            raise ProtocolInvariantViolation(
                f"{event.type.value} of {event.amount} exceeds balance {state.balance}"
            )

        expected_note = note_hash(
            NOTE_VERSION,
            state.id,
            self.secrets.nullifier(state.id, state.nonce),
            new_balance,
        )
        if expected_note != event.new_note:
            raise ProtocolInvariantViolation(
                f"Note of {event.tx_hash} does not match the locally derived note"
            )

        new_state = AccountStateMerkleIndexed(
            id=state.id,
            token=state.token,
            nonce=state.nonce + 1,
            balance=new_balance,
            current_note=event.new_note,
            current_note_index=event.new_note_index,
        )
        logger.debug(f"Found {event.type.value} for {state.token} in block {event.block}")
        return StateTransition(transaction=transaction, new_state=new_state)


class AccountOnchain:
    """Checks persisted states against the chain."""

    def __init__(self, contract: ShielderContract):
        self.contract = contract

    async def validate_account_state(self, state: AccountState) -> None:
        """
        Raises:
            AccountStateMismatch: The chain does not hold the state's note
        """
        if not state.is_indexed:
            if state.nonce != 0:
                raise AccountStateMismatch(
                    f"{state.token} state at nonce {state.nonce} has no Merkle index"
                )
            return

        note = await self.contract.get_note(state.current_note_index)
        if note != state.current_note:
            raise AccountStateMismatch(
                f"{state.token} note at index {state.current_note_index} differs from local state"
            )


class TokenAccountFinder:
    """Discovers which token an account index was opened for."""

    def __init__(self, contract: ShielderContract, secrets: SecretManager):
        self.contract = contract
        self.secrets = secrets

    async def find_token_by_account_index(self, account_index: int) -> Optional[Token]:
        account_id = self.secrets.account_id(account_index)
        events = await _spending_events(self.contract, prenullifier_hash(account_id))
        if events is None:
            return None
        event = events[0]
        if event.type is not TransactionType.NEW_ACCOUNT:
            raise ProtocolInvariantViolation(
                f"Prenullifier of account index {account_index} spent by {event.type.value}"
            )
        return event.token
