"""
NewAccount action: shield the first amount of a token into a fresh account.
"""

from typing import Any, Awaitable, Callable

from shielder.core.actions.base import ShielderAction
from shielder.core.actions.calldata import (
    NewAccountCalldata,
    ProofCalldata,
    deposit_commitment,
)
from shielder.core.config import NOTE_VERSION
from shielder.core.prover.circuits import CircuitType, NewAccountWitness
from shielder.core.state.types import AccountState
from shielder.crypto import random_scalar
from shielder.errors import AmountBelowFeesError


class NewAccountAction(ShielderAction):
    circuit_type = CircuitType.NEW_ACCOUNT

    def raw_new_account(self, state: AccountState, amount: int) -> AccountState:
        if state.nonce != 0:
            raise ValueError(f"Account for {state.token} already exists (nonce {state.nonce})")
        return self._raw_transition(state, amount)

    async def generate_calldata(
        self,
        state: AccountState,
        amount: int,
        caller_address: str,
        expected_contract_version: str,
        protocol_fee: int = 0,
        memo: bytes = b"",
    ) -> NewAccountCalldata:
        if amount < protocol_fee:
            raise AmountBelowFeesError(amount, 0, protocol_fee)

        self.raw_new_account(state, amount)

        mac_salt = random_scalar()
        witness = NewAccountWitness(
            version=NOTE_VERSION,
            id=state.id,
            nullifier=self.crypto.secrets.nullifier(state.id, state.nonce),
            token=state.token.scalar,
            amount=amount,
            mac_salt=mac_salt,
            commitment=deposit_commitment(
                self.chain_id, expected_contract_version, caller_address, protocol_fee, memo
            ),
        )
        result = await self._prove_and_verify(witness)

        return NewAccountCalldata(
            calldata=ProofCalldata(proof=result.proof, public_inputs=result.public_inputs),
            token=state.token,
            amount=amount,
            caller_address=caller_address,
            expected_contract_version=expected_contract_version,
            protocol_fee=protocol_fee,
            memo=memo,
        )

    async def send_calldata(
        self,
        calldata: NewAccountCalldata,
        send_transaction: Callable[[NewAccountCalldata], Awaitable[str]],
    ) -> str:
        """Submit through the caller's wallet; returns the transaction hash."""
        return await self._submit(
            lambda: send_transaction(calldata), calldata.expected_contract_version
        )

    async def new_account(
        self,
        state: AccountState,
        amount: int,
        caller_address: str,
        send_transaction: Callable[[Any], Awaitable[str]],
        protocol_fee: int = 0,
        memo: bytes = b"",
    ) -> str:
        calldata = await self.generate_calldata(
            state, amount, caller_address, self.contract_version, protocol_fee, memo
        )
        return await self.send_calldata(calldata, send_transaction)
