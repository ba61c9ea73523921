"""
Deposit action: shield more of a token into an existing account.
"""

from typing import Any, Awaitable, Callable

from shielder.core.actions.base import ShielderAction
from shielder.core.actions.calldata import (
    DepositCalldata,
    ProofCalldata,
    deposit_commitment,
)
from shielder.core.config import NOTE_VERSION
from shielder.core.prover.circuits import CircuitType, DepositWitness
from shielder.core.state.types import AccountState
from shielder.crypto import random_scalar
from shielder.errors import AmountBelowFeesError


class DepositAction(ShielderAction):
    circuit_type = CircuitType.DEPOSIT

    def raw_deposit(self, state: AccountState, amount: int) -> AccountState:
        return self._raw_transition(state, amount)

    async def generate_calldata(
        self,
        state: AccountState,
        amount: int,
        caller_address: str,
        expected_contract_version: str,
        protocol_fee: int = 0,
        memo: bytes = b"",
    ) -> DepositCalldata:
        if amount < protocol_fee:
            raise AmountBelowFeesError(amount, 0, protocol_fee)
        if not state.is_indexed:
            raise ValueError(f"{state.token} account has no on-chain note yet, sync first")

        self.raw_deposit(state, amount)

        path = await self.contract.get_merkle_path(state.current_note_index)
        secrets = self.crypto.secrets
        witness = DepositWitness(
            version=NOTE_VERSION,
            id=state.id,
            nullifier_old=secrets.nullifier(state.id, state.nonce - 1),
            balance_old=state.balance,
            token=state.token.scalar,
            path=path,
            amount=amount,
            nullifier_new=secrets.nullifier(state.id, state.nonce),
            mac_salt=random_scalar(),
            commitment=deposit_commitment(
                self.chain_id, expected_contract_version, caller_address, protocol_fee, memo
            ),
        )
        result = await self._prove_and_verify(witness)

        return DepositCalldata(
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
        calldata: DepositCalldata,
        send_transaction: Callable[[DepositCalldata], Awaitable[str]],
    ) -> str:
        return await self._submit(
            lambda: send_transaction(calldata), calldata.expected_contract_version
        )

    async def deposit(
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
