"""
Withdraw action: unshield through a relayer.

The relayer pays gas and takes a quoted fee out of the withdrawn amount.
For non-native tokens it can also front a little native "pocket money" to
the recipient. The fee quote, relayer, recipient and pocket money are
bound to the proof through the calldata commitment, so the relayer cannot
alter them.
"""

from typing import Optional

from shielder.chain.contract import ShielderContract
from shielder.chain.relayer import Relayer
from shielder.core.actions.base import ShielderAction
from shielder.core.actions.calldata import (
    ProofCalldata,
    WithdrawCalldata,
    withdraw_commitment,
)
from shielder.core.config import NOTE_VERSION
from shielder.core.prover.circuits import CircuitType, WithdrawWitness
from shielder.core.prover.prover import CryptoClient
from shielder.core.state.types import AccountState
from shielder.crypto import random_scalar
from shielder.errors import AmountBelowFeesError, PocketMoneyNotSupportedError
from shielder.utils.logger import get_logger

logger = get_logger("actions")


class WithdrawAction(ShielderAction):
    circuit_type = CircuitType.WITHDRAW

    def __init__(
        self,
        contract: ShielderContract,
        crypto: CryptoClient,
        chain_id: int,
        relayer: Relayer,
        **kwargs,
    ):
        super().__init__(contract, crypto, chain_id, **kwargs)
        self.relayer = relayer

    def raw_withdraw(self, state: AccountState, amount: int) -> AccountState:
        return self._raw_transition(state, -amount)

    async def generate_calldata(
        self,
        state: AccountState,
        amount: int,
        relayer_address: str,
        quoted_fee: int,
        recipient: str,
        expected_contract_version: str,
        pocket_money: int = 0,
        protocol_fee: int = 0,
        memo: bytes = b"",
    ) -> WithdrawCalldata:
        """
        Build and prove an unsent withdrawal.

        Raises:
            ValueError: Negative pocket money
            PocketMoneyNotSupportedError: Pocket money on a native withdrawal
            AmountBelowFeesError: amount <= quoted_fee + protocol_fee
            InsufficientFundsError: amount exceeds the balance
            ProofGenerationError / ProofVerificationError
        """
        if pocket_money < 0:
            raise ValueError(f"Pocket money must be non-negative, got {pocket_money}")
        if state.token.is_native and pocket_money != 0:
            raise PocketMoneyNotSupportedError()
        if amount <= quoted_fee + protocol_fee:
            raise AmountBelowFeesError(amount, quoted_fee, protocol_fee)

        self.raw_withdraw(state, amount)

        if not state.is_indexed:
            raise ValueError(f"{state.token} account has no on-chain note yet, sync first")
        path = await self.contract.get_merkle_path(state.current_note_index)

        secrets = self.crypto.secrets
        witness = WithdrawWitness(
            version=NOTE_VERSION,
            id=state.id,
            nullifier_old=secrets.nullifier(state.id, state.nonce - 1),
            balance_old=state.balance,
            token=state.token.scalar,
            path=path,
            amount=amount,
            nullifier_new=secrets.nullifier(state.id, state.nonce),
            mac_salt=random_scalar(),
            commitment=withdraw_commitment(
                self.chain_id,
                expected_contract_version,
                recipient,
                relayer_address,
                quoted_fee,
                pocket_money,
                protocol_fee,
                memo,
            ),
        )
        result = await self._prove_and_verify(witness)

        return WithdrawCalldata(
            calldata=ProofCalldata(proof=result.proof, public_inputs=result.public_inputs),
            token=state.token,
            amount=amount,
            recipient=recipient,
            relayer_address=relayer_address,
            quoted_fee=quoted_fee,
            expected_contract_version=expected_contract_version,
            pocket_money=pocket_money,
            protocol_fee=protocol_fee,
            memo=memo,
        )

    async def send_calldata_with_relayer(self, calldata: WithdrawCalldata) -> str:
        public_inputs = calldata.calldata.public_inputs

        async def send() -> str:
            response = await self.relayer.withdraw(
                expected_version=calldata.expected_contract_version,
                token=calldata.token,
                old_nullifier_hash=public_inputs["h_nullifier_old"],
                new_note=public_inputs["h_note_new"],
                merkle_root=public_inputs["merkle_root"],
                amount=calldata.amount,
                proof=calldata.calldata.proof,
                withdraw_address=calldata.recipient,
                mac_salt=public_inputs["mac_salt"],
                mac_commitment=public_inputs["mac_commitment"],
                pocket_money=calldata.pocket_money,
                quoted_fee=calldata.quoted_fee,
                memo=calldata.memo,
            )
            return response.tx_hash

        return await self._submit(send, calldata.expected_contract_version)

    async def withdraw(
        self,
        state: AccountState,
        amount: int,
        recipient: str,
        pocket_money: int = 0,
        protocol_fee: int = 0,
        memo: bytes = b"",
        expected_contract_version: Optional[str] = None,
    ) -> str:
        """Quote fees with the relayer, build the calldata and submit it."""
        quote = await self.relayer.quote_fees(state.token, pocket_money)
        relayer_address = await self.relayer.address()
        logger.info(f"Relayer quoted {quote.total_fee} for {state.token} withdrawal")

        calldata = await self.generate_calldata(
            state,
            amount,
            relayer_address,
            quote.total_fee,
            recipient,
            expected_contract_version or self.contract_version,
            pocket_money,
            protocol_fee,
            memo,
        )
        return await self.send_calldata_with_relayer(calldata)
