"""
Shared shape of all transition builders.

Every action:
1. validates its inputs (before any network or proving call)
2. derives the next state with a pure raw transition
3. assembles a witness and requests a proof
4. self-verifies the proof before returning
5. packages unsent calldata

Actions are not locked: building two transitions from the same state
consumes the same nonce and nullifier, and only one can land on-chain.
"""

from typing import Awaitable, Callable

from shielder.chain.contract import ContractVersionRejected, ShielderContract
from shielder.core.config import CONTRACT_VERSION, NOTE_VERSION
from shielder.core.prover.circuits import CircuitType, MAX_BALANCE, Witness
from shielder.core.prover.prover import CryptoClient, ProofResult
from shielder.core.state.types import AccountState, advance
from shielder.crypto import note_hash
from shielder.errors import (
    InsufficientFundsError,
    OutdatedContractVersionError,
    ProofGenerationError,
    ProofVerificationError,
    SubmissionError,
)
from shielder.utils.logger import get_logger

logger = get_logger("actions")


class ShielderAction:
    """Base transition builder."""

    circuit_type: CircuitType

    def __init__(
        self,
        contract: ShielderContract,
        crypto: CryptoClient,
        chain_id: int,
        contract_version: str = CONTRACT_VERSION,
    ):
        self.contract = contract
        self.crypto = crypto
        self.chain_id = chain_id
        self.contract_version = contract_version

    def _raw_transition(self, state: AccountState, balance_change: int) -> AccountState:
        """
        Pure next-state derivation.

        The new note embeds nullifier(id, nonce), which is spent by the
        transition after this one.
        """
        new_balance = state.balance + balance_change
        if new_balance < 0:
            raise InsufficientFundsError(state.balance, -balance_change)
        if new_balance > MAX_BALANCE:
            raise ValueError(f"Balance {new_balance} exceeds maximum")

        nullifier = self.crypto.secrets.nullifier(state.id, state.nonce)
        note = note_hash(NOTE_VERSION, state.id, nullifier, new_balance)
        return advance(state, new_balance, note)

    async def _prove_and_verify(self, witness: Witness) -> ProofResult:
        name = self.circuit_type.value
        try:
            result = await self.crypto.prover.prove(self.circuit_type, witness)
        except ProofGenerationError:
            raise
        except Exception as e:
            raise ProofGenerationError(f"Failed to prove {name}: {e}") from e

        valid = await self.crypto.prover.verify(
            self.circuit_type, result.proof, result.public_inputs
        )
        if not valid:
            raise ProofVerificationError(f"{name} proof failed self-verification")

        logger.debug(f"{name} proof generated and self-verified")
        return result

    async def _submit(
        self,
        send: Callable[[], Awaitable[str]],
        expected_contract_version: str,
    ) -> str:
        """
        Run a submission, mapping failures.

        Version rejections become OutdatedContractVersionError (unwrapped);
        everything else becomes SubmissionError with the cause kept.
        """
        name = self.circuit_type.value
        try:
            tx_hash = await send()
        except OutdatedContractVersionError:
            raise
        except ContractVersionRejected as e:
            raise OutdatedContractVersionError(expected_contract_version, str(e)) from e
        except Exception as e:
            raise SubmissionError(f"Failed to submit {name}", cause=e) from e

        logger.info(f"{name} submitted: {tx_hash}")
        return tx_hash
