"""
Proving capability for shielder transitions.

Callers depend only on the `Prover` interface:

    prove(circuit_type, witness) -> ProofResult(proof, public_inputs)
    verify(circuit_type, proof, public_inputs) -> bool

It is satisfied by:
1. MockProver - local simulated circuit (relation checked, keyed proof tag)
2. TeeProver  - remote proving in a TEE (see shielder.core.prover.tee)

MockProver proofs are HMAC-SHA256 tags over the circuit type and the
canonical public inputs, expanded to a fixed proof size. Verification
recomputes the tag, so flipping any proof byte deterministically fails.
"""

import asyncio
import hmac
import secrets
import time
from dataclasses import dataclass
from typing import Optional, Protocol

from Crypto.Hash import HMAC, SHA256

from shielder.core.prover.circuits import (
    CircuitType,
    PublicInputs,
    RelationError,
    Witness,
    encode_public_inputs,
    evaluate_relation,
)
from shielder.crypto import SecretManager
from shielder.errors import ProofGenerationError
from shielder.utils.logger import get_logger

logger = get_logger("prover")

MOCK_PROOF_SIZE = 256


@dataclass(frozen=True)
class ProofResult:
    """A proof together with the public inputs it attests to."""
    proof: bytes
    public_inputs: PublicInputs


class Prover(Protocol):
    async def prove(self, circuit_type: CircuitType, witness: Witness) -> ProofResult:
        ...

    async def verify(
        self,
        circuit_type: CircuitType,
        proof: bytes,
        public_inputs: PublicInputs,
    ) -> bool:
        ...


@dataclass
class CryptoClient:
    """
    Capabilities a transition builder needs: proving and secret derivation.

    Hashing is deterministic and lives in shielder.crypto.
    """
    prover: Prover
    secrets: SecretManager


# =============================================================================
# Mock Prover (Simulated ZK)
# =============================================================================


class MockProver:
    """
    Simulated ZK prover for development and testing.

    Checks the circuit relation like a real prover would, then produces a
    tag bound to the public inputs. Provers sharing `key` verify each
    other's proofs.
    """

    def __init__(
        self,
        key: Optional[bytes] = None,
        proving_delay_ms: int = 0,
    ):
        """
        Initialize mock prover.

        Args:
            key: Shared proving/verification key (random if not provided)
            proving_delay_ms: Simulated proving time in milliseconds
        """
        self.key = key if key is not None else secrets.token_bytes(32)
        self.proving_delay_ms = proving_delay_ms
        self.proofs_generated = 0

    def _tag(self, circuit_type: CircuitType, values: PublicInputs) -> bytes:
        message = circuit_type.value.encode() + b"|" + encode_public_inputs(values)
        blocks = []
        for counter in range(MOCK_PROOF_SIZE // 32):
            mac = HMAC.new(self.key, digestmod=SHA256)
            mac.update(counter.to_bytes(4, "big") + message)
            blocks.append(mac.digest())
        return b"".join(blocks)

    async def prove(self, circuit_type: CircuitType, witness: Witness) -> ProofResult:
        """
        Generate a proof for `witness`.

        Raises:
            ProofGenerationError: If the witness does not satisfy the relation
        """
        start_time = time.time()

        try:
            values = evaluate_relation(circuit_type, witness)
        except RelationError as e:
            raise ProofGenerationError(f"{circuit_type.value} witness rejected: {e}") from e

        if self.proving_delay_ms:
            await asyncio.sleep(self.proving_delay_ms / 1000)

        proof = self._tag(circuit_type, values)
        self.proofs_generated += 1

        proving_time_ms = int((time.time() - start_time) * 1000)
        logger.info(f"Mock {circuit_type.value} proof generated in {proving_time_ms}ms")

        return ProofResult(proof=proof, public_inputs=values)

    async def verify(
        self,
        circuit_type: CircuitType,
        proof: bytes,
        public_inputs: PublicInputs,
    ) -> bool:
        if len(proof) != MOCK_PROOF_SIZE:
            return False
        return hmac.compare_digest(self._tag(circuit_type, public_inputs), proof)
