"""
Confidential Prover - remote proving inside a TEE.

Protocol:
1. init: GET /public_key returns the service's session encryption key and
   attestation evidence. With attestation required, the evidence is checked
   against the trust criteria. The key is then cached for the session.
2. prove: a fresh single-use keypair is generated per call. The request
   {circuit_type, circuit_inputs, user_public_key} is encrypted to the
   service key and padded to the request bucket, then POSTed to /proof.
   The response is encrypted to the single-use key and padded to the
   response bucket.

Both directions have constant ciphertext length, so a network observer
learns neither the circuit type nor the witness size.
"""

import base64
import binascii
from typing import Any, Optional, Protocol, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shielder.core.config import DEFAULT_REQUEST_PADDED_LENGTH, DEFAULT_RESPONSE_PADDED_LENGTH
from shielder.core.prover.attestation import AttestationVerifier
from shielder.core.prover.circuits import CircuitType, PublicInputs, Witness, decode_public_inputs
from shielder.core.prover.prover import ProofResult, Prover
from shielder.crypto.ecies import decrypt_padded, encrypt_padded, generate_keypair, parse_public_key
from shielder.errors import (
    AttestationError,
    ConfidentialServiceProtocolError,
    ProofGenerationError,
)
from shielder.utils.logger import get_logger

logger = get_logger("tee")


class JsonTransport(Protocol):
    async def get_json(self, url: str) -> Any:
        ...

    async def post_json(self, url: str, body: dict) -> Any:
        ...


# =============================================================================
# Wire Models
# =============================================================================


class TeePublicKeyBody(BaseModel):
    public_key: str = Field(min_length=1)
    attestation_document: Optional[str] = None


class TeePublicKeyResponse(BaseModel):
    tee_public_key: TeePublicKeyBody = Field(alias="TeePublicKey")


class EncryptedPayload(BaseModel):
    payload: str = Field(min_length=1)


class EncryptedProofResponse(BaseModel):
    encrypted_proof: EncryptedPayload = Field(alias="EncryptedProof")


class ProofRequestPayload(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    circuit_type: CircuitType
    circuit_inputs: str
    user_public_key: str


class ProofResponsePayload(BaseModel):
    proof: str
    pub_inputs: str


def bytes_to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def base64_to_bytes(data: str) -> bytes:
    return base64.b64decode(data, validate=True)


# =============================================================================
# TEE Client
# =============================================================================


class TeeClient:
    """
    Client for the confidential proving service.

    Holds no shared state across prove calls except the session public key.
    """

    def __init__(
        self,
        transport: JsonTransport,
        attestation_verifier: Optional[AttestationVerifier] = None,
        request_padded_length: int = DEFAULT_REQUEST_PADDED_LENGTH,
        response_padded_length: int = DEFAULT_RESPONSE_PADDED_LENGTH,
    ):
        self.transport = transport
        self.attestation_verifier = attestation_verifier
        self.request_padded_length = request_padded_length
        self.response_padded_length = response_padded_length

        self.service_url: Optional[str] = None
        self.service_public_key: Optional[bytes] = None
        self._attestation_failed = False

    @property
    def is_ready(self) -> bool:
        return self.service_public_key is not None and not self._attestation_failed

    async def init(self, service_url: str, require_attestation: bool = True) -> None:
        """
        Fetch and (optionally) attest the service public key.

        Raises:
            ConfidentialServiceProtocolError: Response is missing required fields
            AttestationError: Evidence fails the trust criteria
        """
        self.service_url = service_url.rstrip("/")
        self.service_public_key = None
        self._attestation_failed = False

        data = await self.transport.get_json(f"{self.service_url}/public_key")
        try:
            body = TeePublicKeyResponse.model_validate(data).tee_public_key
        except ValidationError as e:
            raise ConfidentialServiceProtocolError(
                f"Invalid response from TEE service: {e.errors()[0]['msg']}"
            ) from e

        try:
            public_key = bytes.fromhex(body.public_key.removeprefix("0x"))
            parse_public_key(public_key)
        except ValueError as e:
            raise ConfidentialServiceProtocolError(f"Invalid TEE public key: {e}") from e

        if require_attestation:
            try:
                self._attest(body.attestation_document, public_key)
            except AttestationError:
                self._attestation_failed = True
                logger.error(f"Attestation failed for {self.service_url}, service unusable")
                raise
        else:
            logger.warning(f"Using TEE service {self.service_url} without attestation")

        self.service_public_key = public_key
        logger.info(f"TEE session key cached for {self.service_url}")

    def _attest(self, document_b64: Optional[str], public_key: bytes) -> None:
        if not document_b64:
            raise ConfidentialServiceProtocolError(
                "Invalid response from TEE service: missing attestation document"
            )
        if self.attestation_verifier is None:
            raise AttestationError("Attestation required but no trust criteria configured")
        try:
            document = base64_to_bytes(document_b64)
        except (binascii.Error, ValueError) as e:
            raise AttestationError(f"Attestation document is not base64: {e}") from e
        self.attestation_verifier.verify(document, public_key)

    async def prove(self, circuit_type: CircuitType, witness: bytes) -> Tuple[bytes, bytes]:
        """
        Prove remotely.

        Args:
            circuit_type: Circuit to prove
            witness: Serialized witness

        Returns:
            (proof, serialized public inputs)

        Raises:
            TransportError, ConfidentialServiceProtocolError, DecryptionError,
            PaddingOverflowError, AttestationError
        """
        if self._attestation_failed:
            raise AttestationError("TEE service failed attestation in this session")
        if self.service_url is None or self.service_public_key is None:
            raise ConfidentialServiceProtocolError(
                "TeeClient is not initialized. Call init() before proving."
            )

        keypair = generate_keypair()

        request = ProofRequestPayload(
            circuit_type=circuit_type,
            circuit_inputs=bytes_to_base64(witness),
            user_public_key=bytes_to_base64(keypair.public_key),
        )
        ciphertext = encrypt_padded(
            request.model_dump_json().encode("utf-8"),
            self.service_public_key,
            self.request_padded_length,
        )

        data = await self.transport.post_json(
            f"{self.service_url}/proof",
            {"payload": bytes_to_base64(ciphertext)},
        )

        try:
            payload_b64 = EncryptedProofResponse.model_validate(data).encrypted_proof.payload
            response_ciphertext = base64_to_bytes(payload_b64)
        except (ValidationError, binascii.Error, ValueError) as e:
            raise ConfidentialServiceProtocolError(f"Invalid response from TEE service: {e}") from e

        if len(response_ciphertext) != self.response_padded_length:
            raise ConfidentialServiceProtocolError(
                f"Response ciphertext is {len(response_ciphertext)} bytes, "
                f"expected {self.response_padded_length}"
            )

        plaintext = decrypt_padded(response_ciphertext, keypair.private_key)
        del keypair

        try:
            response = ProofResponsePayload.model_validate_json(plaintext)
            proof = base64_to_bytes(response.proof)
            pub_inputs = base64_to_bytes(response.pub_inputs)
        except (ValidationError, binascii.Error, ValueError) as e:
            raise ConfidentialServiceProtocolError(f"Invalid proof payload from TEE service: {e}") from e

        logger.info(f"Remote {circuit_type.value} proof received ({len(proof)} bytes)")
        return proof, pub_inputs


class TeeProver:
    """
    Prover backed by the TEE service.

    Proofs are generated remotely; verification uses a local verifier.
    """

    def __init__(self, client: TeeClient, verifier: Prover):
        self.client = client
        self.verifier = verifier

    async def prove(self, circuit_type: CircuitType, witness: Witness) -> ProofResult:
        if not isinstance(witness, circuit_type.witness_class):
            raise ProofGenerationError(
                f"{circuit_type.value} circuit expects {circuit_type.witness_class.__name__}"
            )
        proof, pub_inputs = await self.client.prove(circuit_type, witness.to_bytes())
        try:
            values = decode_public_inputs(pub_inputs)
        except (ValueError, TypeError) as e:
            raise ConfidentialServiceProtocolError(f"Invalid public inputs from TEE service: {e}") from e
        return ProofResult(proof=proof, public_inputs=values)

    async def verify(self, circuit_type: CircuitType, proof: bytes, public_inputs: PublicInputs) -> bool:
        return await self.verifier.verify(circuit_type, proof, public_inputs)
