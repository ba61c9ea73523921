"""
In-process stand-in for the TEE proving service.

Speaks the same JSON protocol as the real service (GET /public_key,
POST /proof), including padding and signed attestation evidence. Used for
local development, tests and the CLI demo.
"""

import base64
import json
import secrets
import time
from typing import Any, Dict, List, Optional

from py_ecc.secp256k1 import secp256k1

from shielder.core.config import DEFAULT_REQUEST_PADDED_LENGTH, DEFAULT_RESPONSE_PADDED_LENGTH
from shielder.core.prover.attestation import MeasurementAttestationVerifier, sign_attestation
from shielder.core.prover.circuits import CircuitType, decode_witness, encode_public_inputs
from shielder.core.prover.prover import MockProver
from shielder.crypto import sha256
from shielder.crypto.ecies import decrypt_padded, encrypt_padded, generate_keypair
from shielder.errors import ShielderError, TransportError
from shielder.utils.logger import get_logger

logger = get_logger("tee.service")


class MockTeeService:
    """
    Simulated enclave prover.

    Attributes:
        prover: Prover run "inside" the enclave
        keypair: Session encryption keypair
        measurements: Simulated enclave measurements
    """

    def __init__(
        self,
        prover: MockProver,
        root_private_key: Optional[bytes] = None,
        measurements: Optional[Dict[str, str]] = None,
        request_padded_length: int = DEFAULT_REQUEST_PADDED_LENGTH,
        response_padded_length: int = DEFAULT_RESPONSE_PADDED_LENGTH,
        module_id: str = "shielder-prover",
    ):
        self.prover = prover
        self.keypair = generate_keypair()
        self.root_private_key = root_private_key or (
            secrets.randbelow(secp256k1.N - 1) + 1
        ).to_bytes(32, "big")
        self.measurements = measurements or {"pcr0": sha256(b"shielder-prover-image").hex()}
        self.request_padded_length = request_padded_length
        self.response_padded_length = response_padded_length
        self.module_id = module_id
        self.requests_served = 0

    @property
    def root_public_key(self) -> bytes:
        x, y = secp256k1.privtopub(self.root_private_key)
        return x.to_bytes(32, "big") + y.to_bytes(32, "big")

    def trust_criteria(self) -> MeasurementAttestationVerifier:
        """Verifier a client would be configured with for this enclave."""
        return MeasurementAttestationVerifier(self.root_public_key, dict(self.measurements))

    def attestation_document(self) -> bytes:
        body = {
            "module_id": self.module_id,
            "timestamp": int(time.time()),
            "measurements": self.measurements,
            "public_key": self.keypair.public_key_hex,
        }
        return sign_attestation(body, self.root_private_key)

    def handle_public_key(self) -> Dict[str, Any]:
        return {
            "TeePublicKey": {
                "public_key": self.keypair.public_key_hex,
                "attestation_document": base64.b64encode(self.attestation_document()).decode("ascii"),
            }
        }

    async def handle_proof(self, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            ciphertext = base64.b64decode(body["payload"], validate=True)
            if len(ciphertext) != self.request_padded_length:
                raise ValueError(f"request ciphertext is {len(ciphertext)} bytes")
            request = json.loads(decrypt_padded(ciphertext, self.keypair.private_key))
            circuit_type = CircuitType(request["circuit_type"])
            witness = decode_witness(circuit_type, base64.b64decode(request["circuit_inputs"]))
            user_public_key = base64.b64decode(request["user_public_key"])
        except (KeyError, ValueError, TypeError, ShielderError) as e:
            raise TransportError(f"Bad proof request: {e}", status=400, body=str(e)) from e

        try:
            result = await self.prover.prove(circuit_type, witness)
        except ShielderError as e:
            raise TransportError(f"Proving failed: {e}", status=500, body=str(e)) from e

        response = json.dumps({
            "proof": base64.b64encode(result.proof).decode("ascii"),
            "pub_inputs": base64.b64encode(encode_public_inputs(result.public_inputs)).decode("ascii"),
        }).encode("utf-8")
        encrypted = encrypt_padded(response, user_public_key, self.response_padded_length)

        self.requests_served += 1
        logger.debug(f"Served {circuit_type.value} proof request #{self.requests_served}")
        return {"EncryptedProof": {"payload": base64.b64encode(encrypted).decode("ascii")}}


class MockTeeTransport:
    """
    Routes TeeClient requests to a MockTeeService without a network.

    Records the ciphertext sizes seen on the wire in both directions.
    """

    def __init__(self, service: MockTeeService, base_url: str = "http://tee.local"):
        self.service = service
        self.base_url = base_url.rstrip("/")
        self.request_sizes: List[int] = []
        self.response_sizes: List[int] = []

    async def get_json(self, url: str) -> Any:
        if url != f"{self.base_url}/public_key":
            raise TransportError(f"GET {url} failed with status 404", status=404)
        return self.service.handle_public_key()

    async def post_json(self, url: str, body: dict) -> Any:
        if url != f"{self.base_url}/proof":
            raise TransportError(f"POST {url} failed with status 404", status=404)
        self.request_sizes.append(len(base64.b64decode(body["payload"])))
        response = await self.service.handle_proof(body)
        self.response_sizes.append(len(base64.b64decode(response["EncryptedProof"]["payload"])))
        return response
