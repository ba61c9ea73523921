"""
Attestation evidence for the confidential proving service.

Evidence binds the service's ephemeral encryption key to the measured
enclave image. The verifier checks it against externally supplied trust
criteria:

1. The evidence is signed by a trusted root key (ECDSA secp256k1)
2. Every expected measurement matches
3. The attested public key is the one the service handed out

Document format (UTF-8 JSON):
    {"module_id": str, "timestamp": int, "measurements": {name: hex},
     "public_key": hex, "signature": hex(r || s || v)}

The signature covers Keccak-256 of the canonical JSON of all other fields.
"""

import json
import time
from typing import Dict, Optional, Protocol

from py_ecc.secp256k1 import secp256k1

from shielder.crypto import keccak256
from shielder.crypto.ecies import parse_public_key
from shielder.errors import AttestationError
from shielder.utils.logger import get_logger

logger = get_logger("attestation")


class AttestationVerifier(Protocol):
    def verify(self, document: bytes, public_key: bytes) -> None:
        """Raise AttestationError unless `document` attests `public_key`."""
        ...


def _signing_hash(body: dict) -> bytes:
    canonical = json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return keccak256(canonical)


def sign_attestation(body: dict, root_private_key: bytes) -> bytes:
    """
    Produce an attestation document for `body` signed by the root key.

    Args:
        body: Document fields without the signature
        root_private_key: 32-byte root signing key

    Returns:
        Encoded document
    """
    v, r, s = secp256k1.ecdsa_raw_sign(_signing_hash(body), root_private_key)
    signature = r.to_bytes(32, "big") + s.to_bytes(32, "big") + bytes([v])
    document = dict(body, signature=signature.hex())
    return json.dumps(document, sort_keys=True).encode("utf-8")


class MeasurementAttestationVerifier:
    """
    Verifies evidence against a trusted root key and expected measurements.

    Attributes:
        trusted_root: 64-byte root public key (x || y)
        expected_measurements: measurement name -> lowercase hex digest
        max_age_s: Reject evidence older than this (None disables the check)
    """

    def __init__(
        self,
        trusted_root: bytes,
        expected_measurements: Dict[str, str],
        max_age_s: Optional[int] = None,
    ):
        if len(trusted_root) != 64:
            raise ValueError("Trusted root must be a 64-byte public key")
        self.trusted_root = (
            int.from_bytes(trusted_root[:32], "big"),
            int.from_bytes(trusted_root[32:], "big"),
        )
        self.expected_measurements = {k: v.lower() for k, v in expected_measurements.items()}
        self.max_age_s = max_age_s

    def verify(self, document: bytes, public_key: bytes) -> None:
        try:
            evidence = json.loads(document.decode("utf-8"))
            signature = bytes.fromhex(evidence.pop("signature"))
            measurements = evidence["measurements"]
            if not isinstance(measurements, dict):
                raise TypeError("measurements must be a mapping")
            timestamp = int(evidence.get("timestamp", 0))
            attested_key = bytes.fromhex(evidence["public_key"])
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise AttestationError(f"Malformed attestation document: {e}") from e

        if len(signature) != 65:
            raise AttestationError("Malformed attestation signature")

        r = int.from_bytes(signature[:32], "big")
        s = int.from_bytes(signature[32:64], "big")
        v = signature[64]
        try:
            signer = secp256k1.ecdsa_raw_recover(_signing_hash(evidence), (v, r, s))
        except Exception as e:
            raise AttestationError(f"Attestation signature recovery failed: {e}") from e
        if signer != self.trusted_root:
            raise AttestationError("Attestation not signed by the trusted root")

        for name, expected in self.expected_measurements.items():
            actual = str(measurements.get(name, "")).lower()
            if actual != expected:
                raise AttestationError(f"Measurement {name} mismatch: {actual or 'missing'}")

        if self.max_age_s is not None:
            age = time.time() - timestamp
            if age > self.max_age_s:
                raise AttestationError(f"Attestation is {int(age)}s old")

        try:
            if parse_public_key(attested_key) != parse_public_key(public_key):
                raise AttestationError("Attested key differs from the served public key")
        except ValueError as e:
            raise AttestationError(f"Invalid attested public key: {e}") from e

        logger.info(f"Attestation verified for module {evidence.get('module_id', '?')}")
