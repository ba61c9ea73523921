"""
Error taxonomy for the shielder client.

Validation errors (fees, pocket money, balance) are raised before any
network or proving call. Fatal errors (protocol invariant violations,
attestation failures) are never retried internally.
"""

from typing import Optional


class ShielderError(Exception):
    """Base class for all shielder client errors."""


# =============================================================================
# Chain / State Consistency
# =============================================================================


class ProtocolInvariantViolation(ShielderError):
    """Chain data is inconsistent with the protocol (e.g. duplicate nullifier spend)."""


class AccountStateMismatch(ProtocolInvariantViolation):
    """Persisted local state disagrees with the chain. Signals local corruption."""


# =============================================================================
# Transition Validation
# =============================================================================


class InsufficientFundsError(ShielderError):
    def __init__(self, balance: int, amount: int):
        super().__init__(f"Insufficient funds: balance {balance}, requested {amount}")
        self.balance = balance
        self.amount = amount


class AmountBelowFeesError(ShielderError):
    def __init__(self, amount: int, relayer_fee: int, protocol_fee: int):
        super().__init__(
            "Amount must be greater than the sum of fees: "
            f"Relayer Fee: {relayer_fee}, Protocol Fee: {protocol_fee}"
        )
        self.amount = amount
        self.relayer_fee = relayer_fee
        self.protocol_fee = protocol_fee


class PocketMoneyNotSupportedError(ShielderError):
    def __init__(self):
        super().__init__("Pocket money is not supported for native withdrawal")


# =============================================================================
# Proving
# =============================================================================


class ProofGenerationError(ShielderError):
    """The proving capability failed to produce a proof."""


class ProofVerificationError(ShielderError):
    """A freshly generated proof did not verify (faulty or tampered prover)."""


# =============================================================================
# Submission
# =============================================================================


class OutdatedContractVersionError(ShielderError):
    """
    The contract rejected the expected version. The client must be upgraded.

    Propagated unwrapped so callers can branch on it.
    """

    def __init__(self, expected_version: str, detail: str = ""):
        message = f"Contract version {expected_version} is not supported, upgrade the client"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.expected_version = expected_version


class SubmissionError(ShielderError):
    """Relayer or chain submission failed. The original error is kept as `cause`."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{message}: {cause}" if cause is not None else message)
        self.cause = cause


# =============================================================================
# Confidential Proving Service
# =============================================================================


class TransportError(ShielderError):
    """HTTP transport failure (connection, timeout, non-success status)."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class ConfidentialServiceProtocolError(ShielderError):
    """The TEE service returned a malformed response or was used before init."""


class AttestationError(ShielderError):
    """Attestation evidence did not satisfy the trust criteria."""


class DecryptionError(ShielderError):
    """Ciphertext could not be decrypted (wrong key, tampering or bad framing)."""


class PaddingOverflowError(ShielderError):
    def __init__(self, payload_length: int, capacity: int):
        super().__init__(
            f"Payload of {payload_length} bytes does not fit padded capacity of {capacity} bytes"
        )
        self.payload_length = payload_length
        self.capacity = capacity
