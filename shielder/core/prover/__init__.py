"""ZK proving capability: circuits, local mock prover and the TEE prover"""
from shielder.core.prover.circuits import (
    CircuitType,
    NewAccountWitness,
    DepositWitness,
    WithdrawWitness,
    Witness,
    PublicInputs,
    evaluate_relation,
)
from shielder.core.prover.prover import (
    ProofResult,
    Prover,
    CryptoClient,
    MockProver,
)
from shielder.core.prover.attestation import (
    AttestationVerifier,
    MeasurementAttestationVerifier,
)
from shielder.core.prover.tee import TeeClient, TeeProver

__all__ = [
    "CircuitType",
    "NewAccountWitness",
    "DepositWitness",
    "WithdrawWitness",
    "Witness",
    "PublicInputs",
    "evaluate_relation",
    "ProofResult",
    "Prover",
    "CryptoClient",
    "MockProver",
    "AttestationVerifier",
    "MeasurementAttestationVerifier",
    "TeeClient",
    "TeeProver",
]
