"""
Calldata produced by the transition builder.

Calldata is fully assembled and proven but unsent: building it has no
network effect. The commitment helpers bind the fields a relayer or
front-runner could otherwise alter to the proof.
"""

from dataclasses import dataclass

from shielder.core.prover.circuits import PublicInputs
from shielder.core.state.types import Token
from shielder.crypto import address_to_scalar, calldata_commitment, memo_hash


@dataclass(frozen=True)
class ProofCalldata:
    proof: bytes
    public_inputs: PublicInputs


@dataclass(frozen=True)
class NewAccountCalldata:
    calldata: ProofCalldata
    token: Token
    amount: int
    caller_address: str
    expected_contract_version: str
    protocol_fee: int
    memo: bytes


@dataclass(frozen=True)
class DepositCalldata:
    calldata: ProofCalldata
    token: Token
    amount: int
    caller_address: str
    expected_contract_version: str
    protocol_fee: int
    memo: bytes


@dataclass(frozen=True)
class WithdrawCalldata:
    calldata: ProofCalldata
    token: Token
    amount: int
    recipient: str
    relayer_address: str
    quoted_fee: int
    expected_contract_version: str
    pocket_money: int
    protocol_fee: int
    memo: bytes


def version_scalar(version: str) -> int:
    return int(version, 16)


def deposit_commitment(
    chain_id: int,
    expected_contract_version: str,
    caller_address: str,
    protocol_fee: int,
    memo: bytes,
) -> int:
    """Commitment for NewAccount and Deposit calldata."""
    return calldata_commitment([
        chain_id,
        version_scalar(expected_contract_version),
        address_to_scalar(caller_address),
        protocol_fee,
        memo_hash(memo),
    ])


def withdraw_commitment(
    chain_id: int,
    expected_contract_version: str,
    recipient: str,
    relayer_address: str,
    relayer_fee: int,
    pocket_money: int,
    protocol_fee: int,
    memo: bytes,
) -> int:
    """Commitment binding the fee quote and recipient to a withdrawal proof."""
    return calldata_commitment([
        chain_id,
        version_scalar(expected_contract_version),
        address_to_scalar(recipient),
        address_to_scalar(relayer_address),
        relayer_fee,
        pocket_money,
        protocol_fee,
        memo_hash(memo),
    ])
