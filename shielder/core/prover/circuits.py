"""
Circuit model: circuit types, witnesses and public inputs.

The circuit algebra itself is opaque to the client. What the client does
know is each circuit's relation, i.e. which public inputs a witness
produces and which constraints it must satisfy. Local provers check the
relation before proving so that a bad witness fails early and loudly.

Relations (all hashes from shielder.crypto):

NewAccount:
    h_note       = note_hash(version, id, nullifier, amount)
    prenullifier = prenullifier_hash(id)

Deposit / Withdraw:
    merkle_root      = path.compute_root(note_hash(version, id, nullifier_old, balance_old))
    h_nullifier_old  = nullifier_hash(nullifier_old)
    h_note_new       = note_hash(version, id, nullifier_new, balance_old +/- amount)
    0 <= new balance <= MAX_BALANCE

All circuits:
    mac_commitment = mac_commitment(mac_salt, id); commitment, token,
    amount and mac_salt are public.
"""

import json
from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Dict, Type, Union

from shielder.core.state.merkle import MerklePath
from shielder.crypto import (
    mac_commitment,
    note_hash,
    nullifier_hash,
    prenullifier_hash,
)

# Balances must fit the contract's accounting width
MAX_BALANCE = 2**112 - 1

PublicInputs = Dict[str, int]


class CircuitType(Enum):
    NEW_ACCOUNT = "NewAccount"
    DEPOSIT = "Deposit"
    WITHDRAW = "Withdraw"

    @property
    def witness_class(self) -> Type["Witness"]:
        return _WITNESS_CLASSES[self]


class RelationError(ValueError):
    """Witness does not satisfy the circuit relation."""


# =============================================================================
# Witnesses
# =============================================================================


def _encode(data: dict) -> dict:
    encoded = {}
    for key, value in data.items():
        if isinstance(value, MerklePath):
            encoded[key] = value.to_dict()
        elif isinstance(value, int):
            encoded[key] = str(value)
        else:
            encoded[key] = value
    return encoded


@dataclass(frozen=True)
class NewAccountWitness:
    version: int
    id: int
    nullifier: int
    token: int
    amount: int
    mac_salt: int
    commitment: int

    def to_bytes(self) -> bytes:
        return json.dumps(_encode(asdict(self)), sort_keys=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> "NewAccountWitness":
        raw = json.loads(data.decode("utf-8"))
        return cls(**{f.name: int(raw[f.name]) for f in fields(cls)})


@dataclass(frozen=True)
class SpendWitness:
    """Witness for circuits that spend an existing note."""
    version: int
    id: int
    nullifier_old: int
    balance_old: int
    token: int
    path: MerklePath
    amount: int
    nullifier_new: int
    mac_salt: int
    commitment: int

    def to_bytes(self) -> bytes:
        data = {
            f.name: getattr(self, f.name) for f in fields(self)
        }
        return json.dumps(_encode(data), sort_keys=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes):
        raw = json.loads(data.decode("utf-8"))
        values = {
            f.name: int(raw[f.name]) for f in fields(cls) if f.name != "path"
        }
        return cls(path=MerklePath.from_dict(raw["path"]), **values)


@dataclass(frozen=True)
class DepositWitness(SpendWitness):
    pass


@dataclass(frozen=True)
class WithdrawWitness(SpendWitness):
    pass


Witness = Union[NewAccountWitness, DepositWitness, WithdrawWitness]

_WITNESS_CLASSES = {
    CircuitType.NEW_ACCOUNT: NewAccountWitness,
    CircuitType.DEPOSIT: DepositWitness,
    CircuitType.WITHDRAW: WithdrawWitness,
}


def decode_witness(circuit_type: CircuitType, data: bytes) -> Witness:
    return circuit_type.witness_class.from_bytes(data)


# =============================================================================
# Relations
# =============================================================================


def evaluate_relation(circuit_type: CircuitType, witness: Witness) -> PublicInputs:
    """
    Check the relation for `witness` and return its public inputs.

    Raises:
        RelationError: If the witness type or any constraint is wrong
    """
    if not isinstance(witness, circuit_type.witness_class):
        raise RelationError(
            f"{circuit_type.value} circuit expects {circuit_type.witness_class.__name__}, "
            f"got {type(witness).__name__}"
        )
    if witness.amount < 0:
        raise RelationError("Negative amount")

    common = {
        "token": witness.token,
        "amount": witness.amount,
        "commitment": witness.commitment,
        "mac_salt": witness.mac_salt,
        "mac_commitment": mac_commitment(witness.mac_salt, witness.id),
    }

    if circuit_type is CircuitType.NEW_ACCOUNT:
        if witness.amount > MAX_BALANCE:
            raise RelationError("Balance exceeds maximum")
        return {
            "h_note": note_hash(witness.version, witness.id, witness.nullifier, witness.amount),
            "prenullifier": prenullifier_hash(witness.id),
            **common,
        }

    if circuit_type is CircuitType.DEPOSIT:
        balance_new = witness.balance_old + witness.amount
    else:
        balance_new = witness.balance_old - witness.amount
    if balance_new < 0:
        raise RelationError("Balance would become negative")
    if balance_new > MAX_BALANCE:
        raise RelationError("Balance exceeds maximum")

    old_note = note_hash(witness.version, witness.id, witness.nullifier_old, witness.balance_old)
    if not witness.path.verify(old_note):
        raise RelationError("Old note is not a member of the Merkle tree")

    return {
        "merkle_root": witness.path.root,
        "h_nullifier_old": nullifier_hash(witness.nullifier_old),
        "h_note_new": note_hash(witness.version, witness.id, witness.nullifier_new, balance_new),
        **common,
    }


def encode_public_inputs(values: PublicInputs) -> bytes:
    """Canonical byte encoding (sorted JSON, decimal strings)."""
    return json.dumps({k: str(v) for k, v in values.items()}, sort_keys=True).encode("utf-8")


def decode_public_inputs(data: bytes) -> PublicInputs:
    raw = json.loads(data.decode("utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("Public inputs must be a JSON object")
    return {k: int(v) for k, v in raw.items()}
