"""
Cryptographic primitives for the shielder client.

This module provides:
- General hashing (SHA-256, Keccak-256)
- Scalar (BN254 field element) helpers
- Domain-separated Poseidon hashes for notes, nullifiers and MACs
- Deterministic secret derivation from the user's seed

Design Notes:
-------------
A note binds (version, account id, nullifier, balance). Revealing the hash
of a nullifier on-chain marks the note it belongs to as spent. The first
note of an account spends a "prenullifier" derived from the account id,
which also makes account creation discoverable by id.

Keccak-256 is kept for address-style derivations and for mapping the seed
into the field; everything a circuit recomputes uses Poseidon.
"""

import hashlib
import secrets
from typing import Iterable

from Crypto.Hash import keccak

from shielder.crypto.poseidon import (
    FIELD_PRIME,
    poseidon1,
    poseidon2,
    poseidon_hash,
    poseidon_bytes,
)


# =============================================================================
# Domain Separators
# =============================================================================

DOMAIN_ACCOUNT_ID = 0x01
DOMAIN_NULLIFIER_SECRET = 0x02
DOMAIN_NULLIFIER_HASH = 0x03
DOMAIN_PRENULLIFIER = 0x04
DOMAIN_NOTE = 0x05
DOMAIN_MAC = 0x06
DOMAIN_CALLDATA = 0x07
DOMAIN_MEMO = 0x08
DOMAIN_MERKLE = 0x09


# =============================================================================
# Hashing
# =============================================================================


def sha256(data: bytes) -> bytes:
    """Compute SHA-256 hash."""
    return hashlib.sha256(data).digest()


def keccak256(data: bytes) -> bytes:
    """Compute Keccak-256 hash (Ethereum-style)."""
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


# =============================================================================
# Scalars
# =============================================================================


def is_scalar(value: int) -> bool:
    return isinstance(value, int) and 0 <= value < FIELD_PRIME


def bytes_to_scalar(data: bytes) -> int:
    """Reduce arbitrary bytes into the field."""
    return int.from_bytes(data, "big") % FIELD_PRIME


def scalar_to_hex(value: int) -> str:
    return "0x" + value.to_bytes(32, "big").hex()


def hex_to_scalar(hex_str: str) -> int:
    value = int(hex_str, 16)
    if not is_scalar(value):
        raise ValueError(f"Value {hex_str} is not a field element")
    return value


def random_scalar() -> int:
    """Uniformly random non-zero field element."""
    return secrets.randbelow(FIELD_PRIME - 1) + 1


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def address_to_scalar(address: str) -> int:
    """Interpret a 20-byte 0x-address as a field element."""
    return int(address, 16)


# =============================================================================
# Protocol Hashes
# =============================================================================


def note_hash(version: int, account_id: int, nullifier: int, balance: int) -> int:
    """
    Commitment to an account's balance.

    note = Poseidon(domain, version, id, nullifier, balance)
    """
    return poseidon_hash([version, account_id, nullifier, balance], DOMAIN_NOTE)


def nullifier_hash(nullifier: int) -> int:
    """Public marker revealed on-chain when the note owning `nullifier` is spent."""
    return poseidon1(nullifier, DOMAIN_NULLIFIER_HASH)


def prenullifier_hash(account_id: int) -> int:
    """Marker revealed by the account-creation transition."""
    return poseidon1(account_id, DOMAIN_PRENULLIFIER)


def mac_commitment(mac_salt: int, account_id: int) -> int:
    """Binds a proof to the account without revealing the id."""
    return poseidon2(mac_salt, account_id, DOMAIN_MAC)


def memo_hash(memo: bytes) -> int:
    return poseidon_bytes(memo, DOMAIN_MEMO)


def calldata_commitment(values: Iterable[int]) -> int:
    """
    Commitment to the calldata fields a relayer could otherwise tamper with.

    For withdrawals: chain id, relayer address, relayer fee, recipient,
    pocket money, protocol fee and memo hash.
    """
    return poseidon_hash(list(values), DOMAIN_CALLDATA)


def merkle_node(left: int, right: int) -> int:
    return poseidon2(left, right, DOMAIN_MERKLE)


# =============================================================================
# Secret Derivation
# =============================================================================


class SecretManager:
    """
    Deterministic secrets for a seed.

    account_id(index) = Poseidon(domain, seed, index)
    nullifier(id, nonce) = Poseidon(domain, seed, id, nonce)

    The nullifier for nonce n is the one embedded in the note created by the
    n-th transition, so a state at nonce n+1 holds a note built on
    nullifier(id, n).
    """

    def __init__(self, seed: bytes):
        if len(seed) != 32:
            raise ValueError("Seed must be 32 bytes")
        self._seed_scalar = bytes_to_scalar(keccak256(seed))

    def account_id(self, account_index: int) -> int:
        return poseidon_hash([self._seed_scalar, account_index], DOMAIN_ACCOUNT_ID)

    def nullifier(self, account_id: int, nonce: int) -> int:
        return poseidon_hash([self._seed_scalar, account_id, nonce], DOMAIN_NULLIFIER_SECRET)


__all__ = [
    "FIELD_PRIME",
    "poseidon1",
    "poseidon2",
    "poseidon_hash",
    "poseidon_bytes",
    "sha256",
    "keccak256",
    "is_scalar",
    "bytes_to_scalar",
    "scalar_to_hex",
    "hex_to_scalar",
    "random_scalar",
    "bytes_to_hex",
    "hex_to_bytes",
    "address_to_scalar",
    "note_hash",
    "nullifier_hash",
    "prenullifier_hash",
    "mac_commitment",
    "memo_hash",
    "calldata_commitment",
    "merkle_node",
    "SecretManager",
]
