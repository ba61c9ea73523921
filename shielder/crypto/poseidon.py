"""
Poseidon hash over the BN254 scalar field.

Notes, nullifiers and Merkle nodes are Poseidon hashes so that the same
values can be recomputed inside the circuits.

Parameters:
- Field: BN254 scalar field
- t=3 (2 inputs + 1 capacity)
- rounds_f=8 (full rounds), rounds_p=57 (partial rounds)
- alpha=5 (S-box exponent)

Round constants come from a SHAKE256 stream and the MDS matrix is a Cauchy
matrix, both computed once on first use.
"""

import hashlib
from functools import lru_cache
from typing import List, Sequence, Tuple

# BN254 scalar field prime
FIELD_PRIME = 21888242871839275222246405745257275088548364400416034343698204186575808495617

_T = 3
_ROUNDS_F = 8
_ROUNDS_P = 57


@lru_cache(maxsize=1)
def _constants() -> Tuple[Tuple[int, ...], Tuple[Tuple[int, ...], ...]]:
    """Round constants and MDS matrix for t=3."""
    total = (_ROUNDS_F + _ROUNDS_P) * _T
    stream = hashlib.shake_256(b"shielder-poseidon").digest(total * 32)
    round_constants = tuple(
        int.from_bytes(stream[i * 32:(i + 1) * 32], "big") % FIELD_PRIME
        for i in range(total)
    )

    # Cauchy matrix M[i][j] = 1 / (x_i + y_j) is always MDS
    xs = [i + 1 for i in range(_T)]
    ys = [_T + j + 1 for j in range(_T)]
    mds = tuple(
        tuple(pow(x + y, FIELD_PRIME - 2, FIELD_PRIME) for y in ys)
        for x in xs
    )
    return round_constants, mds


def _permute(state: List[int]) -> List[int]:
    round_constants, mds = _constants()
    half_f = _ROUNDS_F // 2

    for r in range(_ROUNDS_F + _ROUNDS_P):
        offset = r * _T
        state = [(state[i] + round_constants[offset + i]) % FIELD_PRIME for i in range(_T)]

        if r < half_f or r >= half_f + _ROUNDS_P:
            state = [pow(x, 5, FIELD_PRIME) for x in state]
        else:
            state[0] = pow(state[0], 5, FIELD_PRIME)

        state = [
            sum(mds[i][j] * state[j] for j in range(_T)) % FIELD_PRIME
            for i in range(_T)
        ]

    return state


def poseidon2(a: int, b: int, domain_sep: int = 0) -> int:
    """
    Hash two field elements.

    Raises:
        ValueError: If an input is outside the field
    """
    for i, value in enumerate((a, b)):
        if not (0 <= value < FIELD_PRIME):
            raise ValueError(f"Input {i} out of field range: {value}")

    return _permute([domain_sep % FIELD_PRIME, a, b])[1]


def poseidon1(a: int, domain_sep: int = 0) -> int:
    """Hash one field element."""
    return poseidon2(a, 0, domain_sep)


def poseidon_hash(inputs: Sequence[int], domain_sep: int = 0) -> int:
    """
    Hash any number of field elements by chaining.

    h_0 = poseidon2(domain_sep, inputs[0]); h_i = poseidon2(h_{i-1}, inputs[i])
    """
    if not inputs:
        return poseidon1(0, domain_sep)

    h = poseidon2(domain_sep % FIELD_PRIME, inputs[0])
    for value in inputs[1:]:
        h = poseidon2(h, value)
    return h


def poseidon_bytes(data: bytes, domain_sep: int = 0) -> int:
    """
    Hash arbitrary bytes.

    Data is split into 31-byte chunks so each chunk fits in the field.
    The length is absorbed first so that trailing zero bytes matter.
    """
    chunks = [
        int.from_bytes(data[i:i + 31], "big")
        for i in range(0, len(data), 31)
    ]
    return poseidon_hash([len(data)] + chunks, domain_sep)
