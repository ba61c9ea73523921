"""
ECIES over secp256k1 with fixed-length padding.

Ciphertext layout:
    ephemeral_public_key (65) || nonce (12) || tag (16) || AES-256-GCM body

The symmetric key is HKDF-SHA256(ephemeral_public_key || shared_x).

Padded variants frame the plaintext as length (4, big-endian) || payload ||
zero fill so that the whole ciphertext is exactly `padded_length` bytes.
An observer learns nothing from the ciphertext length beyond the bucket.
"""

import secrets
import struct
from dataclasses import dataclass
from typing import Tuple

from Crypto.Cipher import AES
from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import HKDF
from py_ecc.secp256k1 import secp256k1

from shielder.errors import DecryptionError, PaddingOverflowError

Point = Tuple[int, int]

PUBLIC_KEY_SIZE = 65
NONCE_SIZE = 12
TAG_SIZE = 16
OVERHEAD = PUBLIC_KEY_SIZE + NONCE_SIZE + TAG_SIZE
LENGTH_PREFIX_SIZE = 4

_KDF_CONTEXT = b"shielder-ecies-v1"


# =============================================================================
# Keys
# =============================================================================


@dataclass
class EciesKeyPair:
    """
    A secp256k1 keypair used for one encryption exchange.

    Attributes:
        private_key: scalar in [1, N-1]
        public_key: 65-byte SEC1 uncompressed encoding (0x04 || x || y)
    """
    private_key: int
    public_key: bytes

    @property
    def public_key_hex(self) -> str:
        return self.public_key.hex()


def generate_keypair() -> EciesKeyPair:
    """Generate a fresh random keypair."""
    private_key = secrets.randbelow(secp256k1.N - 1) + 1
    point = secp256k1.multiply(secp256k1.G, private_key)
    return EciesKeyPair(private_key=private_key, public_key=serialize_public_key(point))


def serialize_public_key(point: Point) -> bytes:
    return b"\x04" + point[0].to_bytes(32, "big") + point[1].to_bytes(32, "big")


def _on_curve(point: Point) -> bool:
    x, y = point
    return (y * y - x * x * x - secp256k1.B) % secp256k1.P == 0


def parse_public_key(data: bytes) -> Point:
    """
    Parse a secp256k1 public key.

    Accepts SEC1 uncompressed (65 bytes), raw x || y (64 bytes) and SEC1
    compressed (33 bytes) encodings.

    Raises:
        ValueError: If the encoding is invalid or the point is not on the curve
    """
    if len(data) == 65 and data[0] == 4:
        data = data[1:]

    if len(data) == 64:
        point = (int.from_bytes(data[:32], "big"), int.from_bytes(data[32:], "big"))
    elif len(data) == 33 and data[0] in (2, 3):
        x = int.from_bytes(data[1:], "big")
        rhs = (pow(x, 3, secp256k1.P) + secp256k1.B) % secp256k1.P
        y = pow(rhs, (secp256k1.P + 1) // 4, secp256k1.P)
        if y % 2 != data[0] % 2:
            y = secp256k1.P - y
        point = (x, y)
    else:
        raise ValueError(f"Unsupported public key encoding of {len(data)} bytes")

    if not _on_curve(point):
        raise ValueError("Public key is not on secp256k1")
    return point


def _symmetric_key(ephemeral_public_key: bytes, shared: Point) -> bytes:
    master = ephemeral_public_key + shared[0].to_bytes(32, "big")
    return HKDF(master, 32, None, SHA256, context=_KDF_CONTEXT)


# =============================================================================
# Encryption
# =============================================================================


def encrypt(plaintext: bytes, public_key: bytes) -> bytes:
    """Encrypt `plaintext` to the holder of `public_key`."""
    recipient = parse_public_key(public_key)
    ephemeral = generate_keypair()
    shared = secp256k1.multiply(recipient, ephemeral.private_key)
    key = _symmetric_key(ephemeral.public_key, shared)

    nonce = secrets.token_bytes(NONCE_SIZE)
    cipher = AES.new(key, AES.MODE_GCM, nonce=nonce)
    body, tag = cipher.encrypt_and_digest(plaintext)

    return ephemeral.public_key + nonce + tag + body


def decrypt(ciphertext: bytes, private_key: int) -> bytes:
    """
    Decrypt an ECIES ciphertext.

    Raises:
        DecryptionError: On wrong key, tampering or malformed ciphertext
    """
    if len(ciphertext) < OVERHEAD:
        raise DecryptionError(f"Ciphertext too short: {len(ciphertext)} bytes")

    ephemeral_public_key = ciphertext[:PUBLIC_KEY_SIZE]
    nonce = ciphertext[PUBLIC_KEY_SIZE:PUBLIC_KEY_SIZE + NONCE_SIZE]
    tag = ciphertext[PUBLIC_KEY_SIZE + NONCE_SIZE:OVERHEAD]
    body = ciphertext[OVERHEAD:]

    try:
        ephemeral = parse_public_key(ephemeral_public_key)
    except ValueError as e:
        raise DecryptionError(f"Invalid ephemeral key: {e}") from e

    shared = secp256k1.multiply(ephemeral, private_key)
    key = _symmetric_key(ephemeral_public_key, shared)

    cipher = AES.new(key, AES.MODE_GCM, nonce=nonce)
    try:
        return cipher.decrypt_and_verify(body, tag)
    except ValueError as e:
        raise DecryptionError("Authentication failed (wrong key or tampered ciphertext)") from e


def padded_capacity(padded_length: int) -> int:
    """Largest plaintext that fits a ciphertext of `padded_length` bytes."""
    return padded_length - OVERHEAD - LENGTH_PREFIX_SIZE


def encrypt_padded(plaintext: bytes, public_key: bytes, padded_length: int) -> bytes:
    """
    Encrypt to a ciphertext of exactly `padded_length` bytes.

    Raises:
        PaddingOverflowError: If the plaintext does not fit. Never truncates.
    """
    capacity = padded_capacity(padded_length)
    if len(plaintext) > capacity:
        raise PaddingOverflowError(len(plaintext), max(capacity, 0))

    framed = struct.pack(">I", len(plaintext)) + plaintext
    framed += bytes(capacity + LENGTH_PREFIX_SIZE - len(framed))
    return encrypt(framed, public_key)


def decrypt_padded(ciphertext: bytes, private_key: int) -> bytes:
    """Decrypt a padded ciphertext and strip the framing."""
    framed = decrypt(ciphertext, private_key)
    if len(framed) < LENGTH_PREFIX_SIZE:
        raise DecryptionError("Padded plaintext is missing its length prefix")

    (length,) = struct.unpack(">I", framed[:LENGTH_PREFIX_SIZE])
    if length > len(framed) - LENGTH_PREFIX_SIZE:
        raise DecryptionError(f"Declared length {length} exceeds padded plaintext")
    return framed[LENGTH_PREFIX_SIZE:LENGTH_PREFIX_SIZE + length]
