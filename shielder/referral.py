"""
Referral tagging for shielded transactions.

A referral id is encrypted to the referral service's public key and sent
as the transaction memo, which binds it to the proof through the calldata
commitment. Only the referral service can read it back from chain events.

The plaintext frame (4-byte length prefix + id) is padded to a bucket of
at least 16 bytes, rounded up to the next power of two, so ids of similar
length produce memos of equal size.
"""

from typing import Awaitable, Callable

from shielder.crypto.ecies import LENGTH_PREFIX_SIZE, OVERHEAD, decrypt_padded, encrypt_padded

MIN_REFERRAL_PADDED_LENGTH = 16


def referral_padded_length(referral_id: str) -> int:
    """Padded plaintext size for `referral_id`."""
    data_length = len(referral_id.encode("utf-8")) + LENGTH_PREFIX_SIZE
    if data_length < MIN_REFERRAL_PADDED_LENGTH:
        return MIN_REFERRAL_PADDED_LENGTH
    return 1 << (data_length - 1).bit_length()


class Referral:
    """
    Referral id attached to a client's transactions.

    Attributes:
        referral_id: Identifier issued by the referral service
        encryption_public_key: Coroutine returning the service's public key
    """

    def __init__(
        self,
        referral_id: str,
        encryption_public_key: Callable[[], Awaitable[bytes]],
    ):
        self.referral_id = referral_id
        self.encryption_public_key = encryption_public_key

    async def encrypted_referral(self) -> bytes:
        """Memo bytes carrying the encrypted referral id."""
        public_key = await self.encryption_public_key()
        padded_length = referral_padded_length(self.referral_id)
        return encrypt_padded(
            self.referral_id.encode("utf-8"), public_key, padded_length + OVERHEAD
        )


def decrypt_referral(memo: bytes, private_key: int) -> str:
    """Referral id from a memo, for the holder of the referral key."""
    return decrypt_padded(memo, private_key).decode("utf-8")
