"""
Unit tests for referral memos.

Tests cover:
1. Padding buckets for referral ids
2. Encryption to the referral service key
3. Referral memos attached by the client
"""

import pytest

from shielder.chain.memory import LocalRelayer
from shielder.client import ShielderClient
from shielder.core.state import native_token
from shielder.crypto.ecies import OVERHEAD, generate_keypair
from shielder.errors import DecryptionError
from shielder.referral import Referral, decrypt_referral, referral_padded_length


@pytest.fixture
def referral_keypair():
    return generate_keypair()


def make_referral(referral_id, keypair):
    async def public_key():
        return keypair.public_key

    return Referral(referral_id, public_key)


# =============================================================================
# Padding Tests
# =============================================================================


class TestReferralPadding:
    """Bucket sizes for referral ids."""

    @pytest.mark.parametrize(
        "referral_id, expected",
        [("", 16), ("abc", 16), ("a" * 12, 16), ("a" * 13, 32), ("a" * 28, 32), ("a" * 29, 64)],
    )
    def test_padded_length(self, referral_id, expected):
        assert referral_padded_length(referral_id) == expected

    def test_counts_utf8_bytes(self):
        # 6 characters, 9 bytes
        assert referral_padded_length("żółwik") == 16
        assert referral_padded_length("ż" * 7) == 32


# =============================================================================
# Encryption Tests
# =============================================================================


class TestReferralEncryption:
    """Encrypted referral memos."""

    @pytest.mark.asyncio
    async def test_service_reads_referral(self, referral_keypair):
        memo = await make_referral("partner-42", referral_keypair).encrypted_referral()
        assert decrypt_referral(memo, referral_keypair.private_key) == "partner-42"

    @pytest.mark.asyncio
    async def test_same_bucket_same_size(self, referral_keypair):
        short = await make_referral("a", referral_keypair).encrypted_referral()
        longer = await make_referral("a" * 12, referral_keypair).encrypted_referral()
        assert len(short) == len(longer) == 16 + OVERHEAD

    @pytest.mark.asyncio
    async def test_fresh_ciphertext_per_memo(self, referral_keypair):
        referral = make_referral("partner-42", referral_keypair)
        assert await referral.encrypted_referral() != await referral.encrypted_referral()

    @pytest.mark.asyncio
    async def test_other_key_cannot_read(self, referral_keypair):
        memo = await make_referral("partner-42", referral_keypair).encrypted_referral()
        with pytest.raises(DecryptionError):
            decrypt_referral(memo, generate_keypair().private_key)


# =============================================================================
# Client Tests
# =============================================================================


class TestClientReferral:
    """Referral memos on submitted transactions."""

    @pytest.mark.asyncio
    async def test_memo_carries_referral(
        self, seed, chain, prover, storage, addresses, referral_keypair
    ):
        client = ShielderClient(
            seed,
            chain,
            LocalRelayer(chain, addresses["relayer"], fee=10),
            prover,
            storage,
            referral=make_referral("partner-42", referral_keypair),
        )
        token = native_token()
        await client.shield(token, 1000, addresses["caller"], chain.submit_new_account)
        await client.withdraw(token, 100, addresses["recipient"])

        for block in (1, 2):
            event = (await chain.get_events(block))[0]
            assert decrypt_referral(event.memo, referral_keypair.private_key) == "partner-42"

        applied = await client.sync(token)
        assert [tx.memo for tx in applied] == [(await chain.get_events(2))[0].memo]
        assert (await client.account_state(token)).balance == 900

    @pytest.mark.asyncio
    async def test_explicit_memo_wins(self, seed, chain, relayer, prover, storage, addresses, referral_keypair):
        client = ShielderClient(
            seed, chain, relayer, prover, storage,
            referral=make_referral("partner-42", referral_keypair),
        )
        await client.shield(
            native_token(), 1000, addresses["caller"], chain.submit_new_account, memo=b"note"
        )
        assert (await chain.get_events(1))[0].memo == b"note"

    @pytest.mark.asyncio
    async def test_no_referral_empty_memo(self, client, chain, addresses):
        await client.shield(native_token(), 1000, addresses["caller"], chain.submit_new_account)
        assert (await chain.get_events(1))[0].memo == b""


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
