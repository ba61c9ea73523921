"""
Unit tests for the transition builder.

Tests cover:
1. Raw transitions (pure next-state derivation)
2. Input validation happens before any proving or network call
3. Proof generation / self-verification failures
4. Submission error mapping (outdated version vs generic failure)
"""

import pytest

from shielder.chain.relayer import QuotedFees, VersionRejectedByRelayer
from shielder.core.actions import DepositAction, NewAccountAction, WithdrawAction
from shielder.core.config import CONTRACT_VERSION, NOTE_VERSION
from shielder.core.prover import CryptoClient, MockProver
from shielder.core.state import AccountStateMerkleIndexed, erc20_token, native_token
from shielder.crypto import note_hash
from shielder.errors import (
    AmountBelowFeesError,
    InsufficientFundsError,
    OutdatedContractVersionError,
    PocketMoneyNotSupportedError,
    ProofGenerationError,
    ProofVerificationError,
    SubmissionError,
)


# =============================================================================
# Helpers
# =============================================================================


class SpyProver:
    """MockProver wrapper that counts calls and can be told to misbehave."""

    def __init__(self, inner, fail=False, verify_result=None):
        self.inner = inner
        self.fail = fail
        self.verify_result = verify_result
        self.prove_calls = 0

    async def prove(self, circuit_type, witness):
        self.prove_calls += 1
        if self.fail:
            raise RuntimeError("prover crashed")
        return await self.inner.prove(circuit_type, witness)

    async def verify(self, circuit_type, proof, public_inputs):
        if self.verify_result is not None:
            return self.verify_result
        return await self.inner.verify(circuit_type, proof, public_inputs)


class StubRelayer:
    """Relayer whose withdraw raises a preset error."""

    def __init__(self, error):
        self.error = error
        self.calls = 0

    async def address(self):
        return "0x" + "33" * 20

    async def quote_fees(self, token, pocket_money):
        return QuotedFees(total_fee=10)

    async def withdraw(self, **kwargs):
        self.calls += 1
        raise self.error


def indexed_state(secret_manager, token, balance, nonce=1):
    account_id = secret_manager.account_id(0)
    return AccountStateMerkleIndexed(
        id=account_id,
        token=token,
        nonce=nonce,
        balance=balance,
        current_note=note_hash(
            NOTE_VERSION, account_id, secret_manager.nullifier(account_id, nonce - 1), balance
        ),
        current_note_index=0,
    )


async def open_account(client, chain, token, amount, caller):
    """Shield `amount` into a new account and sync it."""
    await client.shield(token, amount, caller, chain.submit_new_account)
    await client.sync(token)
    return await client.account_state(token)


async def withdraw_calldata(client, chain, crypto, relayer, addresses, version=CONTRACT_VERSION):
    """Open an ERC20 account and build a withdrawal of 100 from it."""
    token = erc20_token(addresses["erc20"])
    state = await open_account(client, chain, token, 1000, addresses["caller"])
    action = WithdrawAction(chain, crypto, 1, relayer)
    calldata = await action.generate_calldata(
        state, 100, addresses["relayer"], 10, addresses["recipient"], version,
        pocket_money=1,
    )
    return action, calldata


@pytest.fixture
def spy(prover):
    return SpyProver(prover)


@pytest.fixture
def withdraw_action(chain, spy, secret_manager, relayer):
    return WithdrawAction(chain, CryptoClient(spy, secret_manager), 1, relayer)


# =============================================================================
# Raw Transition Tests
# =============================================================================


class TestRawTransition:
    """Pure next-state derivation."""

    @pytest.mark.parametrize("amount", [1, 40, 100])
    def test_withdraw_arithmetic(self, withdraw_action, secret_manager, amount):
        state = indexed_state(secret_manager, native_token(), 100, nonce=3)
        new_state = withdraw_action.raw_withdraw(state, amount)

        assert new_state.nonce == state.nonce + 1
        assert new_state.balance == 100 - amount
        assert not new_state.is_indexed
        assert new_state.current_note == note_hash(
            NOTE_VERSION,
            state.id,
            secret_manager.nullifier(state.id, state.nonce),
            100 - amount,
        )

    def test_deposit_arithmetic(self, chain, crypto, secret_manager):
        state = indexed_state(secret_manager, native_token(), 100)
        new_state = DepositAction(chain, crypto, 1).raw_deposit(state, 50)
        assert new_state.balance == 150
        assert new_state.nonce == 2

    def test_raw_transition_is_pure(self, withdraw_action, secret_manager, spy):
        state = indexed_state(secret_manager, native_token(), 100)
        assert withdraw_action.raw_withdraw(state, 10) == withdraw_action.raw_withdraw(state, 10)
        assert spy.prove_calls == 0

    def test_insufficient_funds(self, withdraw_action, secret_manager):
        state = indexed_state(secret_manager, native_token(), 5)
        with pytest.raises(InsufficientFundsError):
            withdraw_action.raw_withdraw(state, 6)

    def test_new_account_requires_empty_state(self, chain, crypto, secret_manager):
        state = indexed_state(secret_manager, native_token(), 5)
        with pytest.raises(ValueError):
            NewAccountAction(chain, crypto, 1).raw_new_account(state, 10)


# =============================================================================
# Validation Tests
# =============================================================================


class TestWithdrawValidation:
    """Validation errors are raised before proving."""

    @pytest.mark.asyncio
    async def test_insufficient_funds(self, withdraw_action, secret_manager, spy, addresses):
        state = indexed_state(secret_manager, native_token(), 5)
        with pytest.raises(InsufficientFundsError):
            await withdraw_action.generate_calldata(
                state, 6, addresses["relayer"], 0, addresses["recipient"], CONTRACT_VERSION,
            )
        assert spy.prove_calls == 0

    @pytest.mark.asyncio
    async def test_amount_below_fees(self, withdraw_action, secret_manager, spy, addresses):
        state = indexed_state(secret_manager, native_token(), 100)
        with pytest.raises(AmountBelowFeesError) as exc_info:
            await withdraw_action.generate_calldata(
                state, 1, addresses["relayer"], 2, addresses["recipient"], CONTRACT_VERSION,
            )
        message = str(exc_info.value)
        assert "Relayer Fee: 2" in message
        assert "Protocol Fee: 0" in message
        assert spy.prove_calls == 0

    @pytest.mark.asyncio
    async def test_amount_equal_to_fees(self, withdraw_action, secret_manager, addresses):
        state = indexed_state(secret_manager, native_token(), 100)
        with pytest.raises(AmountBelowFeesError):
            await withdraw_action.generate_calldata(
                state, 5, addresses["relayer"], 3, addresses["recipient"], CONTRACT_VERSION,
                protocol_fee=2,
            )

    @pytest.mark.asyncio
    async def test_native_pocket_money(self, withdraw_action, secret_manager, spy, addresses):
        state = indexed_state(secret_manager, native_token(), 100)
        with pytest.raises(PocketMoneyNotSupportedError):
            await withdraw_action.generate_calldata(
                state, 50, addresses["relayer"], 0, addresses["recipient"], CONTRACT_VERSION,
                pocket_money=1,
            )
        assert spy.prove_calls == 0

    @pytest.mark.asyncio
    async def test_negative_pocket_money(self, withdraw_action, secret_manager, spy, addresses):
        state = indexed_state(secret_manager, erc20_token(addresses["erc20"]), 100)
        with pytest.raises(ValueError, match="non-negative"):
            await withdraw_action.generate_calldata(
                state, 50, addresses["relayer"], 0, addresses["recipient"], CONTRACT_VERSION,
                pocket_money=-1,
            )
        assert spy.prove_calls == 0

    @pytest.mark.asyncio
    async def test_deposit_below_protocol_fee(self, chain, crypto, secret_manager, addresses):
        state = indexed_state(secret_manager, native_token(), 100)
        with pytest.raises(AmountBelowFeesError):
            await DepositAction(chain, crypto, 1).generate_calldata(
                state, 1, addresses["caller"], CONTRACT_VERSION, protocol_fee=2,
            )


# =============================================================================
# Proving Tests
# =============================================================================


class TestProving:
    """Proof generation and self-verification."""

    @pytest.mark.asyncio
    async def test_new_account_calldata(self, chain, crypto, registry, addresses, prover):
        state = await registry.create_empty_account_state(native_token())
        calldata = await NewAccountAction(chain, crypto, 1).generate_calldata(
            state, 100, addresses["caller"], CONTRACT_VERSION,
        )
        assert calldata.amount == 100
        assert calldata.expected_contract_version == CONTRACT_VERSION
        assert await prover.verify(
            NewAccountAction.circuit_type, calldata.calldata.proof, calldata.calldata.public_inputs
        )
        assert len(chain.tree) == 0

    @pytest.mark.asyncio
    async def test_prover_failure(self, chain, prover, secret_manager, registry, addresses):
        crypto = CryptoClient(SpyProver(prover, fail=True), secret_manager)
        state = await registry.create_empty_account_state(native_token())
        with pytest.raises(ProofGenerationError) as exc_info:
            await NewAccountAction(chain, crypto, 1).generate_calldata(
                state, 100, addresses["caller"], CONTRACT_VERSION,
            )
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_self_verification_failure(self, chain, prover, secret_manager, registry, addresses):
        crypto = CryptoClient(SpyProver(prover, verify_result=False), secret_manager)
        state = await registry.create_empty_account_state(native_token())
        with pytest.raises(ProofVerificationError):
            await NewAccountAction(chain, crypto, 1).generate_calldata(
                state, 100, addresses["caller"], CONTRACT_VERSION,
            )

    @pytest.mark.asyncio
    async def test_foreign_prover_fails_verification(self, chain, secret_manager, registry, addresses):
        """A prover whose proofs do not verify under its own key is caught."""
        class Mismatched(MockProver):
            async def verify(self, circuit_type, proof, public_inputs):
                return await MockProver().verify(circuit_type, proof, public_inputs)

        crypto = CryptoClient(Mismatched(), secret_manager)
        state = await registry.create_empty_account_state(native_token())
        with pytest.raises(ProofVerificationError):
            await NewAccountAction(chain, crypto, 1).generate_calldata(
                state, 100, addresses["caller"], CONTRACT_VERSION,
            )


# =============================================================================
# Submission Tests
# =============================================================================


class TestSubmission:
    """Relayer submission error mapping."""

    @pytest.mark.asyncio
    async def test_success(self, client, chain, crypto, relayer, addresses):
        action, calldata = await withdraw_calldata(client, chain, crypto, relayer, addresses)
        tx_hash = await action.send_calldata_with_relayer(calldata)
        assert tx_hash.startswith("0x")
        assert chain.block_number == 2

    @pytest.mark.asyncio
    async def test_relayer_version_mismatch(self, client, chain, crypto, addresses):
        stub = StubRelayer(VersionRejectedByRelayer("version mismatch"))
        action, calldata = await withdraw_calldata(client, chain, crypto, stub, addresses)
        with pytest.raises(OutdatedContractVersionError) as exc_info:
            await action.send_calldata_with_relayer(calldata)
        assert exc_info.value.expected_version == CONTRACT_VERSION
        assert stub.calls == 1

    @pytest.mark.asyncio
    async def test_outdated_error_propagates_unwrapped(self, client, chain, crypto, addresses):
        original = OutdatedContractVersionError(CONTRACT_VERSION)
        action, calldata = await withdraw_calldata(
            client, chain, crypto, StubRelayer(original), addresses
        )
        with pytest.raises(OutdatedContractVersionError) as exc_info:
            await action.send_calldata_with_relayer(calldata)
        assert exc_info.value is original

    @pytest.mark.asyncio
    async def test_local_relayer_rejects_old_version(self, client, chain, crypto, relayer, addresses):
        action, calldata = await withdraw_calldata(
            client, chain, crypto, relayer, addresses, version="0x000100"
        )
        with pytest.raises(OutdatedContractVersionError):
            await action.send_calldata_with_relayer(calldata)

    @pytest.mark.asyncio
    async def test_other_failure_wrapped(self, client, chain, crypto, addresses):
        cause = ConnectionError("relayer down")
        action, calldata = await withdraw_calldata(
            client, chain, crypto, StubRelayer(cause), addresses
        )
        with pytest.raises(SubmissionError) as exc_info:
            await action.send_calldata_with_relayer(calldata)
        assert exc_info.value.cause is cause
        assert not isinstance(exc_info.value, OutdatedContractVersionError)

    @pytest.mark.asyncio
    async def test_chain_revert_wrapped(self, client, chain, crypto, relayer, addresses):
        action, calldata = await withdraw_calldata(client, chain, crypto, relayer, addresses)
        await action.send_calldata_with_relayer(calldata)
        with pytest.raises(SubmissionError):
            await action.send_calldata_with_relayer(calldata)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
