"""
Unit tests for the state synchronizer.

Tests cover:
1. Catch-up of a single token and of all account indices
2. Ordered results and the optional callback
3. Resumability after an interrupted sync
4. Serialization of concurrent syncs
5. Fatal validation failures
"""

import asyncio

import pytest

from shielder.core.state import (
    AccountRegistry,
    TransactionType,
    advance,
    erc20_token,
    native_token,
    with_index,
)
from shielder.core.storage import StorageManager
from shielder.core.sync import (
    AccountOnchain,
    ChainStateTransition,
    StateSynchronizer,
    TokenAccountFinder,
)
from shielder.errors import AccountStateMismatch


# =============================================================================
# Helpers
# =============================================================================


class InterruptingFinder(ChainStateTransition):
    """Fails after `limit` transitions have been returned."""

    def __init__(self, contract, secrets, limit):
        super().__init__(contract, secrets)
        self.limit = limit
        self.found = 0

    async def find_state_transition(self, state):
        if self.found >= self.limit:
            raise ConnectionError("chain node went away")
        transition = await super().find_state_transition(state)
        if transition is not None:
            self.found += 1
        return transition


def make_synchronizer(storage, secret_manager, chain, finder=None, **kwargs):
    return StateSynchronizer(
        AccountRegistry(storage, secret_manager),
        finder or ChainStateTransition(chain, secret_manager),
        TokenAccountFinder(chain, secret_manager),
        AccountOnchain(chain),
        **kwargs,
    )


async def build_history(client, chain, addresses):
    """Native: new account 100, deposit 50, withdraw 30. ERC20: new account 200."""
    native = native_token()
    erc20 = erc20_token(addresses["erc20"])
    await client.shield(native, 100, addresses["caller"], chain.submit_new_account)
    await client.shield(native, 50, addresses["caller"], chain.submit_deposit)
    await client.withdraw(native, 30, addresses["recipient"])
    await client.shield(erc20, 200, addresses["caller"], chain.submit_new_account)
    return native, erc20


@pytest.fixture
def fresh_storage(tmp_path):
    manager = StorageManager(tmp_path / "fresh")
    yield manager
    manager.close()


# =============================================================================
# Single Account Tests
# =============================================================================


class TestSyncSingleAccount:
    """sync_single_account behaviour."""

    @pytest.mark.asyncio
    async def test_fresh_account(self, storage, secret_manager, chain):
        synchronizer = make_synchronizer(storage, secret_manager, chain)
        assert await synchronizer.sync_single_account(native_token()) == []

        state = await synchronizer.registry.get_account_state(native_token())
        assert state.nonce == 0
        assert state.balance == 0

    @pytest.mark.asyncio
    async def test_catches_up_in_order(self, client, chain, addresses, fresh_storage, secret_manager):
        native, _ = await build_history(client, chain, addresses)

        seen = []
        synchronizer = make_synchronizer(
            fresh_storage, secret_manager, chain, sync_callback=seen.append
        )
        applied = await synchronizer.sync_single_account(native)

        assert [tx.type for tx in applied] == [
            TransactionType.NEW_ACCOUNT,
            TransactionType.DEPOSIT,
            TransactionType.WITHDRAW,
        ]
        assert seen == applied
        assert [tx.block for tx in applied] == sorted(tx.block for tx in applied)
        assert applied[2].to == addresses["recipient"]

        state = await synchronizer.registry.get_account_state(native)
        assert state.nonce == 3
        assert state.balance == 120
        assert state.is_indexed

    @pytest.mark.asyncio
    async def test_second_sync_is_noop(self, client, chain, addresses, fresh_storage, secret_manager):
        native, _ = await build_history(client, chain, addresses)
        synchronizer = make_synchronizer(fresh_storage, secret_manager, chain)
        await synchronizer.sync_single_account(native)
        assert await synchronizer.sync_single_account(native) == []

    @pytest.mark.asyncio
    async def test_resumable(self, client, chain, addresses, tmp_path, secret_manager):
        native, _ = await build_history(client, chain, addresses)

        interrupted_storage = StorageManager(tmp_path / "interrupted")
        finder = InterruptingFinder(chain, secret_manager, limit=2)
        synchronizer = make_synchronizer(interrupted_storage, secret_manager, chain, finder=finder)
        with pytest.raises(ConnectionError):
            await synchronizer.sync_single_account(native)

        partial = await synchronizer.registry.get_account_state(native)
        assert partial.nonce == 2
        interrupted_storage.close()

        resumed_storage = StorageManager(tmp_path / "interrupted")
        resumed = make_synchronizer(resumed_storage, secret_manager, chain)
        remaining = await resumed.sync_single_account(native)
        assert [tx.type for tx in remaining] == [TransactionType.WITHDRAW]

        uninterrupted_storage = StorageManager(tmp_path / "uninterrupted")
        uninterrupted = make_synchronizer(uninterrupted_storage, secret_manager, chain)
        await uninterrupted.sync_single_account(native)

        assert (
            await resumed.registry.get_account_state(native)
            == await uninterrupted.registry.get_account_state(native)
        )
        resumed_storage.close()
        uninterrupted_storage.close()

    @pytest.mark.asyncio
    async def test_corrupted_state_is_fatal(self, client, chain, addresses, fresh_storage, secret_manager):
        native, _ = await build_history(client, chain, addresses)
        synchronizer = make_synchronizer(fresh_storage, secret_manager, chain)
        await synchronizer.sync_single_account(native)

        state = await synchronizer.registry.get_account_state(native)
        forged = with_index(advance(state, state.balance + 1000, state.current_note + 1), 0)
        await synchronizer.registry.update_account_state(native, forged)

        with pytest.raises(AccountStateMismatch):
            await synchronizer.sync_single_account(native)


# =============================================================================
# Concurrency Tests
# =============================================================================


class TestConcurrency:
    """Concurrent syncs queue instead of interleaving."""

    @pytest.mark.asyncio
    async def test_concurrent_same_token(self, client, chain, addresses, fresh_storage, secret_manager):
        native, _ = await build_history(client, chain, addresses)
        synchronizer = make_synchronizer(fresh_storage, secret_manager, chain)

        first, second = await asyncio.gather(
            synchronizer.sync_single_account(native),
            synchronizer.sync_single_account(native),
        )

        assert len(first) + len(second) == 3
        assert min(len(first), len(second)) == 0
        state = await synchronizer.registry.get_account_state(native)
        assert state.nonce == 3
        assert state.balance == 120

    @pytest.mark.asyncio
    @pytest.mark.parametrize("per_token_locks", [False, True])
    async def test_concurrent_tokens(
        self, client, chain, addresses, fresh_storage, secret_manager, per_token_locks
    ):
        native, erc20 = await build_history(client, chain, addresses)
        synchronizer = make_synchronizer(
            fresh_storage, secret_manager, chain, per_token_locks=per_token_locks
        )
        await synchronizer.registry.register_token(0, native)
        await synchronizer.registry.register_token(1, erc20)

        native_txs, erc20_txs = await asyncio.gather(
            synchronizer.sync_single_account(native),
            synchronizer.sync_single_account(erc20),
        )
        assert len(native_txs) == 3
        assert len(erc20_txs) == 1
        assert (await synchronizer.registry.get_account_state(erc20)).balance == 200

    def test_lock_selection(self, storage, secret_manager, chain):
        shared = make_synchronizer(storage, secret_manager, chain)
        assert shared._lock_for(native_token()) is shared._lock_for(erc20_token("0x" + "ab" * 20))

        per_token = make_synchronizer(storage, secret_manager, chain, per_token_locks=True)
        native_lock = per_token._lock_for(native_token())
        assert native_lock is per_token._lock_for(native_token())
        assert native_lock is not per_token._lock_for(erc20_token("0x" + "ab" * 20))


# =============================================================================
# Account Index Tests
# =============================================================================


class TestAccountIndexClaim:
    """New tokens never take an account index already opened on-chain."""

    @pytest.mark.asyncio
    async def test_restored_seed_skips_used_index(
        self, client, chain, addresses, fresh_storage, secret_manager
    ):
        native = native_token()
        erc20 = erc20_token(addresses["erc20"])
        await client.shield(native, 100, addresses["caller"], chain.submit_new_account)

        synchronizer = make_synchronizer(fresh_storage, secret_manager, chain)
        assert await synchronizer.sync_single_account(erc20) == []

        registry = synchronizer.registry
        assert await registry.get_token_by_account_index(0) == native
        assert await registry.get_account_index(erc20) == 1
        assert (await registry.get_account_state(erc20)).id == secret_manager.account_id(1)

        applied = await synchronizer.sync_all_accounts()
        assert [tx.type for tx in applied] == [TransactionType.NEW_ACCOUNT]
        assert (await registry.get_account_state(native)).balance == 100

    @pytest.mark.asyncio
    async def test_claim_finds_own_index(self, client, chain, addresses, fresh_storage, secret_manager):
        native, erc20 = await build_history(client, chain, addresses)
        synchronizer = make_synchronizer(fresh_storage, secret_manager, chain)

        applied = await synchronizer.sync_single_account(erc20)

        assert [tx.amount for tx in applied] == [200]
        assert await synchronizer.registry.get_account_index(erc20) == 1
        assert await synchronizer.registry.get_account_index(native) == 0

    @pytest.mark.asyncio
    async def test_concurrent_new_tokens(self, fresh_storage, secret_manager, chain, addresses):
        native = native_token()
        erc20 = erc20_token(addresses["erc20"])
        synchronizer = make_synchronizer(
            fresh_storage, secret_manager, chain, per_token_locks=True
        )

        await asyncio.gather(
            synchronizer.sync_single_account(native),
            synchronizer.sync_single_account(erc20),
        )

        indices = {
            await synchronizer.registry.get_account_index(native),
            await synchronizer.registry.get_account_index(erc20),
        }
        assert indices == {0, 1}


# =============================================================================
# All Accounts Tests
# =============================================================================


class TestSyncAllAccounts:
    """sync_all_accounts discovers tokens by account index."""

    @pytest.mark.asyncio
    async def test_discovers_tokens(self, client, chain, addresses, fresh_storage, secret_manager):
        native, erc20 = await build_history(client, chain, addresses)
        synchronizer = make_synchronizer(fresh_storage, secret_manager, chain)

        applied = await synchronizer.sync_all_accounts()

        assert len(applied) == 4
        assert await synchronizer.registry.get_token_by_account_index(0) == native
        assert await synchronizer.registry.get_token_by_account_index(1) == erc20
        assert await synchronizer.registry.get_token_by_account_index(2) is None
        states = await synchronizer.registry.all_account_states()
        assert states[native].balance == 120
        assert states[erc20].balance == 200

    @pytest.mark.asyncio
    async def test_nothing_to_discover(self, storage, secret_manager, chain):
        synchronizer = make_synchronizer(storage, secret_manager, chain)
        assert await synchronizer.sync_all_accounts() == []
        assert await synchronizer.registry.all_account_states() == {}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
