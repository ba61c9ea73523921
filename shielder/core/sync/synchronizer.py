"""
State Synchronizer - converge persisted account states with the chain.

sync_single_account(token):
1. Load the persisted state, or create an empty one at nonce 0 on the
   first account index not already opened on-chain by another token
2. Validate an existing state against the chain (fatal on mismatch)
3. Ask the finder for the next transition, persist it, repeat until none

Every step is persisted before the next lookup, so an interrupted sync
resumes where it stopped. Sync work is serialized by one lock per
synchronizer, or one lock per token with per_token_locks.
"""

import asyncio
from typing import Callable, Dict, List, Optional

from shielder.core.config import FIRST_ACCOUNT_INDEX
from shielder.core.state.registry import AccountRegistry
from shielder.core.state.types import ShielderTransaction, Token
from shielder.core.sync.finder import (
    AccountOnchain,
    ChainStateTransition,
    TokenAccountFinder,
)
from shielder.utils.logger import get_logger

logger = get_logger("sync")


class StateSynchronizer:
    """Drives the catch-up loops of one account registry."""

    def __init__(
        self,
        registry: AccountRegistry,
        chain_state_transition: ChainStateTransition,
        token_account_finder: TokenAccountFinder,
        account_onchain: AccountOnchain,
        sync_callback: Optional[Callable[[ShielderTransaction], None]] = None,
        per_token_locks: bool = False,
    ):
        self.registry = registry
        self.chain_state_transition = chain_state_transition
        self.token_account_finder = token_account_finder
        self.account_onchain = account_onchain
        self.sync_callback = sync_callback
        self.per_token_locks = per_token_locks

        self._lock = asyncio.Lock()
        self._token_locks: Dict[str, asyncio.Lock] = {}
        self._index_lock = asyncio.Lock()

    def _lock_for(self, token: Token) -> asyncio.Lock:
        if not self.per_token_locks:
            return self._lock
        if token.address not in self._token_locks:
            self._token_locks[token.address] = asyncio.Lock()
        return self._token_locks[token.address]

    async def sync_single_account(self, token: Token) -> List[ShielderTransaction]:
        """
        Apply every on-chain transition of `token` not yet in storage.

        Returns:
            Applied transactions in chain order
        """
        async with self._lock_for(token):
            return await self._sync(token)

    async def _sync(self, token: Token) -> List[ShielderTransaction]:
        state = await self.registry.get_account_state(token)
        if state is None:
            async with self._index_lock:
                if await self.registry.get_account_index(token) is None:
                    await self._claim_account_index(token)
            state = await self.registry.create_empty_account_state(token)
        else:
            await self.account_onchain.validate_account_state(state)

        applied = []
        while True:
            transition = await self.chain_state_transition.find_state_transition(state)
            if transition is None:
                break

            if self.sync_callback is not None:
                self.sync_callback(transition.transaction)
            await self.registry.update_account_state(token, transition.new_state)
            applied.append(transition.transaction)
            state = transition.new_state

            logger.info(
                f"Applied {transition.transaction.type.value} for {token}: "
                f"nonce {state.nonce}, balance {state.balance}"
            )

        if applied:
            logger.info(f"Synced {token}: {len(applied)} transaction(s)")
        return applied

    async def _claim_account_index(self, token: Token) -> int:
        """
        Bind `token` to the first account index not used by another token.

        Indices opened on-chain by this seed (e.g. from another device) are
        registered as found, so a restored wallet never reuses them.
        """
        account_index = FIRST_ACCOUNT_INDEX
        while True:
            bound = await self._token_at(account_index)
            if bound is None:
                await self.registry.register_token(account_index, token)
                logger.info(f"Registered {token} at account index {account_index}")
                return account_index
            if bound == token:
                return account_index
            account_index += 1

    async def _token_at(self, account_index: int) -> Optional[Token]:
        """Token bound to `account_index` locally, else as found on-chain (then registered)."""
        token = await self.registry.get_token_by_account_index(account_index)
        if token is not None:
            return token
        token = await self.token_account_finder.find_token_by_account_index(account_index)
        if token is not None:
            await self.registry.register_token(account_index, token)
            logger.info(f"Discovered {token} at account index {account_index}")
        return token

    async def sync_all_accounts(self) -> List[ShielderTransaction]:
        """
        Sync every account index from FIRST_ACCOUNT_INDEX on.

        Stops at the first index with no token, locally or on-chain.
        """
        applied = []
        account_index = FIRST_ACCOUNT_INDEX
        while True:
            async with self._index_lock:
                token = await self._token_at(account_index)
            if token is None:
                break

            applied.extend(await self.sync_single_account(token))
            account_index += 1
        return applied
