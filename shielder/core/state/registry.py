"""
Account Registry - persisted shielded accounts of one seed.

Each token gets a dense account index the first time it is used; the
account id is derived from (seed, index), so it is stable per (seed, token).
"""

from typing import Dict, Optional

from shielder.core.config import FIRST_ACCOUNT_INDEX
from shielder.core.state.types import (
    AccountState,
    AnyAccountState,
    Token,
    account_state_from_json,
    empty_account_state,
)
from shielder.core.storage.storage_manager import StorageManager
from shielder.crypto import SecretManager
from shielder.utils.logger import get_logger

logger = get_logger("registry")


class AccountRegistry:
    """
    Persisted account states and token index assignments.

    Methods are coroutines: storage access is a suspension point for callers.
    """

    def __init__(self, storage: StorageManager, secret_manager: SecretManager):
        self.storage = storage
        self.secret_manager = secret_manager

    async def get_account_state(self, token: Token) -> Optional[AnyAccountState]:
        raw = self.storage.get_account_state(token.address)
        if raw is None:
            return None
        return account_state_from_json(raw)

    async def update_account_state(self, token: Token, state: AnyAccountState) -> None:
        if state.token != token:
            raise ValueError(f"State token {state.token} does not match {token}")
        self.storage.save_account_state(token.address, state.to_json())
        logger.debug(f"Persisted {token} state at nonce {state.nonce}")

    async def get_token_by_account_index(self, account_index: int) -> Optional[Token]:
        address = self.storage.get_token_address(account_index)
        return Token(address) if address is not None else None

    async def get_account_index(self, token: Token) -> Optional[int]:
        for index, address in self.storage.account_indices().items():
            if address == token.address:
                return index
        return None

    async def register_token(self, account_index: int, token: Token) -> None:
        """Bind `token` to `account_index` (used when discovered on-chain)."""
        existing = await self.get_token_by_account_index(account_index)
        if existing is not None and existing != token:
            raise ValueError(f"Account index {account_index} already bound to {existing}")
        bound_index = await self.get_account_index(token)
        if bound_index is not None and bound_index != account_index:
            raise ValueError(f"{token} already bound to account index {bound_index}")
        self.storage.save_account_index(account_index, token.address)

    async def _next_account_index(self) -> int:
        indices = self.storage.account_indices()
        return max(indices) + 1 if indices else FIRST_ACCOUNT_INDEX

    async def create_empty_account_state(self, token: Token) -> AccountState:
        """
        Empty state (nonce 0) for `token`, assigning an account index if needed.

        The state is persisted so the index assignment and id are durable.
        """
        account_index = await self.get_account_index(token)
        if account_index is None:
            account_index = await self._next_account_index()
            await self.register_token(account_index, token)
            logger.info(f"Registered {token} at account index {account_index}")

        state = empty_account_state(self.secret_manager.account_id(account_index), token)
        await self.update_account_state(token, state)
        return state

    async def all_account_states(self) -> Dict[Token, AnyAccountState]:
        return {
            Token(address): account_state_from_json(raw)
            for address, raw in self.storage.all_account_states().items()
        }
