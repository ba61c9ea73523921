"""
ShielderClient - one seed's shielded accounts wired to a chain.

Ties together the account registry, the synchronizer and the three
transition builders. Shielding picks NewAccount or Deposit from the
synced state; withdrawals go through the relayer. A configured referral
fills the memo of transactions sent without one.
"""

from typing import Awaitable, Callable, Dict, List, Optional

from shielder.chain.contract import ShielderContract
from shielder.chain.relayer import Relayer
from shielder.core.actions import DepositAction, NewAccountAction, WithdrawAction
from shielder.core.config import CONTRACT_VERSION
from shielder.core.prover.prover import CryptoClient, Prover
from shielder.core.state.registry import AccountRegistry
from shielder.core.state.types import AnyAccountState, ShielderTransaction, Token
from shielder.core.storage.storage_manager import StorageManager
from shielder.core.sync import (
    AccountOnchain,
    ChainStateTransition,
    StateSynchronizer,
    TokenAccountFinder,
)
from shielder.crypto import SecretManager
from shielder.referral import Referral
from shielder.utils.logger import get_logger

logger = get_logger("client")


class ShielderClient:
    def __init__(
        self,
        seed: bytes,
        contract: ShielderContract,
        relayer: Relayer,
        prover: Prover,
        storage: StorageManager,
        chain_id: int = 1,
        contract_version: str = CONTRACT_VERSION,
        per_token_locks: bool = False,
        sync_callback: Optional[Callable[[ShielderTransaction], None]] = None,
        referral: Optional[Referral] = None,
    ):
        self.referral = referral
        self.secrets = SecretManager(seed)
        self.crypto = CryptoClient(prover=prover, secrets=self.secrets)
        self.contract = contract
        self.registry = AccountRegistry(storage, self.secrets)
        self.synchronizer = StateSynchronizer(
            self.registry,
            ChainStateTransition(contract, self.secrets),
            TokenAccountFinder(contract, self.secrets),
            AccountOnchain(contract),
            sync_callback=sync_callback,
            per_token_locks=per_token_locks,
        )

        action_args = dict(contract_version=contract_version)
        self.new_account_action = NewAccountAction(contract, self.crypto, chain_id, **action_args)
        self.deposit_action = DepositAction(contract, self.crypto, chain_id, **action_args)
        self.withdraw_action = WithdrawAction(
            contract, self.crypto, chain_id, relayer, **action_args
        )

    async def sync(self, token: Token) -> List[ShielderTransaction]:
        return await self.synchronizer.sync_single_account(token)

    async def sync_all(self) -> List[ShielderTransaction]:
        return await self.synchronizer.sync_all_accounts()

    async def account_state(self, token: Token) -> Optional[AnyAccountState]:
        return await self.registry.get_account_state(token)

    async def account_states(self) -> Dict[Token, AnyAccountState]:
        return await self.registry.all_account_states()

    async def _synced_state(self, token: Token) -> AnyAccountState:
        await self.sync(token)
        state = await self.registry.get_account_state(token)
        if state is None:
            raise RuntimeError(f"No state for {token} after sync")
        return state

    async def _memo(self, memo: bytes) -> bytes:
        """Explicit memo, else the encrypted referral if one is configured."""
        if memo or self.referral is None:
            return memo
        return await self.referral.encrypted_referral()

    async def shield(
        self,
        token: Token,
        amount: int,
        caller_address: str,
        send_transaction: Callable[..., Awaitable[str]],
        protocol_fee: int = 0,
        memo: bytes = b"",
    ) -> str:
        """Open the account with its first deposit, or deposit into it."""
        state = await self._synced_state(token)
        memo = await self._memo(memo)
        logger.debug(f"Shielding {amount} of {token} at nonce {state.nonce}")
        if state.nonce == 0:
            return await self.new_account_action.new_account(
                state, amount, caller_address, send_transaction, protocol_fee, memo
            )
        return await self.deposit_action.deposit(
            state, amount, caller_address, send_transaction, protocol_fee, memo
        )

    async def withdraw(
        self,
        token: Token,
        amount: int,
        recipient: str,
        pocket_money: int = 0,
        protocol_fee: int = 0,
        memo: bytes = b"",
    ) -> str:
        state = await self._synced_state(token)
        memo = await self._memo(memo)
        return await self.withdraw_action.withdraw(
            state, amount, recipient, pocket_money, protocol_fee, memo
        )
