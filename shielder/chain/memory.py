"""
In-memory shielder chain and relayer.

A local stand-in for the shielder contract: it verifies proofs, enforces
nullifier uniqueness and the contract version, appends notes to a Merkle
tree and records one event per block. Used by the integration tests and
the CLI demo.
"""

from collections import defaultdict
from typing import Dict, List, Optional, Set

from shielder.chain.contract import ContractVersionRejected, ShielderEvent
from shielder.chain.relayer import QuotedFees, VersionRejectedByRelayer, WithdrawResponse
from shielder.core.actions.calldata import (
    DepositCalldata,
    NewAccountCalldata,
    deposit_commitment,
    withdraw_commitment,
)
from shielder.core.config import CONTRACT_VERSION
from shielder.core.prover.circuits import CircuitType, PublicInputs
from shielder.core.prover.prover import Prover
from shielder.core.state.merkle import DEFAULT_TREE_DEPTH, MerklePath, MerkleTree
from shielder.core.state.types import Token, TransactionType
from shielder.crypto import bytes_to_hex, keccak256
from shielder.errors import ShielderError
from shielder.utils.logger import get_logger

logger = get_logger("chain")


class TransactionReverted(ShielderError):
    """The contract rejected a transaction."""


class InMemoryShielderChain:
    """
    Shielder contract state held in memory.

    Attributes:
        tree: Note commitments
        block_number: Number of the last mined block
    """

    def __init__(
        self,
        verifier: Prover,
        contract_version: str = CONTRACT_VERSION,
        chain_id: int = 1,
        protocol_fee: int = 0,
        tree_depth: int = DEFAULT_TREE_DEPTH,
    ):
        self.verifier = verifier
        self.contract_version = contract_version
        self.chain_id = chain_id
        self.protocol_fee = protocol_fee
        self.tree = MerkleTree(tree_depth)
        self.block_number = 0

        self._spent: Dict[int, int] = {}
        self._events: Dict[int, List[ShielderEvent]] = defaultdict(list)
        self._roots: Set[int] = {self.tree.root()}

    # =========================================================================
    # Contract reader
    # =========================================================================

    async def nullifier_block(self, nullifier_hash: int) -> Optional[int]:
        return self._spent.get(nullifier_hash)

    async def get_events(self, block: int) -> List[ShielderEvent]:
        return list(self._events.get(block, []))

    async def get_merkle_path(self, index: int) -> MerklePath:
        return self.tree.prove(index)

    async def get_note(self, index: int) -> Optional[int]:
        if not (0 <= index < len(self.tree)):
            return None
        return self.tree.get_leaf(index)

    # =========================================================================
    # Transactions
    # =========================================================================

    def record_event(self, event: ShielderEvent) -> None:
        """Store a raw event as-is, without any validation."""
        self._events[event.block].append(event)
        self._spent.setdefault(event.nullifier_hash, event.block)
        self.block_number = max(self.block_number, event.block)

    def _check_version(self, expected_version: str) -> None:
        if expected_version != self.contract_version:
            raise ContractVersionRejected(
                f"Expected version {expected_version}, contract is {self.contract_version}"
            )

    def _check_protocol_fee(self, protocol_fee: int) -> None:
        if protocol_fee != self.protocol_fee:
            raise TransactionReverted(
                f"Protocol fee {protocol_fee} does not match {self.protocol_fee}"
            )

    def _check_unspent(self, marker: int) -> None:
        if marker in self._spent:
            raise TransactionReverted("Nullifier already spent")

    async def _verify(self, circuit_type: CircuitType, proof: bytes, values: PublicInputs) -> None:
        if not await self.verifier.verify(circuit_type, proof, values):
            raise TransactionReverted(f"Invalid {circuit_type.value} proof")

    def _mine(
        self,
        tx_type: TransactionType,
        token: Token,
        amount: int,
        marker: int,
        note: int,
        protocol_fee: int,
        memo: bytes,
        **withdraw_fields,
    ) -> str:
        self.block_number += 1
        index = self.tree.insert(note)
        self._roots.add(self.tree.root())

        tx_hash = bytes_to_hex(keccak256(f"{self.block_number}:{index}".encode()))
        self._spent[marker] = self.block_number
        self._events[self.block_number].append(ShielderEvent(
            type=tx_type,
            token=token,
            amount=amount,
            nullifier_hash=marker,
            new_note=note,
            new_note_index=index,
            tx_hash=tx_hash,
            block=self.block_number,
            protocol_fee=protocol_fee,
            memo=memo,
            **withdraw_fields,
        ))
        logger.debug(f"Block {self.block_number}: {tx_type.value} of {amount} {token}")
        return tx_hash

    async def submit_new_account(self, calldata: NewAccountCalldata) -> str:
        self._check_version(calldata.expected_contract_version)
        self._check_protocol_fee(calldata.protocol_fee)

        inputs = calldata.calldata.public_inputs
        values = {
            "h_note": inputs["h_note"],
            "prenullifier": inputs["prenullifier"],
            "token": calldata.token.scalar,
            "amount": calldata.amount,
            "commitment": deposit_commitment(
                self.chain_id,
                calldata.expected_contract_version,
                calldata.caller_address,
                calldata.protocol_fee,
                calldata.memo,
            ),
            "mac_salt": inputs["mac_salt"],
            "mac_commitment": inputs["mac_commitment"],
        }
        await self._verify(CircuitType.NEW_ACCOUNT, calldata.calldata.proof, values)
        self._check_unspent(values["prenullifier"])

        return self._mine(
            TransactionType.NEW_ACCOUNT,
            calldata.token,
            calldata.amount,
            values["prenullifier"],
            values["h_note"],
            calldata.protocol_fee,
            calldata.memo,
        )

    async def submit_deposit(self, calldata: DepositCalldata) -> str:
        self._check_version(calldata.expected_contract_version)
        self._check_protocol_fee(calldata.protocol_fee)

        inputs = calldata.calldata.public_inputs
        values = {
            "merkle_root": inputs["merkle_root"],
            "h_nullifier_old": inputs["h_nullifier_old"],
            "h_note_new": inputs["h_note_new"],
            "token": calldata.token.scalar,
            "amount": calldata.amount,
            "commitment": deposit_commitment(
                self.chain_id,
                calldata.expected_contract_version,
                calldata.caller_address,
                calldata.protocol_fee,
                calldata.memo,
            ),
            "mac_salt": inputs["mac_salt"],
            "mac_commitment": inputs["mac_commitment"],
        }
        await self._verify(CircuitType.DEPOSIT, calldata.calldata.proof, values)
        if values["merkle_root"] not in self._roots:
            raise TransactionReverted("Unknown Merkle root")
        self._check_unspent(values["h_nullifier_old"])

        return self._mine(
            TransactionType.DEPOSIT,
            calldata.token,
            calldata.amount,
            values["h_nullifier_old"],
            values["h_note_new"],
            calldata.protocol_fee,
            calldata.memo,
        )

    async def submit_withdraw(
        self,
        *,
        expected_version: str,
        token: Token,
        old_nullifier_hash: int,
        new_note: int,
        merkle_root: int,
        amount: int,
        proof: bytes,
        withdraw_address: str,
        mac_salt: int,
        mac_commitment: int,
        pocket_money: int,
        relayer_address: str,
        relayer_fee: int,
        memo: bytes,
    ) -> str:
        self._check_version(expected_version)

        values = {
            "merkle_root": merkle_root,
            "h_nullifier_old": old_nullifier_hash,
            "h_note_new": new_note,
            "token": token.scalar,
            "amount": amount,
            "commitment": withdraw_commitment(
                self.chain_id,
                expected_version,
                withdraw_address,
                relayer_address,
                relayer_fee,
                pocket_money,
                self.protocol_fee,
                memo,
            ),
            "mac_salt": mac_salt,
            "mac_commitment": mac_commitment,
        }
        await self._verify(CircuitType.WITHDRAW, proof, values)
        if merkle_root not in self._roots:
            raise TransactionReverted("Unknown Merkle root")
        self._check_unspent(old_nullifier_hash)
        if amount <= relayer_fee + self.protocol_fee:
            raise TransactionReverted("Amount does not cover fees")

        return self._mine(
            TransactionType.WITHDRAW,
            token,
            amount,
            old_nullifier_hash,
            new_note,
            self.protocol_fee,
            memo,
            to=withdraw_address,
            relayer_fee=relayer_fee,
            pocket_money=pocket_money,
        )


class LocalRelayer:
    """Relayer submitting straight to an InMemoryShielderChain."""

    def __init__(self, chain: InMemoryShielderChain, fee_address: str, fee: int = 0):
        self.chain = chain
        self.fee_address = fee_address
        self.fee = fee

    async def address(self) -> str:
        return self.fee_address

    async def quote_fees(self, token: Token, pocket_money: int) -> QuotedFees:
        return QuotedFees(total_fee=self.fee + pocket_money)

    async def withdraw(
        self,
        *,
        expected_version: str,
        token: Token,
        old_nullifier_hash: int,
        new_note: int,
        merkle_root: int,
        amount: int,
        proof: bytes,
        withdraw_address: str,
        mac_salt: int,
        mac_commitment: int,
        pocket_money: int,
        quoted_fee: int,
        memo: bytes,
    ) -> WithdrawResponse:
        if expected_version != self.chain.contract_version:
            raise VersionRejectedByRelayer(
                f"Version mismatch: relayer expects {self.chain.contract_version}"
            )
        tx_hash = await self.chain.submit_withdraw(
            expected_version=expected_version,
            token=token,
            old_nullifier_hash=old_nullifier_hash,
            new_note=new_note,
            merkle_root=merkle_root,
            amount=amount,
            proof=proof,
            withdraw_address=withdraw_address,
            mac_salt=mac_salt,
            mac_commitment=mac_commitment,
            pocket_money=pocket_money,
            relayer_address=self.fee_address,
            relayer_fee=quoted_fee,
            memo=memo,
        )
        return WithdrawResponse(tx_hash=tx_hash)
