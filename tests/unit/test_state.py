"""
Tests for the account state model and the Merkle tree.

These tests verify:
1. Token validation and native detection
2. AccountState invariants and persistence round trip
3. ShielderTransaction variants
4. Merkle tree insert / root / proof
"""

import pytest

from shielder.core.config import NATIVE_TOKEN_ADDRESS
from shielder.core.state import (
    AccountState,
    AccountStateMerkleIndexed,
    MerklePath,
    MerkleTree,
    ShielderTransaction,
    Token,
    TransactionType,
    WithdrawDetails,
    advance,
    empty_account_state,
    erc20_token,
    native_token,
    with_index,
)
from shielder.core.state.types import account_state_from_json


ERC20 = "0x" + "AB" * 20


# =============================================================================
# Token Tests
# =============================================================================


class TestToken:
    """Tests for Token."""

    def test_native(self):
        token = native_token()
        assert token.is_native
        assert token.address == NATIVE_TOKEN_ADDRESS
        assert str(token) == "native"
        assert token.scalar == 0

    def test_erc20_lowercased(self):
        token = erc20_token(ERC20)
        assert not token.is_native
        assert token.address == ERC20.lower()
        assert token == Token(ERC20.lower())

    @pytest.mark.parametrize("address", ["0x1234", "ab" * 21, "0x" + "zz" * 20])
    def test_invalid_address(self, address):
        with pytest.raises(ValueError):
            Token(address)


# =============================================================================
# AccountState Tests
# =============================================================================


class TestAccountState:
    """Tests for AccountState and its indexed variant."""

    def test_empty_state(self):
        state = empty_account_state(123, native_token())
        assert state.nonce == 0
        assert state.balance == 0
        assert state.current_note == 0
        assert not state.is_indexed

    def test_negative_values_rejected(self):
        with pytest.raises(ValueError):
            AccountState(id=1, token=native_token(), nonce=-1, balance=0, current_note=0)
        with pytest.raises(ValueError):
            AccountState(id=1, token=native_token(), nonce=0, balance=-5, current_note=0)
        with pytest.raises(ValueError):
            AccountStateMerkleIndexed(
                id=1, token=native_token(), nonce=1, balance=0, current_note=0,
                current_note_index=-1,
            )

    def test_advance_and_index(self):
        state = empty_account_state(7, erc20_token(ERC20))
        advanced = advance(state, 100, 555)
        assert advanced.nonce == 1
        assert advanced.balance == 100
        assert advanced.current_note == 555
        assert not advanced.is_indexed

        indexed = with_index(advanced, 4)
        assert indexed.is_indexed
        assert indexed.current_note_index == 4
        assert indexed.nonce == advanced.nonce

    def test_json_round_trip(self):
        state = with_index(advance(empty_account_state(7, erc20_token(ERC20)), 100, 555), 4)
        restored = account_state_from_json(state.to_json())
        assert restored == state
        assert isinstance(restored, AccountStateMerkleIndexed)

    def test_json_round_trip_unindexed(self):
        state = empty_account_state(7, native_token())
        restored = account_state_from_json(state.to_json())
        assert restored == state
        assert not restored.is_indexed

    def test_frozen(self):
        state = empty_account_state(1, native_token())
        with pytest.raises(AttributeError):
            state.balance = 10


# =============================================================================
# ShielderTransaction Tests
# =============================================================================


class TestShielderTransaction:
    """Tests for the transaction variants."""

    def _tx(self, tx_type, withdraw=None):
        return ShielderTransaction(
            type=tx_type,
            amount=50,
            tx_hash="0x" + "00" * 32,
            block=3,
            token=native_token(),
            new_note=9,
            withdraw=withdraw,
        )

    def test_deposit_has_no_withdraw_fields(self):
        tx = self._tx(TransactionType.DEPOSIT)
        assert tx.balance_delta == 50
        assert tx.to is None
        assert tx.relayer_fee is None
        assert tx.pocket_money is None

    def test_withdraw_fields(self):
        tx = self._tx(TransactionType.WITHDRAW, WithdrawDetails("0x" + "22" * 20, 5, 0))
        assert tx.balance_delta == -50
        assert tx.to == "0x" + "22" * 20
        assert tx.relayer_fee == 5

    def test_withdraw_requires_details(self):
        with pytest.raises(ValueError):
            self._tx(TransactionType.WITHDRAW)

    def test_details_only_on_withdraw(self):
        with pytest.raises(ValueError):
            self._tx(TransactionType.NEW_ACCOUNT, WithdrawDetails("0x" + "22" * 20, 5, 0))


# =============================================================================
# Merkle Tree Tests
# =============================================================================


class TestMerkleTree:
    """Tests for MerkleTree and MerklePath."""

    def test_empty_root_stable(self):
        assert MerkleTree(4).root() == MerkleTree(4).root()

    def test_insert_returns_index(self):
        tree = MerkleTree(4)
        assert tree.insert(10) == 0
        assert tree.insert(20) == 1
        assert len(tree) == 2
        assert 20 in tree
        assert tree.get_leaf(1) == 20

    def test_root_changes_on_insert(self):
        tree = MerkleTree(4)
        empty = tree.root()
        tree.insert(10)
        assert tree.root() != empty

    def test_proofs_verify(self):
        tree = MerkleTree(4)
        leaves = [11, 22, 33, 44, 55]
        for leaf in leaves:
            tree.insert(leaf)
        for index, leaf in enumerate(leaves):
            path = tree.prove(index)
            assert path.root == tree.root()
            assert path.verify(leaf)
            assert not path.verify(leaf + 1)

    def test_path_dict_round_trip(self):
        tree = MerkleTree(4)
        tree.insert(1)
        path = tree.prove(0)
        assert MerklePath.from_dict(path.to_dict()) == path

    def test_full_tree(self):
        tree = MerkleTree(2)
        for i in range(4):
            tree.insert(i + 1)
        with pytest.raises(ValueError):
            tree.insert(99)

    def test_prove_out_of_range(self):
        with pytest.raises(IndexError):
            MerkleTree(4).prove(0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
