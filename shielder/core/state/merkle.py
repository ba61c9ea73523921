"""
Append-only Merkle tree of note hashes.

Conceptual Background:
---------------------
The ledger keeps every note hash as a leaf of a fixed-depth binary Merkle
tree. Spending a note requires proving membership of the old note under a
recent root, so the client needs the note's authentication path.

- Leaves are never removed (spent notes are tracked by nullifier hashes)
- Empty positions hold zero subtrees, so the root does not depend on padding
- Internal nodes are Poseidon hashes, recomputable inside circuits

Properties:
----------
- Insert: O(1) (root invalidated)
- Root: O(n) on first access after insert, then cached
- Prove: O(n)
- Verify: O(depth)
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Tuple

from shielder.crypto import is_scalar, merkle_node

DEFAULT_TREE_DEPTH = 16


@lru_cache(maxsize=None)
def _zero_hashes(depth: int) -> Tuple[int, ...]:
    """zeros[h] is the root of an empty subtree of height h."""
    zeros = [0]
    for _ in range(depth):
        zeros.append(merkle_node(zeros[-1], zeros[-1]))
    return tuple(zeros)


@dataclass(frozen=True)
class MerklePath:
    """
    Authentication path for one leaf.

    Attributes:
        index: Leaf position; bit h selects the side at height h
        siblings: Sibling hashes from the leaf level upward
        root: Root the path leads to
    """
    index: int
    siblings: Tuple[int, ...]
    root: int

    def compute_root(self, leaf: int) -> int:
        current = leaf
        for height, sibling in enumerate(self.siblings):
            if (self.index >> height) & 1:
                current = merkle_node(sibling, current)
            else:
                current = merkle_node(current, sibling)
        return current

    def verify(self, leaf: int) -> bool:
        return self.compute_root(leaf) == self.root

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "siblings": [str(s) for s in self.siblings],
            "root": str(self.root),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MerklePath":
        return cls(
            index=int(data["index"]),
            siblings=tuple(int(s) for s in data["siblings"]),
            root=int(data["root"]),
        )


class MerkleTree:
    """
    Fixed-depth append-only binary Merkle tree.

    Attributes:
        depth: Number of levels above the leaves
        leaves: Leaf values (field elements) in insertion order
    """

    def __init__(self, depth: int = DEFAULT_TREE_DEPTH):
        self.depth = depth
        self.leaves: List[int] = []
        self._root_cache: Optional[int] = None

    @property
    def capacity(self) -> int:
        return 1 << self.depth

    def insert(self, leaf: int) -> int:
        """
        Append a leaf.

        Returns:
            Index of the inserted leaf
        """
        if not is_scalar(leaf):
            raise ValueError("Leaf must be a field element")
        if len(self.leaves) >= self.capacity:
            raise ValueError(f"Merkle tree full ({self.capacity} leaves)")

        index = len(self.leaves)
        self.leaves.append(leaf)
        self._root_cache = None
        return index

    def _layers(self) -> List[List[int]]:
        """Non-empty prefix of every layer, leaves first."""
        zeros = _zero_hashes(self.depth)
        layers = [list(self.leaves)]
        for height in range(self.depth):
            layer = layers[-1]
            next_layer = []
            for i in range(0, len(layer), 2):
                right = layer[i + 1] if i + 1 < len(layer) else zeros[height]
                next_layer.append(merkle_node(layer[i], right))
            layers.append(next_layer)
        return layers

    def root(self) -> int:
        if not self.leaves:
            return _zero_hashes(self.depth)[self.depth]
        if self._root_cache is None:
            self._root_cache = self._layers()[-1][0]
        return self._root_cache

    def prove(self, leaf_index: int) -> MerklePath:
        """Authentication path for the leaf at `leaf_index`."""
        if not (0 <= leaf_index < len(self.leaves)):
            raise IndexError(f"Leaf index {leaf_index} out of range")

        zeros = _zero_hashes(self.depth)
        layers = self._layers()
        siblings = []
        idx = leaf_index
        for height in range(self.depth):
            sibling_idx = idx ^ 1
            layer = layers[height]
            siblings.append(layer[sibling_idx] if sibling_idx < len(layer) else zeros[height])
            idx >>= 1

        self._root_cache = layers[-1][0]
        return MerklePath(index=leaf_index, siblings=tuple(siblings), root=self._root_cache)

    def __len__(self) -> int:
        return len(self.leaves)

    def __contains__(self, leaf: int) -> bool:
        return leaf in self.leaves

    def get_leaf(self, index: int) -> int:
        return self.leaves[index]
