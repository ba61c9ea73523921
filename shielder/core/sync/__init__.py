"""
Chain synchronization: transition finder and state synchronizer.
"""

from shielder.core.sync.finder import (
    AccountOnchain,
    ChainStateTransition,
    StateTransition,
    TokenAccountFinder,
)
from shielder.core.sync.synchronizer import StateSynchronizer

__all__ = [
    "AccountOnchain",
    "ChainStateTransition",
    "StateTransition",
    "TokenAccountFinder",
    "StateSynchronizer",
]
