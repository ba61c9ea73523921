from pathlib import Path
from typing import Dict, Optional

from shielder.core.config import STORAGE_SCHEMA_VERSION
from shielder.core.storage.sqlite_adapter import SQLiteAdapter
from shielder.utils.logger import get_logger

logger = get_logger("storage.manager")

ACCOUNT_STATES_BUCKET = "account_states"
ACCOUNT_INDICES_BUCKET = "account_indices"


class StorageManager:
    """
    Persistent storage for one seed's shielded accounts.

    Handles:
    - One account state record per token (JSON)
    - Token <-> account index assignments
    - Schema versioning: a database written with another schema version
      is wiped so that state is rebuilt from the chain
    """

    def __init__(self, data_dir: Path, db_name: str = "shielder.db"):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        self._check_schema_version()
        logger.info(f"StorageManager initialized at {self.db_path}")

    def _check_schema_version(self):
        stored = self.adapter.get_meta("schema_version")
        if stored is not None and int(stored) != STORAGE_SCHEMA_VERSION:
            logger.warning(
                f"Storage schema {stored} != {STORAGE_SCHEMA_VERSION}, "
                "clearing account data for re-sync"
            )
            self.adapter.clear_bucket(ACCOUNT_STATES_BUCKET)
            self.adapter.clear_bucket(ACCOUNT_INDICES_BUCKET)
        self.adapter.set_meta("schema_version", str(STORAGE_SCHEMA_VERSION))

    def close(self):
        self.adapter.close()

    # =========================================================================
    # Account States
    # =========================================================================

    def save_account_state(self, token_address: str, state_json: str):
        self.adapter.put(ACCOUNT_STATES_BUCKET, token_address, state_json)

    def get_account_state(self, token_address: str) -> Optional[str]:
        return self.adapter.get(ACCOUNT_STATES_BUCKET, token_address)

    def all_account_states(self) -> Dict[str, str]:
        return dict(self.adapter.items(ACCOUNT_STATES_BUCKET))

    # =========================================================================
    # Account Indices
    # =========================================================================

    def save_account_index(self, account_index: int, token_address: str):
        self.adapter.put(ACCOUNT_INDICES_BUCKET, str(account_index), token_address)

    def get_token_address(self, account_index: int) -> Optional[str]:
        return self.adapter.get(ACCOUNT_INDICES_BUCKET, str(account_index))

    def account_indices(self) -> Dict[int, str]:
        return {int(k): v for k, v in self.adapter.items(ACCOUNT_INDICES_BUCKET)}
