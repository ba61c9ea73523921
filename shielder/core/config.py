"""
Client configuration for the shielder engine.

Defines protocol constants, proving-service parameters and operational paths.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Protocol constants
CONTRACT_VERSION = "0x000101"
NATIVE_TOKEN_ADDRESS = "0x0000000000000000000000000000000000000000"
NOTE_VERSION = 0
FIRST_ACCOUNT_INDEX = 0
STORAGE_SCHEMA_VERSION = 2

# Relayer endpoints
RELAY_PATH = "/relay"
FEE_PATH = "/quote_fees"
FEE_ADDRESS_PATH = "/fee_address"

# TEE padding buckets (ciphertext bytes), must exceed the largest real payload
DEFAULT_REQUEST_PADDED_LENGTH = 15000
DEFAULT_RESPONSE_PADDED_LENGTH = 10000


@dataclass
class ShielderConfig:
    """Client configuration parameters"""

    # Protocol
    contract_version: str = CONTRACT_VERSION
    chain_id: int = 1

    # Confidential proving service
    tee_url: Optional[str] = None
    require_attestation: bool = True
    request_padded_length: int = DEFAULT_REQUEST_PADDED_LENGTH
    response_padded_length: int = DEFAULT_RESPONSE_PADDED_LENGTH

    # Relayer
    relayer_url: Optional[str] = None

    # Transport
    http_timeout: float = 60.0

    # Sync
    per_token_locks: bool = False

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    # Paths
    data_dir: Path = Path("~/.shielder")

    def __post_init__(self):
        """Normalize paths"""
        self.data_dir = Path(self.data_dir).expanduser()


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(env_file: Optional[str] = None) -> ShielderConfig:
    """
    Load configuration from SHIELDER_* environment variables.

    Args:
        env_file: Optional path to a .env file; defaults to ./.env if present

    Returns:
        ShielderConfig instance
    """
    load_dotenv(env_file)

    config = ShielderConfig()
    env = os.environ

    if "SHIELDER_CONTRACT_VERSION" in env:
        config.contract_version = env["SHIELDER_CONTRACT_VERSION"]
    if "SHIELDER_CHAIN_ID" in env:
        config.chain_id = int(env["SHIELDER_CHAIN_ID"])
    if "SHIELDER_TEE_URL" in env:
        config.tee_url = env["SHIELDER_TEE_URL"]
    if "SHIELDER_REQUIRE_ATTESTATION" in env:
        config.require_attestation = _env_bool(env["SHIELDER_REQUIRE_ATTESTATION"])
    if "SHIELDER_REQUEST_PADDED_LENGTH" in env:
        config.request_padded_length = int(env["SHIELDER_REQUEST_PADDED_LENGTH"])
    if "SHIELDER_RESPONSE_PADDED_LENGTH" in env:
        config.response_padded_length = int(env["SHIELDER_RESPONSE_PADDED_LENGTH"])
    if "SHIELDER_RELAYER_URL" in env:
        config.relayer_url = env["SHIELDER_RELAYER_URL"]
    if "SHIELDER_HTTP_TIMEOUT" in env:
        config.http_timeout = float(env["SHIELDER_HTTP_TIMEOUT"])
    if "SHIELDER_PER_TOKEN_LOCKS" in env:
        config.per_token_locks = _env_bool(env["SHIELDER_PER_TOKEN_LOCKS"])
    if "SHIELDER_DATA_DIR" in env:
        config.data_dir = Path(env["SHIELDER_DATA_DIR"]).expanduser()
    if "SHIELDER_LOG_LEVEL" in env:
        config.log_level = env["SHIELDER_LOG_LEVEL"]
    if "SHIELDER_LOG_FILE" in env:
        config.log_file = Path(env["SHIELDER_LOG_FILE"]).expanduser()

    return config
