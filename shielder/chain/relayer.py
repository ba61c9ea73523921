"""
Relayer client.

The relayer submits withdrawals on the user's behalf in exchange for a
quoted fee, so the withdrawing address never needs native gas.

Endpoints:
- POST /relay        submit a withdrawal, returns {"tx_hash": ...}
- GET  /quote_fees   fee quote for a token and pocket money
- GET  /fee_address  address the relayer fee is paid to

A relayer running against a newer contract rejects the client's expected
version; that is surfaced as VersionRejectedByRelayer.
"""

import base64
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol

from shielder.chain.contract import ContractVersionRejected
from shielder.chain.http import HttpTransport
from shielder.core.config import FEE_ADDRESS_PATH, FEE_PATH, RELAY_PATH
from shielder.core.state.types import Token
from shielder.errors import TransportError
from shielder.utils.logger import get_logger

logger = get_logger("relayer")


class VersionRejectedByRelayer(ContractVersionRejected):
    """The relayer refused the expected contract version."""


@dataclass(frozen=True)
class WithdrawResponse:
    tx_hash: str


@dataclass(frozen=True)
class QuotedFees:
    """Fee quote in the withdrawn token."""
    total_fee: int
    raw: Optional[Dict[str, Any]] = None


class Relayer(Protocol):
    async def address(self) -> str:
        ...

    async def quote_fees(self, token: Token, pocket_money: int) -> QuotedFees:
        ...

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
        ...


def _string(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected a string, got {type(value).__name__}")
    return value


def _field(data: Any, name: str, convert: Callable[[Any], Any], url: str) -> Any:
    """Read and convert one field of a relayer response."""
    try:
        return convert(data[name])
    except (KeyError, TypeError, ValueError) as e:
        raise TransportError(f"Malformed relayer response from {url}: {name}", body=str(data)) from e


class HttpRelayer:
    """Relayer reached over HTTP."""

    def __init__(self, url: str, transport: Optional[HttpTransport] = None):
        self.url = url.rstrip("/")
        self.transport = transport or HttpTransport()

    async def address(self) -> str:
        url = f"{self.url}{FEE_ADDRESS_PATH}"
        data = await self.transport.get_json(url)
        return _field(data, "address", _string, url)

    async def quote_fees(self, token: Token, pocket_money: int) -> QuotedFees:
        data = await self.transport.get_json(
            f"{self.url}{FEE_PATH}",
            params={"fee_token": token.address, "pocket_money": str(pocket_money)},
        )
        return QuotedFees(total_fee=_field(data, "total_fee", int, f"{self.url}{FEE_PATH}"), raw=data)

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
        body = {
            "expected_contract_version": expected_version,
            "fee_token": token.address,
            "nullifier_hash": str(old_nullifier_hash),
            "new_note": str(new_note),
            "current_merkle_root": str(merkle_root),
            "amount": str(amount),
            "proof": base64.b64encode(proof).decode("ascii"),
            "withdraw_address": withdraw_address,
            "mac_salt": str(mac_salt),
            "mac_commitment": str(mac_commitment),
            "pocket_money": str(pocket_money),
            "quoted_fees": str(quoted_fee),
            "memo": memo.hex(),
        }
        try:
            data = await self.transport.post_json(f"{self.url}{RELAY_PATH}", body)
        except TransportError as e:
            if e.status == 400 and "version" in e.body.lower():
                raise VersionRejectedByRelayer(e.body) from e
            raise

        tx_hash = _field(data, "tx_hash", _string, f"{self.url}{RELAY_PATH}")
        logger.info(f"Relayer accepted withdrawal: {tx_hash}")
        return WithdrawResponse(tx_hash=tx_hash)
