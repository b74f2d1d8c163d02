"""JSON-RPC access to a Solana node at "confirmed" commitment."""
import asyncio
import base64
import itertools
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from solders.hash import Hash, ParseHashError
from solders.transaction import Transaction

import bundle_transfer.constants as C

log = logging.getLogger("bundle_transfer.rpc")

COMMITMENT = "confirmed"


class LedgerError(RuntimeError):
    """Transport failure or JSON-RPC error from the ledger node."""


@dataclass(frozen=True, slots=True)
class BlockReference:
    blockhash: Hash
    slot: int


def encode_tx(tx: Transaction) -> str:
    return base64.b64encode(bytes(tx)).decode("utf-8")


def tx_signature(tx: Transaction) -> str:
    """The fee payer's signature, which is also the transaction id."""
    return str(tx.signatures[0])


def satisfies_confirmed(status: dict | None) -> bool:
    if status is None:
        return False
    level = status.get("confirmationStatus")
    if level is None:
        # Nodes that predate confirmationStatus: no confirmation count means rooted
        return status.get("confirmations") is None or status["confirmations"] > 1
    return level in ("confirmed", "finalized")


def find_landed_txs(signatures: list[str], statuses: list[dict | None]) -> list[str]:
    return [sig for sig, status in zip(signatures, statuses) if satisfies_confirmed(status)]


class LedgerClient:
    def __init__(self, url: str = C.DEFAULT_RPC_URL, *, timeout: float = C.RPC_TIMEOUT, http: httpx.AsyncClient | None = None):
        self.url = url
        self.timeout = timeout
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def _rpc(self, method: str, params: list) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            r = await asyncio.wait_for(self._http.post(self.url, json=payload), timeout=self.timeout)
            r.raise_for_status()
            body = r.json()
        except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as e:
            raise LedgerError(f"{method} failed: {e.__class__.__name__} {e}") from e
        if "error" in body:
            raise LedgerError(f"{method} failed: {body['error']}")
        return body["result"]

    async def get_multiple_accounts(self, pubkeys: list[str]) -> list[dict | None]:
        result = await self._rpc(
            "getMultipleAccounts", [pubkeys, {"commitment": COMMITMENT, "encoding": "base64"}]
        )
        return result["value"]

    async def get_latest_block_reference(self) -> BlockReference:
        result = await self._rpc("getLatestBlockhash", [{"commitment": COMMITMENT}])
        try:
            blockhash = Hash.from_string(result["value"]["blockhash"])
        except ParseHashError as e:
            raise LedgerError(f"getLatestBlockhash returned a bad blockhash: {e}") from e
        return BlockReference(blockhash=blockhash, slot=int(result["context"]["slot"]))

    async def simulate_transaction(self, tx: Transaction) -> Any:
        """Dry run tx. Returns the execution error, None when it would succeed."""
        result = await self._rpc(
            "simulateTransaction",
            [encode_tx(tx), {"encoding": "base64", "commitment": COMMITMENT, "sigVerify": False}],
        )
        value = result["value"]
        if value.get("err") is not None:
            log.debug("simulation logs for %s: %s", tx_signature(tx), value.get("logs"))
        return value.get("err")

    async def get_signature_statuses(self, signatures: list[str]) -> tuple[list[dict | None], int]:
        result = await self._rpc("getSignatureStatuses", [signatures])
        return result["value"], int(result["context"]["slot"])

    async def get_balances(self, pubkeys: list[str], *, limit: int = C.FETCH_ACCOUNT_LIMIT) -> dict[str, int]:
        """Lamports held by each pubkey that has an account. Missing accounts are left out."""
        balances = {}
        for i in range(0, len(pubkeys), limit):
            chunk = pubkeys[i : i + limit]
            for pubkey, account in zip(chunk, await self.get_multiple_accounts(chunk)):
                if account is not None:
                    balances[pubkey] = int(account["lamports"])
        return balances
