"""Jito block engine client: tip instructions and atomic bundle submission."""
import asyncio
import logging
import random
from typing import Callable, Sequence

import httpx
from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

import bundle_transfer.constants as C
from bundle_transfer.rpc import encode_tx, tx_signature

log = logging.getLogger("bundle_transfer.jito")

BUNDLES_PATH = "/api/v1/bundles"


class RelayError(RuntimeError):
    """Bundle could not be handed to the block engine."""


def build_bribe_ix(payer: Pubkey, lamports: int, choose: Callable[[Sequence], str] = random.choice) -> Instruction:
    tip_account = Pubkey.from_string(choose(C.JITO_TIP_ACCOUNTS))
    return transfer(TransferParams(from_pubkey=payer, to_pubkey=tip_account, lamports=lamports))


class JitoClient:
    def __init__(self, url: str = C.DEFAULT_JITO_URL, *, timeout: float = C.SUBMIT_TIMEOUT, http: httpx.AsyncClient | None = None):
        self.url = url.rstrip("/") + BUNDLES_PATH
        self.timeout = timeout
        self._http = http or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def _post(self, method: str, params: list):
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        try:
            r = await asyncio.wait_for(self._http.post(self.url, json=payload), timeout=self.timeout)
            r.raise_for_status()
            body = r.json()
        except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as e:
            raise RelayError(f"{method} failed: {e.__class__.__name__} {e}") from e
        if "error" in body:
            raise RelayError(f"{method} failed: {body['error']}")
        return body["result"]

    async def send_bundle(self, bundle: list[Transaction]) -> tuple[str, str]:
        """Submit signed transactions as one all-or-nothing bundle.

        Returns (signature of the first transaction, bundle id). The first signature
        stands in for the whole bundle when polling for confirmation.
        """
        if not bundle:
            raise ValueError("cannot send an empty bundle")
        encoded = [encode_tx(tx) for tx in bundle]
        bundle_id = await self._post("sendBundle", [encoded, {"encoding": "base64"}])
        return tx_signature(bundle[0]), bundle_id

    async def get_tip_accounts(self) -> list[str]:
        return await self._post("getTipAccounts", [])
