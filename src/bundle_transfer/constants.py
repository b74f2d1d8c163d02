from typing import Final
from enum import StrEnum

DEFAULT_RPC_URL: Final = "https://api.mainnet-beta.solana.com"
DEFAULT_JITO_URL: Final = "https://mainnet.block-engine.jito.wtf"
DEFAULT_TIP_STREAM_URL: Final = "wss://bundles.jito.wtf/api/v1/bundles/tip_stream"

# Jito tip accounts. Any one of them can receive the bundle tip.
JITO_TIP_ACCOUNTS: Final = (
    "96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5",
    "HFqU5x63VTqvQss8hp11i4wVV8bD44PvwucfZ2bU7gRe",
    "Cw8CFyM9FkoMi7K7Crf6HNQqf4uEMzpKw6QNghXLvLkY",
    "ADaUMid9yfUytqMBgopwjb2DTLSokTSzL1zt6iGPaS49",
    "DfXygSm4jCyNCybVYYK6DwvWqjKee8pbDmJGcLWNDXjh",
    "ADuUkR4vqLUMWXxW9gh6D6L8pMSawimctcNZ5pGwDcEt",
    "DttWaMuVvTiduZRnguLF7jNxTgiMBZ1hyAumKUiL2KRL",
    "3AVi9Tg9Uo68tJfuvoKvqKNWKkC5wPdSSdeBnizKZ6jT",
)


class LoopState(StrEnum):
    FILLING     = "FILLING"
    REFERENCING = "REFERENCING"
    SIMULATING  = "SIMULATING"
    SUBMITTING  = "SUBMITTING"
    POLLING     = "POLLING"
    DONE        = "DONE"


class BundleOutcome(StrEnum):
    SENT      = "SENT"
    LANDED    = "LANDED"
    DROPPED   = "DROPPED"
    ABANDONED = "ABANDONED"


GROUP_SIZE = 5  # Max transactions per Jito bundle, also max signers per transfer tx
FETCH_ACCOUNT_LIMIT = 100  # getMultipleAccounts caps at 100 keys per call
SLOT_EXPIRATION = 150  # A blockhash is good for ~150 slots
POLL_INTERVAL = 2.0
RPC_TIMEOUT = 10.0
SUBMIT_TIMEOUT = 20.0

RETRY_BASE_DELAY = 1.0
RETRY_MAX_DELAY = 10.0
RETRY_MAX_ATTEMPTS = 30

__all__ = [
    "DEFAULT_JITO_URL",
    "DEFAULT_RPC_URL",
    "DEFAULT_TIP_STREAM_URL",
    "FETCH_ACCOUNT_LIMIT",
    "GROUP_SIZE",
    "JITO_TIP_ACCOUNTS",
    "POLL_INTERVAL",
    "RETRY_BASE_DELAY",
    "RETRY_MAX_ATTEMPTS",
    "RETRY_MAX_DELAY",
    "RPC_TIMEOUT",
    "SLOT_EXPIRATION",
    "SUBMIT_TIMEOUT",

    ######
    "LoopState",
    "BundleOutcome",
]
