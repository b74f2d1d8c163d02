import argparse
import asyncio
import contextlib
import logging
import sys

from solders.pubkey import Pubkey

from bundle_transfer.backoff import RetryExhausted
from bundle_transfer.bundle_core import BundleTransfer
from bundle_transfer.config import ConfigError, Settings, load_settings
from bundle_transfer.jito import JitoClient
from bundle_transfer.keys import KeyLoadError, read_keys
from bundle_transfer.logging_config import setup_logging
from bundle_transfer.rpc import LedgerClient, LedgerError
from bundle_transfer.tip_info import LAMPORTS_PER_SOL
from bundle_transfer.ws import log_tips, tip_stream_listener

log = logging.getLogger("bundle_transfer.cli")


def pubkey(value: str) -> Pubkey:
    try:
        return Pubkey.from_string(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid pubkey {value!r}: {e}") from e


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="bundle-transfer")
    parser.add_argument("--rpc",
                        help="Solana RPC endpoint (default from config.toml / RPC_URL).",
                        )
    parser.add_argument("--priority-fee",
                        type=int,
                        help="Jito tip in lamports, paid once per bundle.",
                        )
    sub = parser.add_subparsers(dest="command", required=True)

    bt = sub.add_parser("bundle-transfer", help="Send SOL from every key in a folder through Jito bundles.")
    bt.add_argument("--key-folder", required=True, help="The folder that contains all the keys used for transfer")
    bt.add_argument("--recipient", required=True, type=pubkey, help="The recipient address to receive SOL")
    bt.add_argument("--amount", required=True, type=int, help="The amount of SOL to transfer, in lamports")

    sub.add_parser("tip-stream", help="Log landed tip percentiles from the Jito tip stream.")

    bal = sub.add_parser("balances", help="Show balances of the keys in a folder.")
    bal.add_argument("--key-folder", required=True, help="The folder that contains the keys")
    return parser.parse_args(argv)


def overrides(a) -> dict:
    return {"rpc_url": a.rpc, "priority_fee": a.priority_fee}


async def bundle_transfer(settings: Settings, key_folder: str, recipient: Pubkey, amount: int):
    settings.require_priority_fee()
    accounts = read_keys(key_folder)
    async with LedgerClient(settings.rpc_url, timeout=settings.rpc_timeout) as ledger, \
            JitoClient(settings.jito_url, timeout=settings.jito_timeout) as relay:
        return await BundleTransfer(ledger, relay, settings).run(accounts, recipient, amount)


async def balances(settings: Settings, key_folder: str) -> dict[str, int]:
    pubkeys = [str(kp.pubkey()) for kp in read_keys(key_folder)]
    async with LedgerClient(settings.rpc_url, timeout=settings.rpc_timeout) as ledger:
        found = await ledger.get_balances(pubkeys, limit=settings.fetch_account_limit)
    for pk in pubkeys:
        if pk in found:
            log.info("%s %.9f SOL", pk, found[pk] / LAMPORTS_PER_SOL)
        else:
            log.info("%s no account", pk)
    log.info("total %.9f SOL in %s/%s accounts", sum(found.values()) / LAMPORTS_PER_SOL, len(found), len(pubkeys))
    return found


async def tip_stream(settings: Settings):
    stop = asyncio.Event()
    queue: asyncio.Queue = asyncio.Queue(maxsize=1000)
    consumer = asyncio.create_task(log_tips(queue, stop))
    try:
        await tip_stream_listener(stop, settings.tip_stream_url, queue)
    finally:
        stop.set()
        with contextlib.suppress(asyncio.CancelledError):
            await consumer


def main(argv=None) -> int:
    setup_logging()
    a = parse_args(argv)
    try:
        settings = load_settings(**overrides(a))
        if a.command == "bundle-transfer":
            asyncio.run(bundle_transfer(settings, a.key_folder, a.recipient, a.amount))
        elif a.command == "balances":
            asyncio.run(balances(settings, a.key_folder))
        elif a.command == "tip-stream":
            asyncio.run(tip_stream(settings))
    except (ConfigError, KeyLoadError, LedgerError, RetryExhausted) as e:
        log.error("%s", e)
        return 1
    except KeyboardInterrupt:
        log.info("Quitting")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
