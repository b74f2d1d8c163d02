import asyncio
import logging
import random
from dataclasses import dataclass, replace
from typing import Callable, Iterator, Protocol, Sequence

from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

import bundle_transfer.constants as C
from bundle_transfer.backoff import Backoff
from bundle_transfer.config import Settings
from bundle_transfer.jito import RelayError
from bundle_transfer.rpc import BlockReference, LedgerError, find_landed_txs, tx_signature
from bundle_transfer.txn_factory import PendingTxSet, TransferContext, TransferGroup, build_tx_set, chunk_groups

log = logging.getLogger("bundle_transfer.core")


class Ledger(Protocol):
    async def get_multiple_accounts(self, pubkeys: list[str]) -> list[dict | None]: ...
    async def get_latest_block_reference(self) -> BlockReference: ...
    async def simulate_transaction(self, tx: Transaction): ...
    async def get_signature_statuses(self, signatures: list[str]) -> tuple[list[dict | None], int]: ...


class Relay(Protocol):
    async def send_bundle(self, bundle: list[Transaction]) -> tuple[str, str]: ...


@dataclass(frozen=True, slots=True)
class Bundle:
    """Up to GROUP_SIZE tx sets submitted together. Only the first carries the tip."""
    tx_sets: tuple[PendingTxSet, ...] = ()

    def __len__(self):
        return len(self.tx_sets)

    @property
    def is_empty(self) -> bool:
        return not self.tx_sets

    @property
    def account_count(self) -> int:
        return sum(s.account_count for s in self.tx_sets)

    def append(self, tx_set: PendingTxSet) -> "Bundle":
        if len(self.tx_sets) >= C.GROUP_SIZE:
            raise ValueError(f"bundle already holds {C.GROUP_SIZE} tx sets")
        return Bundle(self.tx_sets + (tx_set,))

    def sign(self, blockhash: Hash) -> list[Transaction]:
        return [s.sign(blockhash) for s in self.tx_sets]


@dataclass(frozen=True, slots=True)
class Progress:
    remaining: int
    landed: int = 0
    abandoned: int = 0
    bundles_sent: int = 0
    resubmissions: int = 0

    def settle(self, accounts: int) -> "Progress":
        return replace(self, remaining=self.remaining - accounts, landed=self.landed + accounts)

    def abandon(self, accounts: int) -> "Progress":
        return replace(self, remaining=self.remaining - accounts, abandoned=self.abandoned + accounts)

    def sent(self, *, resubmission: bool) -> "Progress":
        return replace(self, bundles_sent=self.bundles_sent + 1, resubmissions=self.resubmissions + int(resubmission))


async def filter_registered(ledger: Ledger, accounts: Sequence[Keypair], limit: int = C.FETCH_ACCOUNT_LIMIT) -> list[Keypair]:
    """Keep the keypairs whose account exists on the ledger. A failed lookup aborts the run."""
    registered = set()
    for i in range(0, len(accounts), limit):
        batch = accounts[i : i + limit]
        found = await ledger.get_multiple_accounts([str(kp.pubkey()) for kp in batch])
        if len(found) != len(batch):
            raise LedgerError(f"getMultipleAccounts returned {len(found)} entries for {len(batch)} keys")
        registered.update(kp.pubkey() for kp, account in zip(batch, found) if account is not None)
    return [kp for kp in accounts if kp.pubkey() in registered]


def assemble(bundle: Bundle, groups: Iterator[TransferGroup], ctx: TransferContext, group_size: int = C.GROUP_SIZE) -> Bundle:
    """Top the bundle up to group_size tx sets from groups. The tip goes on the first set only."""
    while len(bundle) < group_size:
        group = next(groups, None)
        if group is None:
            break
        bundle = bundle.append(build_tx_set(group, ctx, is_first_in_bundle=bundle.is_empty))
    return bundle


async def simulate_bundle(ledger: Ledger, bundle: list[Transaction]) -> bool:
    """True when every transaction simulates cleanly. Stops at the first failure."""
    for tx in bundle:
        try:
            err = await ledger.simulate_transaction(tx)
        except LedgerError as e:
            log.error("fail to simulate transaction %s: %s", tx_signature(tx), e)
            return False
        if err is not None:
            log.error("fail to simulate transaction %s: %s", tx_signature(tx), err)
            return False
    return True


async def poll_confirmation(
    ledger: Ledger,
    signature: str,
    send_at_slot: int,
    *,
    expiration: int = C.SLOT_EXPIRATION,
    interval: float = C.POLL_INTERVAL,
    backoff: Backoff | None = None,
    sleep: Callable = asyncio.sleep,
) -> tuple[bool, int]:
    """Wait for signature to reach confirmed, or for the slot to pass send_at_slot + expiration.

    Returns (landed, last observed slot). Failed status lookups never advance the slot.
    """
    backoff = backoff or Backoff("signature status", sleep=sleep)
    latest_slot = send_at_slot
    landed = False

    while not landed and latest_slot < send_at_slot + expiration:
        await sleep(interval)
        try:
            statuses, slot = await ledger.get_signature_statuses([signature])
        except LedgerError as e:
            log.error("fail to get bundle status (sent at slot %s): %s", send_at_slot, e)
            await backoff.wait(e)
            continue
        backoff.reset()
        landed = bool(find_landed_txs([signature], statuses))
        latest_slot = max(latest_slot, slot)

    return landed, latest_slot


class BundleTransfer:
    """Drives eligible accounts through fill, sign, simulate, submit and poll until all are settled or abandoned."""

    def __init__(
        self,
        ledger: Ledger,
        relay: Relay,
        settings: Settings,
        *,
        choose: Callable[[Sequence], object] = random.choice,
        sleep: Callable = asyncio.sleep,
    ):
        self.ledger = ledger
        self.relay = relay
        self.settings = settings
        self.choose = choose
        self.state = C.LoopState.DONE
        self._sleep = sleep

    def _backoff(self, label: str) -> Backoff:
        return Backoff.from_settings(label, self.settings.retry, sleep=self._sleep)

    def _enter(self, state: C.LoopState) -> None:
        log.debug("%s --> %s", self.state, state)
        self.state = state

    async def fetch_block_reference(self, backoff: Backoff) -> BlockReference:
        while True:
            try:
                ref = await self.ledger.get_latest_block_reference()
            except LedgerError as e:
                log.error("fail to get latest blockhash: %s", e)
                await backoff.wait(e)
                continue
            backoff.reset()
            return ref

    async def run(self, accounts: Sequence[Keypair], recipient: Pubkey, lamports: int) -> Progress:
        tip = self.settings.require_priority_fee()
        s = self.settings

        accounts = await filter_registered(self.ledger, accounts, s.fetch_account_limit)
        log.info("transferring %s accounts", len(accounts))

        ctx = TransferContext(recipient=recipient, lamports=lamports, tip=tip, choose=self.choose)
        groups = iter(chunk_groups(accounts, recipient, lamports, s.group_size))
        progress = Progress(remaining=len(accounts))

        ref_backoff = self._backoff("latest blockhash")
        submit_backoff = self._backoff("send bundle")
        poll_backoff = self._backoff("signature status")

        bundle = Bundle()
        signed: list[Transaction] = []
        attempts = 0
        self._enter(C.LoopState.FILLING)

        while self.state is not C.LoopState.DONE:
            if self.state is C.LoopState.FILLING:
                bundle = assemble(bundle, groups, ctx, s.group_size)
                attempts = 0
                self._enter(C.LoopState.DONE if bundle.is_empty else C.LoopState.REFERENCING)

            elif self.state is C.LoopState.REFERENCING:
                ref = await self.fetch_block_reference(ref_backoff)
                signed = bundle.sign(ref.blockhash)
                self._enter(C.LoopState.SIMULATING)

            elif self.state is C.LoopState.SIMULATING:
                if await simulate_bundle(self.ledger, signed):
                    self._enter(C.LoopState.SUBMITTING)
                    continue
                # Every account in the bundle is dropped, including groups that simulated fine
                progress = progress.abandon(bundle.account_count)
                log.error(
                    "%s bundle: accounts=%s remaining=%s",
                    C.BundleOutcome.ABANDONED, bundle.account_count, progress.remaining,
                )
                bundle = Bundle()
                self._enter(C.LoopState.FILLING)

            elif self.state is C.LoopState.SUBMITTING:
                try:
                    first_tx, bundle_id = await self.relay.send_bundle(signed)
                except RelayError as e:
                    log.error("fail to send bundle: %s", e)
                    await submit_backoff.wait(e)
                    self._enter(C.LoopState.REFERENCING)
                    continue
                submit_backoff.reset()
                attempts += 1
                progress = progress.sent(resubmission=attempts > 1)
                log.info(
                    "%s bundle %s: first_tx=%s accounts=%s remaining=%s slot=%s attempt=%s",
                    C.BundleOutcome.SENT, bundle_id, first_tx, bundle.account_count,
                    progress.remaining, ref.slot, attempts,
                )
                self._enter(C.LoopState.POLLING)

            elif self.state is C.LoopState.POLLING:
                landed, slot = await poll_confirmation(
                    self.ledger,
                    first_tx,
                    ref.slot,
                    expiration=s.slot_expiration,
                    interval=s.poll_interval,
                    backoff=poll_backoff,
                    sleep=self._sleep,
                )
                if landed:
                    progress = progress.settle(bundle.account_count)
                    log.info(
                        "%s bundle sent at slot %s: accounts=%s remaining=%s landed_by=%s",
                        C.BundleOutcome.LANDED, ref.slot, bundle.account_count, progress.remaining, slot,
                    )
                    bundle = Bundle()
                    self._enter(C.LoopState.FILLING)
                else:
                    log.error(
                        "%s bundle sent at slot %s: accounts=%s remaining=%s last_slot=%s, retrying",
                        C.BundleOutcome.DROPPED, ref.slot, bundle.account_count, progress.remaining, slot,
                    )
                    self._enter(C.LoopState.REFERENCING)

        log.info(
            "done: landed=%s abandoned=%s remaining=%s bundles_sent=%s resubmissions=%s",
            progress.landed, progress.abandoned, progress.remaining, progress.bundles_sent, progress.resubmissions,
        )
        return progress
