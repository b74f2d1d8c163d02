"""In-memory ledger and relay used by the settlement tests."""
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from bundle_transfer.config import Settings
from bundle_transfer.jito import RelayError
from bundle_transfer.rpc import BlockReference, LedgerError, tx_signature

RECIPIENT = Keypair.from_seed(bytes(range(32))).pubkey()


def make_settings(**kw) -> Settings:
    data = dict(
        rpc_url="http://rpc.test",
        jito_url="http://jito.test",
        tip_stream_url="ws://tips.test",
        priority_fee=10_000,
        poll_interval=0,
    )
    data.update(kw)
    return Settings.model_validate(data)


def make_keys(n: int) -> list[Keypair]:
    return [Keypair.from_seed(bytes([i + 1]) * 32) for i in range(n)]


def addresses(keys) -> list[str]:
    return [str(kp.pubkey()) for kp in keys]


def signed_transfer(kp: Keypair, lamports: int = 1) -> Transaction:
    blockhash = Hash.new_unique()
    ix = transfer(TransferParams(from_pubkey=kp.pubkey(), to_pubkey=RECIPIENT, lamports=lamports))
    return Transaction([kp], Message.new_with_blockhash([ix], kp.pubkey(), blockhash), blockhash)


class Sleeps:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FakeLedger:
    def __init__(self, existing=(), *, slot=1_000, slot_step=10, sim_error=None):
        self.existing = set(existing)
        self.slot = slot
        self.slot_step = slot_step
        self.sim_error = sim_error or (lambda tx: None)
        self.confirmed: set[str] = set()

        self.account_calls: list[list[str]] = []
        self.references: list[BlockReference] = []
        self.simulated = []
        self.status_calls = 0

        self.lookup_failures = 0
        self.reference_failures = 0
        self.status_failures = 0

    async def get_multiple_accounts(self, pubkeys):
        self.account_calls.append(list(pubkeys))
        if self.lookup_failures:
            self.lookup_failures -= 1
            raise LedgerError("getMultipleAccounts failed: ConnectError")
        return [{"lamports": 1_000_000} if pk in self.existing else None for pk in pubkeys]

    async def get_latest_block_reference(self):
        if self.reference_failures:
            self.reference_failures -= 1
            raise LedgerError("getLatestBlockhash failed: ReadTimeout")
        ref = BlockReference(blockhash=Hash.new_unique(), slot=self.slot)
        self.references.append(ref)
        return ref

    async def simulate_transaction(self, tx):
        self.simulated.append(tx)
        return self.sim_error(tx)

    async def get_signature_statuses(self, signatures):
        self.status_calls += 1
        if self.status_failures:
            self.status_failures -= 1
            raise LedgerError("getSignatureStatuses failed: ConnectError")
        self.slot += self.slot_step
        statuses = [
            {"slot": self.slot, "confirmations": 0, "err": None, "confirmationStatus": "confirmed"}
            if sig in self.confirmed else None
            for sig in signatures
        ]
        return statuses, self.slot


class FakeRelay:
    """Lands bundles on the fake ledger unless told to drop or fail them."""

    def __init__(self, ledger: FakeLedger, *, drop=0, fail=0):
        self.ledger = ledger
        self.drop = drop
        self.fail = fail
        self.bundles = []

    async def send_bundle(self, bundle):
        if self.fail:
            self.fail -= 1
            raise RelayError("sendBundle failed: ConnectError")
        self.bundles.append(list(bundle))
        if self.drop:
            self.drop -= 1
        else:
            self.ledger.confirmed.update(tx_signature(tx) for tx in bundle)
        return tx_signature(bundle[0]), f"bundle-{len(self.bundles)}"
