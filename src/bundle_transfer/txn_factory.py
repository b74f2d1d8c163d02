import logging
import random
from dataclasses import dataclass, field
from typing import Callable, Sequence

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

import bundle_transfer.constants as C
from bundle_transfer.jito import build_bribe_ix

log = logging.getLogger("bundle_transfer.txn_factory")


@dataclass(frozen=True, slots=True)
class TransferGroup:
    """Co-signers of one transfer transaction, all sending `lamports` to `recipient`."""
    signers: tuple[Keypair, ...]
    recipient: Pubkey
    lamports: int

    def __post_init__(self):
        if not 1 <= len(self.signers) <= C.GROUP_SIZE:
            raise ValueError(f"a transfer group holds 1..{C.GROUP_SIZE} signers, got {len(self.signers)}")


@dataclass(frozen=True, slots=True)
class PendingTxSet:
    """Unsigned transfer transaction for one group. Signed per attempt with a fresh blockhash."""
    group: TransferGroup
    fee_payer: Pubkey
    instructions: tuple[Instruction, ...]
    has_bribe: bool = False

    @property
    def account_count(self) -> int:
        return len(self.group.signers)

    def sign(self, blockhash: Hash) -> Transaction:
        msg = Message.new_with_blockhash(list(self.instructions), self.fee_payer, blockhash)
        return Transaction(list(self.group.signers), msg, blockhash)


@dataclass
class TransferContext:
    recipient: Pubkey
    lamports: int
    tip: int
    choose: Callable[[Sequence], object] = field(default=random.choice)

    def rand_fee_payer(self, group: TransferGroup) -> Pubkey:
        return self.choose(group.signers).pubkey()


def chunk_groups(accounts: Sequence[Keypair], recipient: Pubkey, lamports: int, group_size: int = C.GROUP_SIZE) -> list[TransferGroup]:
    return [
        TransferGroup(signers=tuple(accounts[i : i + group_size]), recipient=recipient, lamports=lamports)
        for i in range(0, len(accounts), group_size)
    ]


def build_tx_set(group: TransferGroup, ctx: TransferContext, *, is_first_in_bundle: bool) -> PendingTxSet:
    """One transfer per signer, then the tip (first set of a bundle only), paid by a random member."""
    ixs = [
        transfer(TransferParams(from_pubkey=kp.pubkey(), to_pubkey=group.recipient, lamports=group.lamports))
        for kp in group.signers
    ]
    fee_payer = ctx.rand_fee_payer(group)
    if is_first_in_bundle:
        ixs.append(build_bribe_ix(fee_payer, ctx.tip, ctx.choose))
    log.debug("tx set: %s transfers, fee payer %s, tip=%s", len(group.signers), fee_payer, is_first_in_bundle)
    return PendingTxSet(group=group, fee_payer=fee_payer, instructions=tuple(ixs), has_bribe=is_first_in_bundle)
