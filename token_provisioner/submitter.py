# token_provisioner/submitter.py

import logging
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message, MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction, VersionedTransaction

from .config import ProvisioningContext, TransactionFormat
from .errors import Rejected, Step, step_guard

logger = logging.getLogger(__name__)

# (pubkey, is_signer, is_writable)
AccountLike = Union[AccountMeta, Tuple[Pubkey, bool, bool]]


def _unique_signers(payer: Keypair, signers: Iterable[Keypair]) -> List[Keypair]:
    seen = {payer.pubkey()}
    unique = [payer]
    for signer in signers:
        if signer.pubkey() not in seen:
            seen.add(signer.pubkey())
            unique.append(signer)
    return unique


def build_transaction(
    fmt: TransactionFormat,
    payer: Keypair,
    instructions: Sequence[Instruction],
    blockhash: Hash,
    signers: Iterable[Keypair] = (),
) -> Union[Transaction, VersionedTransaction]:
    keypairs = _unique_signers(payer, signers)
    if fmt is TransactionFormat.LEGACY:
        message = Message.new_with_blockhash(list(instructions), payer.pubkey(), blockhash)
        return Transaction(keypairs, message, blockhash)
    message_v0 = MessageV0.try_compile(payer.pubkey(), list(instructions), [], blockhash)
    return VersionedTransaction(message_v0, keypairs)


def send_and_confirm(
    ctx: ProvisioningContext,
    instructions: Sequence[Instruction],
    signers: Iterable[Keypair] = (),
    *,
    step: Step = Step.SUBMIT_INSTRUCTION,
) -> Signature:
    """Sign and send `instructions` as one transaction, then block until it is confirmed.

    The payer always signs and pays the fee. Either every instruction applies or none do.
    """
    client = ctx.client
    commitment = ctx.config.commitment
    with step_guard(step):
        latest = client.get_latest_blockhash(commitment).value
        txn = build_transaction(
            ctx.config.transaction_format, ctx.payer, instructions, latest.blockhash, signers
        )

        logger.info("Sending %s transaction (%s)...", step.value, ctx.config.transaction_format.value)
        signature = client.send_transaction(
            txn, opts=TxOpts(skip_confirmation=True, preflight_commitment=commitment)
        ).value

        logger.info("Confirming %s...", signature)
        statuses = client.confirm_transaction(
            signature, commitment, last_valid_block_height=latest.last_valid_block_height
        ).value
    status = statuses[0] if statuses else None
    if status is not None and status.err is not None:
        raise Rejected(step, f"transaction {signature} failed: {status.err}")

    logger.info("Transaction confirmed: %s", signature)
    return signature


def submit(
    ctx: ProvisioningContext,
    program_id: Pubkey,
    accounts: Sequence[AccountLike],
    data: bytes,
    signer: Optional[Keypair] = None,
) -> Signature:
    """Send one instruction with an opaque payload to an arbitrary program."""
    metas = [
        account if isinstance(account, AccountMeta) else AccountMeta(*account)
        for account in accounts
    ]
    instruction = Instruction(program_id, bytes(data), metas)
    signers = [signer] if signer is not None else []
    return send_and_confirm(ctx, [instruction], signers, step=Step.SUBMIT_INSTRUCTION)
