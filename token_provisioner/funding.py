# token_provisioner/funding.py

import logging

from .config import LAMPORTS_PER_SOL, ProvisioningContext
from .errors import FaucetRefused, Step, step_guard

logger = logging.getLogger(__name__)


def ensure_funded(ctx: ProvisioningContext) -> int:
    """Top the payer up from the faucet if it is below the configured minimum.

    At most one airdrop of the fixed amount is requested per call, so a badly
    depleted wallet may need several calls. Returns the balance in lamports.
    """
    client = ctx.client
    config = ctx.config
    pubkey = ctx.payer.pubkey()
    logger.info("Wallet public key: %s", pubkey)

    with step_guard(Step.FUNDING):
        balance = client.get_balance(pubkey, config.commitment).value
        logger.info("Initial balance: %s SOL", balance / LAMPORTS_PER_SOL)
        if balance >= config.min_balance_lamports:
            return balance

        logger.info("Requesting airdrop of %s lamports...", config.airdrop_lamports)
        signature = client.request_airdrop(pubkey, config.airdrop_lamports, config.commitment).value

        latest = client.get_latest_blockhash(config.commitment).value
        statuses = client.confirm_transaction(
            signature, config.commitment, last_valid_block_height=latest.last_valid_block_height
        ).value
        status = statuses[0] if statuses else None
        if status is not None and status.err is not None:
            raise FaucetRefused(Step.FUNDING, f"airdrop {signature} failed: {status.err}")

        balance = client.get_balance(pubkey, config.commitment).value
    logger.info("New balance after airdrop: %s SOL", balance / LAMPORTS_PER_SOL)
    return balance
