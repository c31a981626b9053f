# token_provisioner/provisioner.py

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from solana.rpc.types import TxOpts
from solders.pubkey import Pubkey
from solders.signature import Signature
from spl.token.client import Token
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from .config import ProvisioningContext
from .errors import AlreadyExists, InvalidMetadata, Step, step_guard
from .metadata import TokenMetadata, build_create_metadata_instruction, derive_metadata_address
from .submitter import send_and_confirm

logger = logging.getLogger(__name__)

StepCallback = Callable[[Step, object], None]


@dataclass
class ProvisionedToken:
    mint: Pubkey
    holding_account: Pubkey
    metadata_address: Pubkey
    metadata_signature: Signature
    supply: int


def create_mint(ctx: ProvisioningContext) -> Token:
    """Create a new mint with the payer as both mint and freeze authority."""
    payer = ctx.payer
    with step_guard(Step.CREATE_MINT):
        token = Token.create_mint(
            conn=ctx.client,
            payer=payer,
            mint_authority=payer.pubkey(),
            decimals=ctx.config.decimals,
            program_id=TOKEN_PROGRAM_ID,
            freeze_authority=payer.pubkey(),
            skip_confirmation=False,
        )
    logger.info("Token created: %s", token.pubkey)
    return token


def get_or_create_holding_account(ctx: ProvisioningContext, token: Token) -> Pubkey:
    """Return the payer's associated token account for `token`, creating it if missing.

    Safe to repeat: an existing account is returned without sending a transaction.
    """
    owner = ctx.payer.pubkey()
    address = get_associated_token_address(owner, token.pubkey)
    try:
        with step_guard(Step.HOLDING_ACCOUNT):
            if ctx.client.get_account_info(address, ctx.config.commitment).value is not None:
                logger.info("Token account already exists: %s", address)
                return address
            created = token.create_associated_token_account(owner=owner, skip_confirmation=False)
    except AlreadyExists:
        # created by someone else between the lookup and our transaction
        logger.info("Token account appeared concurrently: %s", address)
        return address
    logger.info("Token account created: %s", created)
    return created


def mint_initial_supply(ctx: ProvisioningContext, token: Token, holding_account: Pubkey) -> Signature:
    amount = ctx.config.initial_supply_base_units
    with step_guard(Step.MINT_SUPPLY):
        resp = token.mint_to(
            dest=holding_account,
            mint_authority=ctx.payer,
            amount=amount,
            opts=TxOpts(skip_confirmation=False, preflight_commitment=ctx.config.commitment),
        )
    logger.info(
        "Minted %s tokens to %s", amount / (10 ** ctx.config.decimals), holding_account
    )
    return resp.value


def provision_token(
    ctx: ProvisioningContext,
    name: str,
    symbol: str,
    uri: str,
    *,
    on_step: Optional[StepCallback] = None,
) -> ProvisionedToken:
    """Create a token, mint the initial supply to the payer and attach metadata.

    Every call creates a new mint. If the metadata step fails the mint and the
    minted supply are left in place; the raised error's `step` says how far
    the run got, and `on_step` reports each address as soon as it exists.
    """
    config = ctx.config
    payer = ctx.payer.pubkey()

    def report(step, value):
        if on_step is not None:
            on_step(step, value)

    metadata = TokenMetadata(
        name=name,
        symbol=symbol,
        uri=uri,
        seller_fee_basis_points=config.seller_fee_basis_points,
        is_mutable=config.metadata_mutable,
    )
    try:
        metadata.validate()
    except ValueError as exc:
        raise InvalidMetadata(Step.BUILD_METADATA, str(exc)) from exc

    logger.info("Creating token...")
    token = create_mint(ctx)
    report(Step.CREATE_MINT, token.pubkey)

    holding_account = get_or_create_holding_account(ctx, token)
    report(Step.HOLDING_ACCOUNT, holding_account)

    mint_signature = mint_initial_supply(ctx, token, holding_account)
    report(Step.MINT_SUPPLY, mint_signature)

    logger.info("Adding metadata...")
    with step_guard(Step.DERIVE_METADATA):
        metadata_address = derive_metadata_address(token.pubkey, config.metadata_program_id)
    report(Step.DERIVE_METADATA, metadata_address)

    with step_guard(Step.BUILD_METADATA):
        instruction = build_create_metadata_instruction(
            metadata=metadata_address,
            mint=token.pubkey,
            mint_authority=payer,
            payer=payer,
            update_authority=payer,
            data=metadata,
            program_id=config.metadata_program_id,
        )

    try:
        signature = send_and_confirm(ctx, [instruction], step=Step.SUBMIT_METADATA)
    except Exception:
        logger.warning(
            "Metadata was not added; token %s and its supply remain without metadata", token.pubkey
        )
        raise
    report(Step.SUBMIT_METADATA, signature)

    logger.info("Metadata added: %s", signature)
    logger.info("Metadata address: %s", metadata_address)
    return ProvisionedToken(
        mint=token.pubkey,
        holding_account=holding_account,
        metadata_address=metadata_address,
        metadata_signature=signature,
        supply=config.initial_supply_base_units,
    )
