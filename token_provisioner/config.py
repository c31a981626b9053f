# token_provisioner/config.py

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

import base58
from dotenv import load_dotenv
from solana.rpc.api import Client
from solana.rpc.commitment import Commitment, Confirmed, Finalized, Processed
from solders.keypair import Keypair
from solders.pubkey import Pubkey

LAMPORTS_PER_SOL = 1_000_000_000
DEVNET_RPC_URL = "https://api.devnet.solana.com"
COMMITMENT_LEVELS = (Processed, Confirmed, Finalized)
METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")


class ConfigError(ValueError):
    pass


class TransactionFormat(Enum):
    LEGACY = "legacy"
    VERSIONED = "versioned"


@dataclass
class ProvisioningConfig:
    secret_key: str = field(repr=False)
    rpc_url: str = DEVNET_RPC_URL
    min_balance_lamports: int = LAMPORTS_PER_SOL
    airdrop_lamports: int = LAMPORTS_PER_SOL
    decimals: int = 9
    initial_supply: int = 1  # whole tokens, scaled by 10**decimals when minted
    metadata_program_id: Pubkey = METADATA_PROGRAM_ID
    seller_fee_basis_points: int = 0
    metadata_mutable: bool = True
    transaction_format: TransactionFormat = TransactionFormat.VERSIONED
    commitment: Commitment = Confirmed

    @property
    def initial_supply_base_units(self) -> int:
        return self.initial_supply * (10 ** self.decimals)


def load_keypair(secret: str) -> Keypair:
    """Accepts a base58 secret key or a JSON byte array as written by `solana-keygen`."""
    secret = secret.strip()
    try:
        if secret.startswith("["):
            return Keypair.from_bytes(bytes(json.loads(secret)))
        return Keypair.from_bytes(base58.b58decode(secret))
    except ValueError as exc:
        raise ConfigError(f"SECRET_KEY is not a valid keypair: {exc}") from exc


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw.replace("_", ""))
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value < 0:
        raise ConfigError(f"{name} must not be negative")
    return value


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config(env: Optional[Mapping[str, str]] = None) -> ProvisioningConfig:
    if env is None:
        load_dotenv()
        env = os.environ

    secret_key = env.get("SECRET_KEY")
    if not secret_key:
        raise ConfigError("SECRET_KEY not found in .env file!")

    fmt = env.get("TRANSACTION_FORMAT", TransactionFormat.VERSIONED.value).strip().lower()
    try:
        transaction_format = TransactionFormat(fmt)
    except ValueError:
        raise ConfigError(f"TRANSACTION_FORMAT must be 'legacy' or 'versioned', got {fmt!r}")

    program_id = env.get("METADATA_PROGRAM_ID")
    try:
        metadata_program_id = Pubkey.from_string(program_id) if program_id else METADATA_PROGRAM_ID
    except ValueError as exc:
        raise ConfigError(f"METADATA_PROGRAM_ID is not a valid pubkey: {exc}") from exc

    commitment = (env.get("COMMITMENT") or Confirmed).strip().lower()
    if commitment not in COMMITMENT_LEVELS:
        levels = ", ".join(COMMITMENT_LEVELS)
        raise ConfigError(f"COMMITMENT must be one of {levels}, got {commitment!r}")

    decimals = _int(env, "TOKEN_DECIMALS", 9)
    if decimals > 255:
        raise ConfigError("TOKEN_DECIMALS must fit in a u8")

    return ProvisioningConfig(
        secret_key=secret_key,
        rpc_url=env.get("RPC_URL") or DEVNET_RPC_URL,
        min_balance_lamports=_int(env, "MIN_BALANCE_LAMPORTS", LAMPORTS_PER_SOL),
        airdrop_lamports=_int(env, "AIRDROP_LAMPORTS", LAMPORTS_PER_SOL),
        decimals=decimals,
        initial_supply=_int(env, "INITIAL_SUPPLY", 1),
        metadata_program_id=metadata_program_id,
        seller_fee_basis_points=_int(env, "SELLER_FEE_BASIS_POINTS", 0),
        metadata_mutable=_bool(env, "METADATA_MUTABLE", True),
        transaction_format=transaction_format,
        commitment=commitment,
    )


@dataclass
class ProvisioningContext:
    """Everything a provisioning run needs: the RPC client, the payer and the settings."""

    client: Client
    payer: Keypair
    config: ProvisioningConfig

    @classmethod
    def from_config(cls, config: ProvisioningConfig) -> "ProvisioningContext":
        client = Client(config.rpc_url, commitment=config.commitment)
        return cls(client=client, payer=load_keypair(config.secret_key), config=config)
