# token_provisioner/metadata.py

from dataclasses import dataclass
from typing import Optional

from borsh_construct import Bool, CStruct, Enum, Option, String, U8, U16, U64, Vec
from solana.rpc.api import Client
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from .config import METADATA_PROGRAM_ID

CREATE_METADATA_ACCOUNT_V3 = 33
METADATA_SEED = b"metadata"

MAX_NAME_LENGTH = 32
MAX_SYMBOL_LENGTH = 10
MAX_URI_LENGTH = 200
MAX_BASIS_POINTS = 10_000

# Account discriminator of a metadata record
METADATA_V1_KEY = 4

Creator = CStruct("address" / U8[32], "verified" / Bool, "share" / U8)
Collection = CStruct("verified" / Bool, "key" / U8[32])
UseMethod = Enum("Burn" / CStruct(), "Multiple" / CStruct(), "Single" / CStruct(), enum_name="UseMethod")
Uses = CStruct("use_method" / UseMethod, "remaining" / U64, "total" / U64)
CollectionDetails = Enum("V1" / CStruct("size" / U64), enum_name="CollectionDetails")

DataV2 = CStruct(
    "name" / String,
    "symbol" / String,
    "uri" / String,
    "seller_fee_basis_points" / U16,
    "creators" / Option(Vec(Creator)),
    "collection" / Option(Collection),
    "uses" / Option(Uses),
)

CreateMetadataAccountArgsV3 = CStruct(
    "data" / DataV2,
    "is_mutable" / Bool,
    "collection_details" / Option(CollectionDetails),
)

# Leading fields of an on-chain metadata account; the rest is not needed here.
MetadataAccount = CStruct(
    "key" / U8,
    "update_authority" / U8[32],
    "mint" / U8[32],
    "name" / String,
    "symbol" / String,
    "uri" / String,
    "seller_fee_basis_points" / U16,
    "creators" / Option(Vec(Creator)),
    "primary_sale_happened" / Bool,
    "is_mutable" / Bool,
)


@dataclass
class TokenMetadata:
    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int = 0
    is_mutable: bool = True

    def validate(self):
        for label, value, limit in (
            ("name", self.name, MAX_NAME_LENGTH),
            ("symbol", self.symbol, MAX_SYMBOL_LENGTH),
            ("uri", self.uri, MAX_URI_LENGTH),
        ):
            if len(value.encode("utf-8")) > limit:
                raise ValueError(f"metadata {label} is longer than {limit} bytes: {value!r}")
        if not 0 <= self.seller_fee_basis_points <= MAX_BASIS_POINTS:
            raise ValueError(f"seller fee must be between 0 and {MAX_BASIS_POINTS} basis points")


@dataclass
class OnChainMetadata:
    update_authority: Pubkey
    mint: Pubkey
    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int
    is_mutable: bool


def derive_metadata_address(mint: Pubkey, program_id: Pubkey = METADATA_PROGRAM_ID) -> Pubkey:
    address, _ = Pubkey.find_program_address(
        [METADATA_SEED, bytes(program_id), bytes(mint)], program_id
    )
    return address


def encode_create_metadata_args(data: TokenMetadata) -> bytes:
    data.validate()
    args = CreateMetadataAccountArgsV3.build(
        {
            "data": {
                "name": data.name,
                "symbol": data.symbol,
                "uri": data.uri,
                "seller_fee_basis_points": data.seller_fee_basis_points,
                "creators": None,
                "collection": None,
                "uses": None,
            },
            "is_mutable": data.is_mutable,
            "collection_details": None,
        }
    )
    return bytes([CREATE_METADATA_ACCOUNT_V3]) + args


def build_create_metadata_instruction(
    metadata: Pubkey,
    mint: Pubkey,
    mint_authority: Pubkey,
    payer: Pubkey,
    update_authority: Pubkey,
    data: TokenMetadata,
    program_id: Pubkey = METADATA_PROGRAM_ID,
) -> Instruction:
    accounts = [
        AccountMeta(metadata, is_signer=False, is_writable=True),
        AccountMeta(mint, is_signer=False, is_writable=False),
        AccountMeta(mint_authority, is_signer=True, is_writable=False),
        AccountMeta(payer, is_signer=True, is_writable=True),
        AccountMeta(update_authority, is_signer=False, is_writable=False),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, encode_create_metadata_args(data), accounts)


def decode_metadata(raw: bytes) -> OnChainMetadata:
    parsed = MetadataAccount.parse(raw)
    if parsed.key != METADATA_V1_KEY:
        raise ValueError(f"not a metadata account (key {parsed.key})")
    # older program versions pad strings with NULs up to their maximum length
    return OnChainMetadata(
        update_authority=Pubkey.from_bytes(bytes(parsed.update_authority)),
        mint=Pubkey.from_bytes(bytes(parsed.mint)),
        name=parsed.name.rstrip("\x00"),
        symbol=parsed.symbol.rstrip("\x00"),
        uri=parsed.uri.rstrip("\x00"),
        seller_fee_basis_points=parsed.seller_fee_basis_points,
        is_mutable=parsed.is_mutable,
    )


def fetch_metadata(client: Client, metadata_address: Pubkey) -> Optional[OnChainMetadata]:
    account = client.get_account_info(metadata_address).value
    if account is None:
        return None
    return decode_metadata(bytes(account.data))
