# test_metadata.py

import unittest
from unittest.mock import MagicMock, Mock

from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from token_provisioner.config import METADATA_PROGRAM_ID
from token_provisioner.metadata import (
    CREATE_METADATA_ACCOUNT_V3,
    CreateMetadataAccountArgsV3,
    MetadataAccount,
    TokenMetadata,
    build_create_metadata_instruction,
    decode_metadata,
    derive_metadata_address,
    fetch_metadata,
)


class AddressDerivationTest(unittest.TestCase):
    def test_metadata_address_is_deterministic(self):
        mint = Pubkey.new_unique()
        first = derive_metadata_address(mint)
        self.assertEqual(first, derive_metadata_address(Pubkey.from_string(str(mint))))
        expected, _ = Pubkey.find_program_address(
            [b"metadata", bytes(METADATA_PROGRAM_ID), bytes(mint)], METADATA_PROGRAM_ID
        )
        self.assertEqual(first, expected)
        self.assertFalse(first.is_on_curve())

    def test_metadata_address_depends_on_mint_and_program(self):
        mint = Pubkey.new_unique()
        self.assertNotEqual(derive_metadata_address(mint), derive_metadata_address(Pubkey.new_unique()))
        self.assertNotEqual(
            derive_metadata_address(mint), derive_metadata_address(mint, Pubkey.new_unique())
        )

    def test_holding_account_address_is_deterministic(self):
        owner = Pubkey.new_unique()
        mint = Pubkey.new_unique()
        self.assertEqual(
            get_associated_token_address(owner, mint), get_associated_token_address(owner, mint)
        )


class CreateMetadataInstructionTest(unittest.TestCase):
    def setUp(self):
        self.mint = Pubkey.new_unique()
        self.payer = Pubkey.new_unique()
        self.metadata = derive_metadata_address(self.mint)

    def build(self, data):
        return build_create_metadata_instruction(
            metadata=self.metadata,
            mint=self.mint,
            mint_authority=self.payer,
            payer=self.payer,
            update_authority=self.payer,
            data=data,
        )

    def test_accounts(self):
        ix = self.build(TokenMetadata("My Token", "MTKN", "https://example.com/m.json"))
        self.assertEqual(ix.program_id, METADATA_PROGRAM_ID)
        flags = [(meta.pubkey, meta.is_signer, meta.is_writable) for meta in ix.accounts]
        self.assertEqual(
            flags,
            [
                (self.metadata, False, True),
                (self.mint, False, False),
                (self.payer, True, False),
                (self.payer, True, True),
                (self.payer, False, False),
                (SYSTEM_PROGRAM_ID, False, False),
            ],
        )

    def test_payload(self):
        ix = self.build(TokenMetadata("My Token", "MTKN", "https://example.com/m.json"))
        data = bytes(ix.data)
        self.assertEqual(data[0], CREATE_METADATA_ACCOUNT_V3)
        args = CreateMetadataAccountArgsV3.parse(data[1:])
        self.assertEqual(args.data.name, "My Token")
        self.assertEqual(args.data.symbol, "MTKN")
        self.assertEqual(args.data.uri, "https://example.com/m.json")
        self.assertEqual(args.data.seller_fee_basis_points, 0)
        self.assertIsNone(args.data.creators)
        self.assertIsNone(args.data.collection)
        self.assertIsNone(args.data.uses)
        self.assertTrue(args.is_mutable)
        self.assertIsNone(args.collection_details)
        # tag + 3 length-prefixed strings + u16 + 3 empty options + bool + empty option
        self.assertEqual(len(data), 1 + (4 + 8) + (4 + 4) + (4 + 26) + 2 + 3 + 1 + 1)

    def test_limits(self):
        for data in (
            TokenMetadata("x" * 33, "MTKN", "https://example.com"),
            TokenMetadata("My Token", "TOOLONGSYMB", "https://example.com"),
            TokenMetadata("My Token", "MTKN", "https://example.com/" + "a" * 200),
            TokenMetadata("My Token", "MTKN", "https://example.com", seller_fee_basis_points=10_001),
        ):
            with self.subTest(data=data):
                with self.assertRaises(ValueError):
                    self.build(data)


class DecodeMetadataTest(unittest.TestCase):
    def raw_account(self, name, update_authority, mint, key=4):
        return MetadataAccount.build(
            {
                "key": key,
                "update_authority": list(bytes(update_authority)),
                "mint": list(bytes(mint)),
                "name": name,
                "symbol": "MTKN" + "\x00" * 6,
                "uri": "https://example.com/m.json",
                "seller_fee_basis_points": 0,
                "creators": None,
                "primary_sale_happened": False,
                "is_mutable": True,
            }
        ) + bytes(64)

    def test_decode_strips_padding(self):
        authority, mint = Pubkey.new_unique(), Pubkey.new_unique()
        record = decode_metadata(self.raw_account("My Token" + "\x00" * 24, authority, mint))
        self.assertEqual(record.update_authority, authority)
        self.assertEqual(record.mint, mint)
        self.assertEqual(record.name, "My Token")
        self.assertEqual(record.symbol, "MTKN")
        self.assertEqual(record.uri, "https://example.com/m.json")
        self.assertEqual(record.seller_fee_basis_points, 0)
        self.assertTrue(record.is_mutable)

    def test_wrong_account_kind(self):
        raw = self.raw_account("My Token", Pubkey.new_unique(), Pubkey.new_unique(), key=6)
        with self.assertRaises(ValueError):
            decode_metadata(raw)

    def test_fetch(self):
        client = MagicMock()
        client.get_account_info.return_value = Mock(value=None)
        self.assertIsNone(fetch_metadata(client, Pubkey.new_unique()))

        mint = Pubkey.new_unique()
        client.get_account_info.return_value = Mock(
            value=Mock(data=self.raw_account("My Token", Pubkey.new_unique(), mint))
        )
        self.assertEqual(fetch_metadata(client, Pubkey.new_unique()).mint, mint)


if __name__ == "__main__":
    unittest.main()
