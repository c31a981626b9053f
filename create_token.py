# create_token.py

import argparse
import logging
import sys

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.core import RPCException
from solders.instruction import AccountMeta
from solders.pubkey import Pubkey

from token_provisioner import (
    LAMPORTS_PER_SOL,
    ProvisioningContext,
    ProvisioningError,
    TransactionFormat,
    ensure_funded,
    fetch_metadata,
    load_config,
    provision_token,
    submit,
)


def _pubkey(value):
    try:
        return Pubkey.from_string(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a valid public key: {value!r}")


def _hex(value):
    try:
        return bytes.fromhex(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not valid hex: {value!r}")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Fund the wallet, create a token and attach metadata")
    parser.add_argument("name", help="Token name, e.g. 'My Token'")
    parser.add_argument("symbol", help="Token symbol, e.g. MTKN")
    parser.add_argument("uri", help="URI of the off-chain metadata JSON")
    parser.add_argument("--legacy", action="store_true", help="Send legacy transactions instead of v0")
    parser.add_argument("--program-id", type=_pubkey, help="Optionally call this program after provisioning")
    parser.add_argument(
        "--instruction-hex", type=_hex, default=b"", help="Instruction data for --program-id, hex encoded"
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)
    if args.instruction_hex and args.program_id is None:
        parser.error("--instruction-hex needs --program-id")
    return args


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config()
    if args.legacy:
        config.transaction_format = TransactionFormat.LEGACY
    ctx = ProvisioningContext.from_config(config)
    payer = ctx.payer.pubkey()
    print(f"👑 Using creator wallet: {payer}")

    try:
        print("🚀 Step 1: Making sure the wallet is funded...")
        balance = ensure_funded(ctx)
        print(f"✅ Current balance: {balance / LAMPORTS_PER_SOL} SOL")

        print(f"\n🚀 Step 2: Creating {args.symbol} with metadata...")
        result = provision_token(ctx, args.name, args.symbol, args.uri)
        print(f"✅ Token mint: {result.mint}")
        print(f"✅ Token account: {result.holding_account}")
        print(f"✅ Minted {result.supply / (10 ** config.decimals):,} tokens")
        print(f"✅ Metadata address: {result.metadata_address}")

        try:
            record = fetch_metadata(ctx.client, result.metadata_address)
        except (ValueError, OSError, httpx.HTTPError, RPCException, SolanaRpcException) as e:
            print(f"⚠️ Could not read back the metadata record: {e!r}")
        else:
            if record is not None:
                print(f"   name={record.name!r} symbol={record.symbol!r} uri={record.uri!r}")

        if args.program_id is not None:
            print(f"\n🚀 Step 3: Calling program {args.program_id}...")
            signature = submit(
                ctx,
                args.program_id,
                [AccountMeta(payer, is_signer=True, is_writable=True)],
                args.instruction_hex,
            )
            print(f"✅ Program interaction transaction: {signature}")
    except ProvisioningError as e:
        print(f"😿 Failed during '{e.step.value}' ({e.kind}): {e.reason}")
        return 1

    print("\n🎉🎉🎉 ALL DONE! Your new token is ready! 🎉🎉🎉")
    return 0


if __name__ == "__main__":
    sys.exit(main())
