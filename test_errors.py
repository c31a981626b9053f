# test_errors.py

import unittest

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.core import RPCException

from token_provisioner.errors import (
    FaucetRefused,
    InsufficientFunds,
    NetworkUnavailable,
    Rejected,
    Step,
    classify,
)

NO_PRIOR_CREDIT = (
    "Transaction simulation failed: Attempt to debit an account but found no record of a prior credit."
)
FEE_PAYER_EMPTY = "Transaction simulation failed: insufficient funds for fee"
TOKEN_ERROR_1 = (
    "Transaction simulation failed: Error processing Instruction 0: custom program error: 0x1"
)


def rpc_failure(http_error):
    """Raise `http_error` the way solana-py's provider wraps transport errors."""
    try:
        try:
            raise http_error
        except httpx.HTTPError as inner:
            raise SolanaRpcException(inner, Client.get_balance, None, None) from inner
    except SolanaRpcException as outer:
        return outer


def status_error(code, reason):
    request = httpx.Request("POST", "https://api.devnet.solana.com")
    response = httpx.Response(code, request=request)
    return httpx.HTTPStatusError(f"'{code} {reason}' for url '{request.url}'", request=request, response=response)


class ClassifyTest(unittest.TestCase):
    def test_empty_payer(self):
        for step in (Step.CREATE_MINT, Step.SUBMIT_METADATA, Step.SUBMIT_INSTRUCTION):
            with self.subTest(step=step):
                error = classify(step, RPCException(NO_PRIOR_CREDIT))
                self.assertIsInstance(error, InsufficientFunds)
                self.assertIs(error.step, step)
        self.assertIsInstance(classify(Step.CREATE_MINT, RPCException(FEE_PAYER_EMPTY)), InsufficientFunds)

    def test_custom_error_1_depends_on_program(self):
        self.assertIsInstance(classify(Step.MINT_SUPPLY, RPCException(TOKEN_ERROR_1)), InsufficientFunds)
        error = classify(Step.SUBMIT_METADATA, RPCException(TOKEN_ERROR_1))
        self.assertIsInstance(error, Rejected)
        self.assertNotIsInstance(error, InsufficientFunds)
        self.assertIsInstance(
            classify(Step.MINT_SUPPLY, RPCException("custom program error: 0x10")), Rejected
        )

    def test_transport_failure(self):
        exc = rpc_failure(httpx.ConnectError("connection refused"))
        self.assertIsInstance(classify(Step.FUNDING, exc), NetworkUnavailable)
        self.assertIsInstance(classify(Step.SUBMIT_METADATA, exc), NetworkUnavailable)

    def test_faucet_rate_limit_seen_through_cause(self):
        exc = rpc_failure(status_error(429, "Too Many Requests"))
        self.assertIsInstance(classify(Step.FUNDING, exc), FaucetRefused)
        self.assertIsInstance(classify(Step.CREATE_MINT, exc), NetworkUnavailable)

    def test_server_error_is_not_a_refusal(self):
        exc = rpc_failure(status_error(502, "Bad Gateway"))
        self.assertIsInstance(classify(Step.FUNDING, exc), NetworkUnavailable)


if __name__ == "__main__":
    unittest.main()
