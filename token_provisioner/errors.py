# token_provisioner/errors.py

from contextlib import contextmanager
from enum import Enum

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.core import (
    RPCException,
    TransactionExpiredBlockheightExceededError,
    UnconfirmedTxError,
)


class Step(Enum):
    FUNDING = "funding"
    CREATE_MINT = "create mint"
    HOLDING_ACCOUNT = "holding account"
    MINT_SUPPLY = "mint supply"
    DERIVE_METADATA = "derive metadata address"
    BUILD_METADATA = "build metadata instruction"
    SUBMIT_METADATA = "submit metadata"
    SUBMIT_INSTRUCTION = "submit instruction"


class ProvisioningError(Exception):
    """A step of a provisioning run failed; `step` says which one."""

    kind = "failed"

    def __init__(self, step: Step, reason: str):
        super().__init__(f"{step.value}: {reason}")
        self.step = step
        self.reason = reason


class NetworkUnavailable(ProvisioningError):
    kind = "network unavailable"


class InsufficientFunds(ProvisioningError):
    kind = "insufficient funds"


class Rejected(ProvisioningError):
    kind = "rejected"


class FaucetRefused(Rejected):
    kind = "faucet refused"


class ConfirmationTimeout(ProvisioningError):
    """The transaction was not seen confirmed in time. It may still land later."""

    kind = "confirmation timeout"


class AlreadyExists(ProvisioningError):
    kind = "already exists"


class InvalidMetadata(ProvisioningError):
    kind = "invalid metadata"


_INSUFFICIENT_FUNDS_MARKERS = (
    "insufficient funds",
    "insufficient lamports",
    "no record of a prior credit",
)
# custom error 1 means insufficient funds only for the token program
_TOKEN_INSUFFICIENT_FUNDS_MARKERS = ("custom program error: 0x1 ",)
_TOKEN_PROGRAM_STEPS = (Step.MINT_SUPPLY,)
_ALREADY_EXISTS_MARKERS = ("already in use", "already initialized")
_RATE_LIMIT_MARKERS = ("429", "too many requests", "rate limit", "airdrop limit", "faucet has run dry")


def _contains(message: str, markers) -> bool:
    message = message.lower() + " "
    return any(marker in message for marker in markers)


def classify(step: Step, exc: Exception) -> ProvisioningError:
    """Map an exception raised by the RPC or SPL client onto the error taxonomy."""
    message = str(exc) or exc.__class__.__name__
    if isinstance(exc, (UnconfirmedTxError, TransactionExpiredBlockheightExceededError)):
        return ConfirmationTimeout(step, message)
    if isinstance(exc, (SolanaRpcException, httpx.HTTPError)):
        # SolanaRpcException wraps the httpx error, which carries the status code
        cause = f"{message} {exc.__cause__ or ''}"
        if step is Step.FUNDING and _contains(cause, _RATE_LIMIT_MARKERS):
            return FaucetRefused(step, message)
        return NetworkUnavailable(step, message)
    if _contains(message, _INSUFFICIENT_FUNDS_MARKERS):
        return InsufficientFunds(step, message)
    if step in _TOKEN_PROGRAM_STEPS and _contains(message, _TOKEN_INSUFFICIENT_FUNDS_MARKERS):
        return InsufficientFunds(step, message)
    if _contains(message, _ALREADY_EXISTS_MARKERS):
        return AlreadyExists(step, message)
    if isinstance(exc, RPCException):
        if step is Step.FUNDING:
            return FaucetRefused(step, message)
        return Rejected(step, message)
    return ProvisioningError(step, message)


@contextmanager
def step_guard(step: Step):
    """Re-raise anything escaping the block as a ProvisioningError tagged with `step`."""
    try:
        yield
    except ProvisioningError:
        raise
    except Exception as exc:
        raise classify(step, exc) from exc
