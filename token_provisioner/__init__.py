from .config import (
    LAMPORTS_PER_SOL,
    METADATA_PROGRAM_ID,
    ConfigError,
    ProvisioningConfig,
    ProvisioningContext,
    TransactionFormat,
    load_config,
    load_keypair,
)
from .errors import (
    AlreadyExists,
    ConfirmationTimeout,
    FaucetRefused,
    InsufficientFunds,
    InvalidMetadata,
    NetworkUnavailable,
    ProvisioningError,
    Rejected,
    Step,
)
from .funding import ensure_funded
from .metadata import TokenMetadata, derive_metadata_address, fetch_metadata
from .provisioner import ProvisionedToken, get_or_create_holding_account, provision_token
from .submitter import send_and_confirm, submit
