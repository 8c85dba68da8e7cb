"""
Runtime configuration for the identity platform.

Everything comes from environment variables; contract addresses and keys are
never hardcoded. Build one Settings at process start and pass it around.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from eth_account import Account
from web3 import Web3

from services.exceptions import ConfigurationError

GWEI = 10 ** 9


def _get_env_var(name, default=None, required=False):
    """Get environment variable with optional default"""
    value = os.environ.get(name, default)
    if required and not value:
        raise ConfigurationError(f"Missing required environment variable {name}", {'variable': name})
    return value


def _get_int(name, default):
    raw = _get_env_var(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}", {'variable': name})


def _get_float(name, default):
    raw = _get_env_var(name)
    if raw is None or raw == '':
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}", {'variable': name})


def _get_bool(name, default):
    raw = _get_env_var(name)
    if raw is None or raw == '':
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def _get_address(name, required=False):
    raw = _get_env_var(name, required=required)
    if not raw:
        return None
    if not Web3.is_address(raw):
        raise ConfigurationError(f"{name} is not a valid address: {raw!r}", {'variable': name})
    return Web3.to_checksum_address(raw)


@dataclass(frozen=True)
class Settings:
    """Platform configuration"""

    rpc_url: str
    admin_private_key: str = field(repr=False)
    id_factory_address: str
    identity_registry_address: str
    token_address: Optional[str] = None
    claim_issuer_private_key: Optional[str] = field(default=None, repr=False)
    operator_management_address: Optional[str] = None

    # Fee policy
    min_priority_fee_gwei: int = 32
    priority_fee_buffer_percent: int = 110

    # Transactions
    claim_gas_limit: int = 500000
    confirmation_timeout: float = 300.0
    receipt_poll_interval: float = 2.0

    # Claims
    verify_claims_on_chain: bool = True
    default_claim_topic: int = 42

    # HTTP
    host: str = '0.0.0.0'
    port: int = 5000
    log_level: str = 'INFO'

    def __post_init__(self):
        if not self.rpc_url:
            raise ConfigurationError("rpc_url is required")
        if not self.admin_private_key:
            raise ConfigurationError("admin_private_key is required")
        if self.min_priority_fee_gwei < 0:
            raise ConfigurationError("min_priority_fee_gwei must be non-negative")
        if self.priority_fee_buffer_percent < 100:
            raise ConfigurationError("priority_fee_buffer_percent must be at least 100")
        if self.confirmation_timeout <= 0:
            raise ConfigurationError("confirmation_timeout must be positive")

    @property
    def min_priority_fee_wei(self):
        return self.min_priority_fee_gwei * GWEI

    @property
    def issuer_private_key(self):
        """Key used to sign claims; the admin key unless a dedicated issuer key is set"""
        return self.claim_issuer_private_key or self.admin_private_key

    @property
    def admin_address(self):
        return Account.from_key(self.admin_private_key).address

    @property
    def management_key_address(self):
        """Operator address whose key hash becomes the initial management key of new identities"""
        return self.operator_management_address or self.admin_address

    @classmethod
    def from_env(cls, **overrides):
        """Load configuration from environment variables"""
        values = dict(
            rpc_url=_get_env_var('RPC_URL', required=True),
            admin_private_key=_get_env_var('ADMIN_PRIVATE_KEY', required=True),
            id_factory_address=_get_address('ID_FACTORY_ADDRESS', required=True),
            identity_registry_address=_get_address('IDENTITY_REGISTRY_ADDRESS', required=True),
            token_address=_get_address('TOKEN_ADDRESS'),
            claim_issuer_private_key=_get_env_var('CLAIM_ISSUER_PRIVATE_KEY'),
            operator_management_address=_get_address('OPERATOR_MANAGEMENT_ADDRESS'),
            min_priority_fee_gwei=_get_int('MIN_PRIORITY_FEE_GWEI', 32),
            priority_fee_buffer_percent=_get_int('PRIORITY_FEE_BUFFER_PERCENT', 110),
            claim_gas_limit=_get_int('CLAIM_GAS_LIMIT', 500000),
            confirmation_timeout=_get_float('CONFIRMATION_TIMEOUT', 300.0),
            receipt_poll_interval=_get_float('RECEIPT_POLL_INTERVAL', 2.0),
            verify_claims_on_chain=_get_bool('VERIFY_CLAIMS_ON_CHAIN', True),
            default_claim_topic=_get_int('DEFAULT_CLAIM_TOPIC', 42),
            host=_get_env_var('FLASK_HOST', '0.0.0.0'),
            port=_get_int('FLASK_PORT', 5000),
            log_level=_get_env_var('LOG_LEVEL', 'INFO'),
        )
        values.update(overrides)

        # Fail early on unusable keys rather than at the first transaction
        for key_field in ('admin_private_key', 'claim_issuer_private_key'):
            key = values.get(key_field)
            if key:
                try:
                    Account.from_key(key)
                except Exception:
                    raise ConfigurationError(f"{key_field} is not a valid private key", {'variable': key_field})

        return cls(**values)
