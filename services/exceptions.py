"""
Exception hierarchy for the KYC identity platform.

Every service error inherits from KYCPlatformError so the HTTP layer can catch
one type and map ValidationError to 400 and everything else to 500.
"""

from typing import Any, Dict, Optional


class KYCPlatformError(Exception):
    """Base exception for all platform errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(KYCPlatformError):
    """Missing or malformed configuration (credential, RPC endpoint, contract addresses)"""


class ValidationError(KYCPlatformError):
    """Malformed input such as a missing field or a bad integer"""


class InvalidAddressError(ValidationError):
    """A value is not a syntactically valid chain address"""

    def __init__(self, address, field: str = 'address'):
        super().__init__(f"Invalid {field}: {address!r}", {'field': field})
        self.address = address
        self.field = field


class ChainReadError(KYCPlatformError):
    """RPC or contract view call failed"""


class FeeDataUnavailableError(ChainReadError):
    """The provider could not supply both a max fee and a priority fee"""


class ChainWriteError(KYCPlatformError):
    """Transaction submission failed or the transaction reverted"""

    def __init__(self, message: str, tx_hash: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.tx_hash = tx_hash


class ConfirmationTimeoutError(ChainWriteError):
    """A submitted transaction was not mined within the confirmation timeout"""


class RegistrationFailedError(ChainWriteError):
    """registerIdentity failed on the identity registry"""


class EventNotFoundError(KYCPlatformError):
    """An expected event log is absent from a transaction receipt"""


class IdentityAddressNotFoundError(EventNotFoundError):
    """The identity creation receipt carries no WalletLinked event"""


class SignatureMismatchError(KYCPlatformError):
    """A claim signature does not recover to its declared issuer"""
