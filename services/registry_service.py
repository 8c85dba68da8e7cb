import logging

from models.identity import IdentityRecord
from services.exceptions import KYCPlatformError, RegistrationFailedError, ValidationError
from utils.address_utils import is_zero_address, require_address

logger = logging.getLogger(__name__)

MAX_COUNTRY_CODE = 2 ** 16 - 1


def parse_country_code(country_code):
    """Country codes are ISO-3166 numeric values stored as uint16"""
    if isinstance(country_code, bool):
        raise ValidationError(f"Invalid countryCode: {country_code!r}", {'field': 'countryCode'})
    try:
        value = int(country_code)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid countryCode: {country_code!r}", {'field': 'countryCode'})
    if isinstance(country_code, float) and value != country_code:
        raise ValidationError(f"Invalid countryCode: {country_code!r}", {'field': 'countryCode'})
    if not 0 <= value <= MAX_COUNTRY_CODE:
        raise ValidationError(f"countryCode out of range: {value}", {'field': 'countryCode'})
    return value


class IdentityRegistryService:
    """Reads and writes the central identity registry"""

    def __init__(self, web3_service, settings=None):
        self.web3_service = web3_service
        self.settings = settings or web3_service.settings

    def _registry(self):
        return self.web3_service.get_contract(self.settings.identity_registry_address, 'IdentityRegistry')

    def register(self, user_address, identity_address, country_code):
        """
        Register an identity in the registry.

        Returns:
            str: transaction hash

        Raises:
            ValidationError: malformed address or country code
            RegistrationFailedError: submission failed or the transaction reverted
        """
        user_address = require_address(user_address, 'userAddress')
        identity_address = require_address(identity_address, 'identityAddress')
        country = parse_country_code(country_code)

        logger.info(f"Registering identity at {identity_address} for user: {user_address} (country {country})")
        try:
            receipt = self.web3_service.send_transaction(
                self._registry().functions.registerIdentity(user_address, identity_address, country)
            )
        except KYCPlatformError as e:
            logger.error(f"Failed to register identity for {user_address}: {e.message}")
            raise RegistrationFailedError(
                f"Failed to register identity for {user_address}: {e.message}",
                tx_hash=getattr(e, 'tx_hash', None),
                details={'user_address': user_address, 'identity_address': identity_address},
            ) from e

        tx_hash = self.web3_service.transaction_hash(receipt)
        if receipt['status'] != 1:
            raise RegistrationFailedError(
                f"registerIdentity reverted for {user_address}",
                tx_hash=tx_hash,
                details={'user_address': user_address, 'identity_address': identity_address},
            )

        logger.info(f"✅ User identity registered with transaction: {tx_hash}")
        return tx_hash

    def get_status(self, user_address):
        """isVerified(user) on the registry"""
        user_address = require_address(user_address, 'userAddress')
        is_verified = self.web3_service.call(self._registry().functions.isVerified(user_address))
        logger.info(f"Identity status for {user_address}: {is_verified}")
        return bool(is_verified)

    def get_identity(self, user_address):
        """Identity contract registered for a user (zero address when none)"""
        user_address = require_address(user_address, 'userAddress')
        identity_address = self.web3_service.call(self._registry().functions.identity(user_address))
        logger.info(f"Identity for {user_address}: {identity_address}")
        return identity_address

    def get_investor_country(self, user_address):
        user_address = require_address(user_address, 'userAddress')
        return self.web3_service.call(self._registry().functions.investorCountry(user_address))

    def contains(self, user_address):
        user_address = require_address(user_address, 'userAddress')
        return self.web3_service.call(self._registry().functions.contains(user_address))

    def get_issuers_registry(self):
        return self.web3_service.call(self._registry().functions.issuersRegistry())

    def get_topics_registry(self):
        return self.web3_service.call(self._registry().functions.topicsRegistry())

    def get_identity_storage(self):
        return self.web3_service.call(self._registry().functions.identityStorage())

    def get_record(self, user_address):
        """Assemble the registry view of a user"""
        identity_address = self.get_identity(user_address)
        if is_zero_address(identity_address):
            return IdentityRecord(require_address(user_address, 'userAddress'), None, None, False)
        return IdentityRecord(
            user_address=require_address(user_address, 'userAddress'),
            identity_address=identity_address,
            country_code=self.get_investor_country(user_address),
            verified=self.get_status(user_address),
        )
