import logging
import secrets
import time

from eth_abi import encode
from web3 import Web3

from models.identity import KeyGrant, KeyPurpose, KeyType, ProvisioningState
from services.exceptions import ChainWriteError, IdentityAddressNotFoundError, KYCPlatformError
from utils.address_utils import hash_address_abi_encoded, is_zero_address, require_address

logger = logging.getLogger(__name__)

WALLET_LINKED_EVENT = 'WalletLinked'


class ProvisioningSession:
    """Tracks one provisioning request through its states"""

    def __init__(self, user_address, salt):
        self.user_address = user_address
        self.salt = salt
        self.state = ProvisioningState.REQUESTED
        self.identity_address = None
        self.deploy_tx_hash = None
        self.key_grants = []

    def advance(self, state):
        logger.info(f"🪪 Provisioning {self.user_address}: {self.state.value} -> {state.value}")
        self.state = state

    def fail(self, error):
        failed_at = self.state
        self.state = ProvisioningState.FAILED
        logger.error(f"❌ Provisioning {self.user_address} failed during {failed_at.value}: {error}")
        if isinstance(error, KYCPlatformError):
            error.details.setdefault('failed_at', failed_at.value)
            if self.identity_address:
                error.details.setdefault('identity_address', self.identity_address)


class OnchainIDService:
    """Service for OnchainID operations using the IdFactory contract"""

    def __init__(self, web3_service, settings=None):
        self.web3_service = web3_service
        self.settings = settings or web3_service.settings

    @property
    def id_factory_address(self):
        return self.settings.id_factory_address

    def _factory(self):
        return self.web3_service.get_contract(self.id_factory_address, 'IdFactory')

    def generate_salt(self, wallet_address):
        """Unique salt per deployment attempt: keccak(abi.encode(wallet, time_ns, random))"""
        salt_bytes = Web3.keccak(
            encode(['address', 'uint256', 'uint256'],
                   [wallet_address, time.time_ns(), secrets.randbits(64)])
        )
        return Web3.to_hex(salt_bytes)

    def provision(self, user_address, salt=None):
        """
        Create and configure an OnchainID for a wallet.

        Deploys through createIdentityWithManagementKeys with the operator key as
        the sole management key, reads the new identity from the WalletLinked
        event, then grants the user's key MANAGEMENT and CLAIM_SIGNER purposes
        in two separate transactions.

        The sequence is not atomic: if a later step fails the identity may
        exist unconfigured. The error carries ``details['failed_at']`` and,
        once known, ``details['identity_address']``.

        Args:
            user_address (str): wallet the identity is linked to
            salt (str): deployment salt, generated when omitted

        Returns:
            str: the identity contract address
        """
        user_address = require_address(user_address, 'userAddress')
        session = ProvisioningSession(user_address, salt or self.generate_salt(user_address))
        try:
            self._deploy(session)
            self._grant_key(session, KeyPurpose.MANAGEMENT, ProvisioningState.GRANTING_MANAGEMENT_KEY)
            self._grant_key(session, KeyPurpose.CLAIM_SIGNER, ProvisioningState.GRANTING_CLAIM_KEY)
        except Exception as e:
            session.fail(e)
            raise

        session.advance(ProvisioningState.CONFIGURED)
        logger.info(f"✅ Identity {session.identity_address} configured for {user_address}")
        return session.identity_address

    def _deploy(self, session):
        factory = self._factory()
        operator_key = hash_address_abi_encoded(self.settings.management_key_address)

        session.advance(ProvisioningState.DEPLOYING)
        logger.info(f"🏭 Creating identity for {session.user_address} via IdFactory {self.id_factory_address}")
        function = factory.functions.createIdentityWithManagementKeys(
            session.user_address,
            session.salt,
            [operator_key],
        )

        session.advance(ProvisioningState.AWAITING_DEPLOY_RECEIPT)
        receipt = self.web3_service.send_transaction(function)
        session.deploy_tx_hash = self.web3_service.transaction_hash(receipt)

        session.advance(ProvisioningState.EXTRACTING_ADDRESS)
        event = self.web3_service.find_event(factory, receipt, WALLET_LINKED_EVENT)
        if event is None:
            raise IdentityAddressNotFoundError(
                "Could not find the WalletLinked event in the transaction receipt",
                {'transaction_hash': session.deploy_tx_hash, 'status': receipt['status']},
            )

        session.identity_address = Web3.to_checksum_address(event['args']['identity'])
        logger.info(f"Identity contract for {session.user_address} deployed at: {session.identity_address}")

    def _grant_key(self, session, purpose, state):
        session.advance(state)
        key_hash = hash_address_abi_encoded(session.user_address)
        identity = self.web3_service.get_contract(session.identity_address, 'Identity')

        logger.info(f"Adding {purpose.name} key for {session.user_address}...")
        receipt = self.web3_service.send_transaction(
            identity.functions.addKey(key_hash, int(purpose), int(KeyType.ECDSA))
        )
        tx_hash = self.web3_service.transaction_hash(receipt)
        if receipt['status'] != 1:
            raise ChainWriteError(f"addKey({purpose.name}) reverted", tx_hash=tx_hash,
                                  details={'identity_address': session.identity_address})

        session.key_grants.append(KeyGrant(
            identity_address=session.identity_address,
            key_hash=Web3.to_hex(key_hash),
            purpose=purpose,
        ))
        logger.info(f"✅ {purpose.name} key granted to {session.user_address}: {tx_hash}")

    def get_factory_identity(self, wallet_address):
        """Identity deployed by the factory for a wallet, or None"""
        wallet_address = require_address(wallet_address, 'userAddress')
        identity_address = self.web3_service.call(self._factory().functions.getIdentity(wallet_address))
        if is_zero_address(identity_address):
            return None
        return identity_address

    def key_has_purpose(self, identity_address, wallet_address, purpose):
        """Check whether a wallet's key holds a purpose on an identity"""
        identity = self.web3_service.get_contract(identity_address, 'Identity')
        key_hash = hash_address_abi_encoded(wallet_address)
        return self.web3_service.call(identity.functions.keyHasPurpose(key_hash, int(purpose)))
