import logging

from eth_account import Account
from web3 import Web3

from config.claim_topics import get_default_claim_data, get_topic_name, is_valid_topic
from models.claim import Claim, ClaimScheme, ClaimSignature
from services.exceptions import ValidationError
from utils.address_utils import require_address
from utils.claims_utils import claim_signable_message, compute_claim_data_hash, to_claim_bytes

logger = logging.getLogger(__name__)


class ClaimIssuer:
    """
    Off-chain issuer: signs claims about identities.

    The digest is keccak256(abi.encode(identity, topic, data)) wrapped in the
    "\\x19Ethereum Signed Message:\\n32" prefix, which is what the identity
    contract feeds to ecrecover when it validates a claim.
    """

    def __init__(self, private_key, default_topic=42):
        self._account = Account.from_key(private_key)
        self.default_topic = default_topic

    @classmethod
    def from_settings(cls, settings):
        return cls(settings.issuer_private_key, default_topic=settings.default_claim_topic)

    @property
    def address(self):
        return self._account.address

    def sign_data_hash(self, data_hash):
        """Personal-sign a 32-byte claim digest and return its r/s/v components"""
        signed = self._account.sign_message(claim_signable_message(data_hash))
        return ClaimSignature.from_signed_message(signed)

    def issue_claim(self, identity_address, topic=None, payload=None, user_address=None):
        """
        Sign a claim for an identity.

        Args:
            identity_address (str): subject identity contract
            topic (int): claim topic, the configured default (42) when omitted
            payload (bytes | str): claim data, the topic's default payload when omitted
            user_address (str): wallet owning the identity, validated when given

        Returns:
            Claim: ready to be passed to addClaim()
        """
        identity_address = require_address(identity_address, 'identityAddress')
        if user_address is not None:
            require_address(user_address, 'userAddress')

        topic = self.default_topic if topic is None else topic
        if not is_valid_topic(topic):
            raise ValidationError(f"Invalid claim topic: {topic!r}", {'field': 'topic'})
        data = to_claim_bytes(get_default_claim_data(topic) if payload is None else payload)

        data_hash = compute_claim_data_hash(identity_address, topic, data)
        signature = self.sign_data_hash(data_hash)

        logger.info(
            f"🖋️ Issuer {self.address} signed {get_topic_name(topic)} claim for identity {identity_address} "
            f"(data hash {Web3.to_hex(data_hash)}, signature {signature.serialized[:10]}...)"
        )
        return Claim(
            topic=topic,
            scheme=ClaimScheme.ECDSA,
            issuer=self.address,
            signature=signature.serialized,
            data=data,
            uri='',
        )
