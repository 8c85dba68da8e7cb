from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional


class KeyPurpose(IntEnum):
    """ERC-734 key purposes"""
    MANAGEMENT = 1
    ACTION = 2
    CLAIM_SIGNER = 3


class KeyType(IntEnum):
    ECDSA = 1


class ProvisioningState(Enum):
    REQUESTED = 'requested'
    DEPLOYING = 'deploying'
    AWAITING_DEPLOY_RECEIPT = 'awaiting_deploy_receipt'
    EXTRACTING_ADDRESS = 'extracting_address'
    GRANTING_MANAGEMENT_KEY = 'granting_management_key'
    GRANTING_CLAIM_KEY = 'granting_claim_key'
    CONFIGURED = 'configured'
    FAILED = 'failed'


@dataclass(frozen=True)
class KeyGrant:
    """Authorization record written into an identity contract by addKey()"""
    identity_address: str
    key_hash: str
    purpose: KeyPurpose
    key_type: KeyType = KeyType.ECDSA


@dataclass
class IdentityRecord:
    """Registry view of a user: wallet, identity contract, country, verification"""
    user_address: str
    identity_address: Optional[str]
    country_code: Optional[int]
    verified: bool

    def to_dict(self):
        return {
            'userAddress': self.user_address,
            'identityAddress': self.identity_address,
            'countryCode': self.country_code,
            'isVerified': self.verified,
        }
