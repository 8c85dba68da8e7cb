import logging
from dataclasses import dataclass, field
from typing import List, Optional

from eth_account import Account

from models.claim import Claim, SubmissionResult
from services.claim_issuer import ClaimIssuer
from services.claim_service import ClaimService
from services.onchainid_service import OnchainIDService
from services.registry_service import IdentityRegistryService

logger = logging.getLogger(__name__)


@dataclass
class OnboardingResult:
    """Everything produced while onboarding one investor"""

    user_address: str
    identity_address: Optional[str] = None
    claims: List[Claim] = field(default_factory=list)
    submissions: List[SubmissionResult] = field(default_factory=list)
    registration_tx_hash: Optional[str] = None
    is_verified: bool = False

    def to_dict(self):
        return {
            'userAddress': self.user_address,
            'identityAddress': self.identity_address,
            'claims': [claim.to_dict() for claim in self.claims],
            'claimTransactions': [result.transaction_hash for result in self.submissions],
            'registrationTransaction': self.registration_tx_hash,
            'isVerified': self.is_verified,
        }


class KYCService:
    """
    Full investor onboarding against the identity contracts:

    1. provision an OnchainID for the wallet
    2. have the issuer sign a claim about it
    3. submit the claim from the wallet's own key
    4. register the identity in the registry

    Each step waits for the previous one to be confirmed.
    """

    def __init__(self, onchainid_service: OnchainIDService, claim_issuer: ClaimIssuer,
                 claim_service: ClaimService, registry_service: IdentityRegistryService):
        self.onchainid_service = onchainid_service
        self.claim_issuer = claim_issuer
        self.claim_service = claim_service
        self.registry_service = registry_service

    def onboard(self, user_account, country_code, topic=None, payload=None, salt=None):
        """
        Args:
            user_account: LocalAccount (or private key) of the investor wallet
            country_code (int): ISO-3166 numeric country code
            topic (int): claim topic, the issuer's default when omitted
            payload (bytes | str): claim data, the topic default when omitted
            salt (str): identity deployment salt, generated when omitted

        Returns:
            OnboardingResult
        """
        if isinstance(user_account, str):
            user_account = Account.from_key(user_account)
        result = OnboardingResult(user_address=user_account.address)

        logger.info(f"🚀 Onboarding investor {user_account.address}")
        result.identity_address = self.onchainid_service.provision(user_account.address, salt=salt)

        claim = self.claim_issuer.issue_claim(
            result.identity_address, topic=topic, payload=payload, user_address=user_account.address
        )
        result.claims.append(claim)

        submission = self.claim_service.submit_claim(result.identity_address, user_account, claim)
        result.submissions.append(submission)
        if not submission.succeeded:
            logger.error(f"❌ Claim submission reverted for {user_account.address}, skipping registration")
            return result

        result.registration_tx_hash = self.registry_service.register(
            user_account.address, result.identity_address, country_code
        )
        result.is_verified = self.registry_service.get_status(user_account.address)
        logger.info(f"✅ Onboarding finished for {user_account.address}: verified={result.is_verified}")
        return result
