import logging

from eth_account import Account
from eth_keys.exceptions import BadSignature
from eth_utils import ValidationError as EthValidationError
from hexbytes import HexBytes
from web3 import Web3

from models.claim import SubmissionOutcome, SubmissionResult
from services.exceptions import SignatureMismatchError
from utils.address_utils import require_address
from utils.claims_utils import claim_signable_message, compute_claim_data_hash, compute_prefixed_hash

logger = logging.getLogger(__name__)


class ClaimService:
    """Verifies issued claims and submits them to identity contracts"""

    def __init__(self, web3_service, settings=None):
        self.web3_service = web3_service
        self.settings = settings or web3_service.settings

    def _identity(self, identity_address):
        return self.web3_service.get_contract(identity_address, 'Identity')

    def recover_issuer(self, claim, identity_address):
        """Recover the signer of a claim offline; None when the signature is malformed"""
        data_hash = compute_claim_data_hash(identity_address, claim.topic, claim.data)
        try:
            return Account.recover_message(claim_signable_message(data_hash), signature=HexBytes(claim.signature))
        except (ValueError, TypeError, IndexError, AssertionError, BadSignature, EthValidationError) as e:
            logger.warning(f"Could not recover signer of topic {claim.topic} claim: {e}")
            return None

    def verify_locally(self, claim, identity_address):
        """True when the claim signature recovers to ``claim.issuer``; no network access"""
        recovered = self.recover_issuer(claim, identity_address)
        if recovered is None:
            return False
        valid = recovered.lower() == claim.issuer.lower()
        logger.info(f"Local signature check - expected issuer: {claim.issuer}, recovered: {recovered}, valid: {valid}")
        return valid

    def verify_with_contract(self, claim, identity_address):
        """
        Ask the identity contract itself to recover the signer.

        getRecoveredAddress runs plain ecrecover, so it is given the prefixed
        digest, exactly as isClaimValid does internally.
        """
        data_hash = compute_claim_data_hash(identity_address, claim.topic, claim.data)
        identity = self._identity(identity_address)
        recovered = self.web3_service.call(
            identity.functions.getRecoveredAddress(HexBytes(claim.signature), compute_prefixed_hash(data_hash))
        )
        valid = recovered.lower() == claim.issuer.lower()
        logger.info(f"On-chain signature check - expected issuer: {claim.issuer}, recovered: {recovered}, valid: {valid}")
        return valid

    def is_claim_valid(self, claim, identity_address):
        """isClaimValid view on the identity contract"""
        identity_address = require_address(identity_address, 'identityAddress')
        identity = self._identity(identity_address)
        return self.web3_service.call(
            identity.functions.isClaimValid(identity_address, claim.topic, HexBytes(claim.signature), claim.data)
        )

    def submit_claim(self, identity_address, signer, claim):
        """
        Add a signed claim to an identity, sent by the identity's own key.

        The signature is checked before any gas is spent; a claim the contract
        would reject raises SignatureMismatchError and nothing is submitted.
        A mined-but-reverted transaction is reported in the result, not raised.

        Args:
            identity_address (str): subject identity contract
            signer: LocalAccount (or private key) of the identity owner
            claim (Claim): claim produced by ClaimIssuer.issue_claim

        Returns:
            SubmissionResult
        """
        identity_address = require_address(identity_address, 'identityAddress')
        if isinstance(signer, str):
            signer = Account.from_key(signer)

        if not self.verify_locally(claim, identity_address):
            raise SignatureMismatchError(
                "Signature verification failed! Recovered address does not match issuer.",
                {'issuer': claim.issuer, 'identity_address': identity_address, 'check': 'local'},
            )
        if self.settings.verify_claims_on_chain and not self.verify_with_contract(claim, identity_address):
            raise SignatureMismatchError(
                "Identity contract recovered a different signer than the claim issuer.",
                {'issuer': claim.issuer, 'identity_address': identity_address, 'check': 'contract'},
            )

        logger.info(f"User ({signer.address}) calling addClaim() on identity {identity_address}...")
        identity = self._identity(identity_address)
        function = identity.functions.addClaim(
            claim.topic,
            int(claim.scheme),
            Web3.to_checksum_address(claim.issuer),
            HexBytes(claim.signature),
            claim.data,
            claim.uri,
        )
        # addClaim is a heavier state change than gas estimation tends to allow for
        receipt = self.web3_service.send_transaction(function, signer=signer, gas_limit=self.settings.claim_gas_limit)
        tx_hash = self.web3_service.transaction_hash(receipt)

        if receipt['status'] == 1:
            logger.info(f"✅ Claim topic {claim.topic} submitted on-chain: {tx_hash}")
            return SubmissionResult(tx_hash, receipt['status'], SubmissionOutcome.CONFIRMED)

        logger.error(f"❌ addClaim transaction {tx_hash} reverted with status {receipt['status']}")
        return SubmissionResult(tx_hash, receipt['status'], SubmissionOutcome.TRANSACTION_REVERTED)

    def get_claim_ids_by_topic(self, identity_address, topic):
        identity = self._identity(identity_address)
        claim_ids = self.web3_service.call(identity.functions.getClaimIdsByTopic(topic))
        return [Web3.to_hex(claim_id) for claim_id in claim_ids]
