# Models package
# Value objects mirroring on-chain state; nothing here is persisted locally.

from .claim import Claim, ClaimScheme, ClaimSignature, SubmissionOutcome, SubmissionResult
from .fee import FeeQuote, FeeSnapshot
from .identity import IdentityRecord, KeyGrant, KeyPurpose, KeyType, ProvisioningState
