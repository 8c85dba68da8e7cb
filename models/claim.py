from dataclasses import dataclass, field
from enum import Enum, IntEnum


class ClaimScheme(IntEnum):
    """Signature schemes understood by the identity contract"""
    ECDSA = 1


class SubmissionOutcome(Enum):
    CONFIRMED = 'confirmed'
    TRANSACTION_REVERTED = 'transaction_reverted'


@dataclass(frozen=True)
class ClaimSignature:
    """Recoverable ECDSA signature split into its components"""
    r: int
    s: int
    v: int
    serialized: str

    @classmethod
    def from_signed_message(cls, signed):
        return cls(
            r=signed.r,
            s=signed.s,
            v=signed.v,
            serialized='0x' + bytes(signed.signature).hex(),
        )


@dataclass(frozen=True)
class Claim:
    """
    Signed attestation about an identity, ready for addClaim().

    ``data`` is kept as raw bytes; ``signature`` is the 65-byte r || s || v
    serialization as a 0x-prefixed hex string.
    """
    topic: int
    issuer: str
    signature: str
    data: bytes = b''
    scheme: int = ClaimScheme.ECDSA
    uri: str = ''

    def to_dict(self):
        """Render the claim in the JSON shape returned by POST /signature"""
        return {
            'topic': self.topic,
            'scheme': int(self.scheme),
            'issuer': self.issuer,
            'signature': self.signature,
            'data': '0x' + self.data.hex(),
            'uri': self.uri,
        }


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of an addClaim transaction; a revert is reported, not raised"""
    transaction_hash: str
    status: int
    outcome: SubmissionOutcome = field(default=SubmissionOutcome.CONFIRMED)

    @property
    def succeeded(self):
        return self.outcome is SubmissionOutcome.CONFIRMED
