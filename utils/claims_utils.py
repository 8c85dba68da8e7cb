"""
Claim hashing helpers shared by the issuer and the verifier.

The identity contract recomputes keccak256(abi.encode(identity, topic, data))
and recovers the signer from the EIP-191 prefixed form of that hash, so both
sides must build the digest exactly the same way.
"""

from eth_abi import encode
from eth_account.messages import encode_defunct
from web3 import Web3

from services.exceptions import ValidationError
from utils.address_utils import require_address

EIP191_PREFIX = b"\x19Ethereum Signed Message:\n32"


def to_claim_bytes(payload):
    """Claim payloads may be given as text (UTF-8 encoded) or raw bytes"""
    if payload is None:
        return b''
    if isinstance(payload, str):
        return payload.encode('utf-8')
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    raise ValidationError(f"Claim data must be text or bytes, got {type(payload).__name__}", {'field': 'data'})


def compute_claim_data_hash(identity_address, topic, payload):
    """keccak256(abi.encode(address identity, uint256 topic, bytes data))"""
    identity = require_address(identity_address, 'identityAddress')
    return Web3.keccak(encode(['address', 'uint256', 'bytes'], [identity, int(topic), to_claim_bytes(payload)]))


def claim_signable_message(data_hash):
    """Personal-sign wrapper: "\\x19Ethereum Signed Message:\\n32" + data_hash"""
    return encode_defunct(primitive=bytes(data_hash))


def compute_prefixed_hash(data_hash):
    """Digest that ecrecover actually sees once the EIP-191 prefix is applied"""
    return Web3.keccak(EIP191_PREFIX + bytes(data_hash))
