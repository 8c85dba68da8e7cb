from eth_abi import encode
from web3 import Web3

from services.exceptions import InvalidAddressError

ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'


def require_address(address, field='address'):
    """Validate an address and return it in checksum format"""
    if not isinstance(address, str) or not Web3.is_address(address):
        raise InvalidAddressError(address, field)
    return Web3.to_checksum_address(address)


def is_zero_address(address):
    return not address or address.lower() == ZERO_ADDRESS


def hash_address_abi_encoded(address):
    """
    Hash an address using 32-byte ABI encoding (the key format used by identity contracts)

    Args:
        address (str): Ethereum address to hash

    Returns:
        bytes: 32-byte keccak hash of the ABI-encoded address
    """
    return Web3.keccak(encode(['address'], [require_address(address)]))
