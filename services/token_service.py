import logging

from services.exceptions import ChainWriteError, ValidationError
from utils.address_utils import require_address

logger = logging.getLogger(__name__)


def parse_amount(amount):
    """Mint amounts are positive integers in the token's base unit"""
    if isinstance(amount, bool):
        raise ValidationError(f"Invalid amount: {amount!r}", {'field': 'amount'})
    try:
        value = int(amount)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {amount!r}", {'field': 'amount'})
    if isinstance(amount, float) and value != amount:
        raise ValidationError(f"Amount must be a whole number: {amount!r}", {'field': 'amount'})
    if value <= 0:
        raise ValidationError(f"Amount must be positive: {value}", {'field': 'amount'})
    return value


class TokenService:
    """Mints and reads permissioned security tokens"""

    def __init__(self, web3_service, settings=None):
        self.web3_service = web3_service
        self.settings = settings or web3_service.settings

    def _token(self, token_address):
        token_address = token_address or self.settings.token_address
        if not token_address:
            raise ValidationError("Missing tokenAddress and no default token is configured",
                                  {'field': 'tokenAddress'})
        return self.web3_service.get_contract(require_address(token_address, 'tokenAddress'), 'Token')

    def mint(self, to_address, amount, token_address=None):
        """
        Mint tokens to an investor wallet.

        The token enforces identity verification itself; minting to an
        unverified wallet reverts and surfaces as ChainWriteError.

        Returns:
            str: transaction hash
        """
        to_address = require_address(to_address, 'to')
        amount = parse_amount(amount)
        token = self._token(token_address)

        logger.info(f"🪙 Minting {amount} tokens on {token.address} to {to_address}")
        receipt = self.web3_service.send_transaction(token.functions.mint(to_address, amount))
        tx_hash = self.web3_service.transaction_hash(receipt)
        if receipt['status'] != 1:
            raise ChainWriteError(f"mint reverted for {to_address}", tx_hash=tx_hash,
                                  details={'token_address': token.address, 'to': to_address})

        logger.info(f"✅ Minted {amount} tokens to {to_address}: {tx_hash}")
        return tx_hash

    def balance_of(self, holder_address, token_address=None):
        holder_address = require_address(holder_address, 'holderAddress')
        token = self._token(token_address)
        return self.web3_service.call(token.functions.balanceOf(holder_address))
