"""
EIP-1559 fee computation.

The provider's suggested tip is often too low for networks that enforce a
minimum priority fee (Polygon Amoy rejects anything under 30 gwei), so the tip
is floored, then buffered by 10%, and the max fee is rebuilt from the implied
base fee so it always covers the buffered tip.
"""

import logging
from dataclasses import dataclass

from web3 import Web3

from models.fee import FeeQuote
from services.exceptions import FeeDataUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_MIN_PRIORITY_FEE = Web3.to_wei(32, 'gwei')


@dataclass(frozen=True)
class FeePolicy:
    """Network floor and safety buffer applied to every quote"""
    min_priority_fee_wei: int = DEFAULT_MIN_PRIORITY_FEE
    buffer_numerator: int = 110
    buffer_denominator: int = 100

    @classmethod
    def from_settings(cls, settings):
        return cls(
            min_priority_fee_wei=settings.min_priority_fee_wei,
            buffer_numerator=settings.priority_fee_buffer_percent,
            buffer_denominator=100,
        )


def _require_fee_value(value, name):
    if value is None:
        raise FeeDataUnavailableError(f"Provider did not report {name}", {'field': name})
    if isinstance(value, bool) or not isinstance(value, int):
        raise FeeDataUnavailableError(f"Malformed {name}: {value!r}", {'field': name})
    if value < 0:
        raise FeeDataUnavailableError(f"Negative {name}: {value}", {'field': name})
    return value


def compute_fee_quote(snapshot, policy=None):
    """
    Turn a provider fee snapshot into the fee quote for one transaction.

    Args:
        snapshot (FeeSnapshot): maxFeePerGas / maxPriorityFeePerGas from the provider
        policy (FeePolicy): floor and buffer, defaults to 32 gwei and 110/100

    Returns:
        FeeQuote: buffered priority fee and the max fee covering it

    Raises:
        FeeDataUnavailableError: either value is missing or malformed
    """
    policy = policy or FeePolicy()

    max_fee = _require_fee_value(snapshot.max_fee_per_gas, 'maxFeePerGas')
    reported_priority = _require_fee_value(snapshot.max_priority_fee_per_gas, 'maxPriorityFeePerGas')

    priority_fee = reported_priority
    if priority_fee < policy.min_priority_fee_wei:
        logger.info(
            f"Provider priority fee {Web3.from_wei(priority_fee, 'gwei')} gwei is below the floor, "
            f"using {Web3.from_wei(policy.min_priority_fee_wei, 'gwei')} gwei"
        )
        priority_fee = policy.min_priority_fee_wei

    # Integer math only: fee values can exceed float precision
    buffered_priority_fee = priority_fee * policy.buffer_numerator // policy.buffer_denominator

    estimated_base_fee = max(max_fee - reported_priority, 0)
    quote = FeeQuote(
        max_fee_per_gas=estimated_base_fee + buffered_priority_fee,
        max_priority_fee_per_gas=buffered_priority_fee,
    )

    logger.info(
        f"⛽ Calculated gas - max fee: {Web3.from_wei(quote.max_fee_per_gas, 'gwei')} gwei, "
        f"priority fee (tip): {Web3.from_wei(quote.max_priority_fee_per_gas, 'gwei')} gwei"
    )
    return quote
