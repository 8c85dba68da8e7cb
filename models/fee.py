from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class FeeSnapshot:
    """Raw fee data as reported by the provider; either field may be missing"""
    max_fee_per_gas: Optional[int]
    max_priority_fee_per_gas: Optional[int]


@dataclass(frozen=True)
class FeeQuote:
    """EIP-1559 fee parameters for exactly one transaction"""
    max_fee_per_gas: int
    max_priority_fee_per_gas: int

    def as_tx_params(self):
        return {
            'maxFeePerGas': self.max_fee_per_gas,
            'maxPriorityFeePerGas': self.max_priority_fee_per_gas,
        }
