from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from web3 import Web3

from strikegrid.networks import NetworkProfile

FALLBACK_GAS_PRICE = Web3.to_wei(Decimal("0.01"), "gwei")


@dataclass(frozen=True)
class FeePlan:
    execution_fee: int  # maxFeePerGas
    priority_fee: int  # maxPriorityFeePerGas
    overhead: int  # gas budget plus moat, subtracted before sizing


def fee_plan(
    profile: NetworkProfile,
    gas_price: Optional[int],
    gas_limit: int = 1_500_000,
    buffer_pct: int = 120,
) -> FeePlan:
    price = gas_price or FALLBACK_GAS_PRICE
    priority = int(Web3.to_wei(Decimal(profile.priority_gwei), "gwei"))
    execution_fee = price * buffer_pct // 100 + priority
    moat = int(Web3.to_wei(Decimal(profile.moat_ether), "ether"))
    return FeePlan(execution_fee, priority, gas_limit * execution_fee + moat)
