from enum import Enum
from typing import Optional
from pydantic import BaseModel


class Signal(BaseModel):
    ticker: str
    sentiment: float = 0.0
    source: str


class SettlementStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    REJECTED = "rejected"  # relay simulation refused the bundle


class ExecutionOutcome(BaseModel):
    network: str
    tier: str
    amount: int
    path: str  # relay | public
    source: str
    status: SettlementStatus
    tx_ref: Optional[str] = None
    credited: Optional[bool] = None  # True credited, False penalized, None untouched
    error: Optional[str] = None
