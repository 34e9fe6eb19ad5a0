# app/models/risk_model.py
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.utils.helpers import utcnow


class RiskLevel(str, Enum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


class StopLossConfig(BaseModel):
    """Stop-loss rule for one ticker. A literal price wins over a percent."""

    user_id: str
    ticker: str
    stop_loss_price: Optional[float] = None
    stop_loss_percent: Optional[float] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class StopLossRequest(BaseModel):
    stop_loss_price: Optional[float] = None
    stop_loss_percent: Optional[float] = None


class UserRiskProfile(BaseModel):
    user_id: str
    risk_level: RiskLevel = RiskLevel.MODERATE
    max_portfolio_loss_percent: float = 10.0
    auto_sell_enabled: bool = False
    confirmation_window_minutes: int = Field(5, ge=0)
    sustained_drop_minutes: int = Field(2, ge=0)
    high_value_threshold_percent: float = 15.0
    high_value_threshold_amount: float = 100000.0
    whitelist: List[str] = Field(default_factory=list)
    blacklist: List[str] = Field(default_factory=list)
    monitoring_active: bool = False
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = {"use_enum_values": True}

    @field_validator("whitelist", "blacklist")
    @classmethod
    def normalize_tickers(cls, v):
        return sorted({ticker.strip().upper() for ticker in v if ticker.strip()})

    def is_blacklisted(self, ticker: str) -> bool:
        return ticker.upper() in self.blacklist

    def is_whitelisted(self, ticker: str) -> bool:
        return ticker.upper() in self.whitelist


class RiskProfileUpdate(BaseModel):
    """Partial update; unset fields are left untouched."""

    risk_level: Optional[RiskLevel] = None
    max_portfolio_loss_percent: Optional[float] = Field(None, ge=0, le=100)
    auto_sell_enabled: Optional[bool] = None
    confirmation_window_minutes: Optional[int] = Field(None, ge=0)
    sustained_drop_minutes: Optional[int] = Field(None, ge=0)
    high_value_threshold_percent: Optional[float] = Field(None, ge=0, le=100)
    high_value_threshold_amount: Optional[float] = Field(None, ge=0)
    whitelist: Optional[List[str]] = None
    blacklist: Optional[List[str]] = None
