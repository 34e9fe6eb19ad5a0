# app/models/holding_model.py
from pydantic import BaseModel, Field
from typing import Annotated, Literal, Optional, Union


Exchange = Literal["NSE", "BSE", "NASDAQ", "NYSE"]


class HoldingBase(BaseModel):
    ticker: str
    company_name: str
    quantity: float = Field(..., ge=0)
    purchase_price: float = Field(..., gt=0)
    exchange: Exchange = "NSE"
    sector: str = "Unknown"

    @property
    def market_value(self) -> float:
        return self.quantity * current_price_of(self)

    @property
    def profit_loss(self) -> float:
        return (current_price_of(self) - self.purchase_price) * self.quantity

    @property
    def profit_loss_percent(self) -> float:
        return (current_price_of(self) - self.purchase_price) / self.purchase_price * 100


class Stock(HoldingBase):
    kind: Literal["stock"] = "stock"
    current_price: float = Field(..., gt=0)


class MutualFund(HoldingBase):
    kind: Literal["mutual_fund"] = "mutual_fund"
    nav: float = Field(..., gt=0)


Investable = Annotated[Union[Stock, MutualFund], Field(discriminator="kind")]


def current_price_of(holding: HoldingBase) -> float:
    """Latest unit price of a holding: the quote for stocks, the NAV for funds."""
    match holding:
        case Stock(current_price=price):
            return price
        case MutualFund(nav=nav):
            return nav
        case _:
            raise TypeError(f"Unknown holding type: {type(holding).__name__}")


def holding_snapshot(holding: Investable) -> dict:
    """Plain dict of a holding including derived values, used in pre-sell snapshots."""
    data = holding.model_dump()
    data["current_price"] = current_price_of(holding)
    data["market_value"] = holding.market_value
    data["profit_loss"] = holding.profit_loss
    data["profit_loss_percent"] = holding.profit_loss_percent
    return data


class HoldingUpsert(BaseModel):
    """Request body for adding or refreshing a holding."""

    kind: Literal["stock", "mutual_fund"] = "stock"
    ticker: str = Field(..., min_length=1, max_length=32)
    company_name: str
    quantity: float = Field(..., gt=0)
    purchase_price: float = Field(..., gt=0)
    price: float = Field(..., gt=0, description="Latest quote or NAV")
    exchange: Exchange = "NSE"
    sector: Optional[str] = None

    def to_holding(self) -> Investable:
        common = {
            "ticker": self.ticker.upper(),
            "company_name": self.company_name,
            "quantity": self.quantity,
            "purchase_price": self.purchase_price,
            "exchange": self.exchange,
            "sector": self.sector or "Unknown",
        }
        if self.kind == "mutual_fund":
            return MutualFund(nav=self.price, **common)
        return Stock(current_price=self.price, **common)
