"""Builders for holdings used across the test suite."""

from app.models.holding_model import MutualFund, Stock

USER = "USR1"


def make_stock(ticker="AAPL", price=188.0, purchase=200.0, quantity=10, exchange="NASDAQ"):
    return Stock(
        ticker=ticker,
        company_name=f"{ticker} Inc.",
        quantity=quantity,
        purchase_price=purchase,
        current_price=price,
        exchange=exchange,
    )


def make_fund(ticker="PPFAS", nav=80.0, purchase=60.0, quantity=1000):
    return MutualFund(
        ticker=ticker,
        company_name="Parag Parikh Flexi Cap",
        quantity=quantity,
        purchase_price=purchase,
        nav=nav,
    )
