from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

ZERO = Decimal("0")
HUNDRED = Decimal("100")
SUPPORTED_ORIGINAL_CURRENCIES = {"EUR", "USD"}


@dataclass(frozen=True)
class Investment:
    ticker: str
    name: str
    shares: Decimal
    purchase_price: Decimal
    current_price: Decimal
    purchase_date: date
    original_currency: str = "EUR"
    dividend_per_share: Decimal = ZERO
    payment_months: Tuple[int, ...] = field(default_factory=tuple)
    id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.shares < ZERO:
            raise ValueError("shares must not be negative.")
        if self.original_currency not in SUPPORTED_ORIGINAL_CURRENCIES:
            raise ValueError("original_currency must be EUR or USD.")
        months = tuple(sorted(set(self.payment_months)))
        if any(month < 0 or month > 11 for month in months):
            raise ValueError("payment_months must be between 0 and 11.")
        object.__setattr__(self, "payment_months", months)


@dataclass(frozen=True)
class HoldingMetrics:
    ticker: str
    invested: Decimal
    current_value: Decimal
    profit_loss: Decimal
    profit_loss_percent: Decimal
    annual_dividends: Decimal
    current_yield: Decimal
    yield_on_cost: Decimal


@dataclass(frozen=True)
class PortfolioPerformance:
    total_invested: Decimal
    current_value: Decimal
    total_pl: Decimal
    percent_pl: Decimal
    total_dividends: Decimal
    yield_on_cost: Decimal
    holdings: List[HoldingMetrics]


@dataclass(frozen=True)
class AllocationSlice:
    ticker: str
    value: Decimal
    percentage: Decimal


def summarize_portfolio(investments: Iterable[Investment]) -> PortfolioPerformance:
    holdings = [holding_metrics(inv) for inv in investments]
    total_invested = sum((h.invested for h in holdings), ZERO)
    current_value = sum((h.current_value for h in holdings), ZERO)
    total_dividends = sum((h.annual_dividends for h in holdings), ZERO)
    total_pl = current_value - total_invested

    return PortfolioPerformance(
        total_invested=total_invested,
        current_value=current_value,
        total_pl=total_pl,
        percent_pl=_percent(total_pl, total_invested),
        total_dividends=total_dividends,
        yield_on_cost=_percent(total_dividends, total_invested),
        holdings=holdings,
    )


def holding_metrics(investment: Investment) -> HoldingMetrics:
    invested = investment.shares * investment.purchase_price
    current_value = investment.shares * investment.current_price
    profit_loss = current_value - invested
    return HoldingMetrics(
        ticker=investment.ticker,
        invested=invested,
        current_value=current_value,
        profit_loss=profit_loss,
        profit_loss_percent=_percent(profit_loss, invested),
        annual_dividends=investment.shares * investment.dividend_per_share,
        current_yield=_percent(investment.dividend_per_share, investment.current_price),
        yield_on_cost=_percent(investment.dividend_per_share, investment.purchase_price),
    )


def portfolio_value(investments: Iterable[Investment]) -> Decimal:
    return sum((inv.shares * inv.current_price for inv in investments), ZERO)


def allocation_by_ticker(investments: Iterable[Investment]) -> List[AllocationSlice]:
    """Current value grouped by ticker, in the order tickers first appear."""
    values: dict[str, Decimal] = {}
    for inv in investments:
        values[inv.ticker] = values.get(inv.ticker, ZERO) + inv.shares * inv.current_price

    total = sum(values.values(), ZERO)
    return [
        AllocationSlice(ticker=ticker, value=value, percentage=_percent(value, total))
        for ticker, value in values.items()
    ]


def _percent(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator == ZERO:
        return ZERO
    return numerator / denominator * HUNDRED
