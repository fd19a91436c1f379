from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional

from backend.portfolio_engine import Investment

ZERO = Decimal("0")
HUNDRED = Decimal("100")
MONTH_LABELS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)
SUPPORTED_HORIZONS = (10, 25, 40)
DEFAULT_GROWTH_RATE = Decimal("0.08")
DEFAULT_MONTHLY_GOAL = Decimal("1000")
DAYS_PER_YEAR = Decimal("365")
HOURS_PER_YEAR = Decimal("8760")


@dataclass(frozen=True)
class MonthlyDividend:
    month: int
    label: str
    amount: Decimal


@dataclass(frozen=True)
class DividendCalendar:
    months: List[MonthlyDividend]
    annual_total: Decimal
    peak: Decimal


@dataclass(frozen=True)
class ProjectionPoint:
    year: int
    amount: int


@dataclass(frozen=True)
class DividendProjection:
    points: List[ProjectionPoint]
    future_value: int
    annual_goal: Decimal
    monthly_goal: Decimal
    monthly_income: Decimal
    progress_percent: Decimal
    progress_display_percent: Decimal
    daily_income: Decimal
    hourly_income: Decimal


def schedule_dividends(investments: Iterable[Investment]) -> List[Decimal]:
    """Spread each holding's annual dividend evenly over its payment months.

    Index 0 is January. Holdings without payment months are unscheduled and
    contribute nothing.
    """
    totals = [ZERO] * 12
    for inv in investments:
        if not inv.payment_months:
            continue
        payment = inv.shares * inv.dividend_per_share / max(1, len(inv.payment_months))
        for month in inv.payment_months:
            totals[month] += payment
    return totals


def build_dividend_calendar(investments: Iterable[Investment]) -> DividendCalendar:
    totals = schedule_dividends(investments)
    return DividendCalendar(
        months=[
            MonthlyDividend(month=index, label=MONTH_LABELS[index], amount=amount)
            for index, amount in enumerate(totals)
        ],
        annual_total=sum(totals, ZERO),
        peak=max(totals + [Decimal("1")]),
    )


def project_dividends(
    current_annual: Decimal,
    years: int,
    *,
    growth_rate: Decimal = DEFAULT_GROWTH_RATE,
    monthly_goal: Decimal = DEFAULT_MONTHLY_GOAL,
    start_year: Optional[int] = None,
) -> DividendProjection:
    if years not in SUPPORTED_HORIZONS:
        raise ValueError("years must be one of 10, 25 or 40.")
    current = _coerce_amount(current_annual)
    if current < ZERO:
        raise ValueError("current_annual must not be negative.")
    if monthly_goal <= ZERO:
        raise ValueError("monthly_goal must be greater than zero.")
    first_year = start_year if start_year is not None else date.today().year

    multiplier = Decimal("1") + _coerce_amount(growth_rate)
    points: List[ProjectionPoint] = []
    running = current
    for offset in range(years + 1):
        points.append(ProjectionPoint(year=first_year + offset, amount=round_whole(running)))
        running = running * multiplier

    annual_goal = monthly_goal * 12
    progress = current / annual_goal * HUNDRED
    return DividendProjection(
        points=points,
        future_value=points[-1].amount,
        annual_goal=annual_goal,
        monthly_goal=monthly_goal,
        monthly_income=current / 12,
        progress_percent=progress,
        progress_display_percent=min(progress, HUNDRED),
        daily_income=current / DAYS_PER_YEAR,
        hourly_income=current / HOURS_PER_YEAR,
    )


def round_whole(amount: Decimal) -> int:
    # Half-up, matching how the dashboard displays whole euros.
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
