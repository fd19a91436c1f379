from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

ZERO = Decimal("0")
HUNDRED = Decimal("100")
WARNING_THRESHOLD = Decimal("75")
TRANSACTION_TYPES = {"income", "expense", "investment"}


@dataclass(frozen=True)
class Transaction:
    amount: Decimal
    type: str
    date: date
    description: str = ""
    category: Optional[str] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class Budget:
    category: str
    limit: Decimal
    id: Optional[str] = None


@dataclass(frozen=True)
class BudgetEvaluation:
    category: str
    limit: Decimal
    spent: Decimal
    ratio_percent: Decimal
    percentage: Decimal
    remaining: Decimal
    overspent: Decimal
    status: str
    budget_id: Optional[str] = None


@dataclass(frozen=True)
class ChartSlice:
    name: str
    value: Decimal


@dataclass(frozen=True)
class BudgetOverview:
    total_limit: Decimal
    total_spent: Decimal
    remaining: Decimal
    overspent: Decimal
    spending_by_category: Dict[str, Decimal]
    budgets: List[BudgetEvaluation]
    chart: List[ChartSlice]


def spending_by_category(transactions: Iterable[Transaction]) -> Dict[str, Decimal]:
    spending: Dict[str, Decimal] = {}
    for txn in transactions:
        if txn.type.strip().lower() != "expense" or not txn.category:
            continue
        spending[txn.category] = spending.get(txn.category, ZERO) + _coerce_amount(txn.amount)
    return spending


def evaluate_budget(budget: Budget, spending: Mapping[str, Decimal]) -> BudgetEvaluation:
    if budget.limit <= ZERO:
        raise ValueError("budget.limit must be greater than zero.")

    spent = spending.get(budget.category, ZERO)
    ratio = spent / budget.limit * HUNDRED
    return BudgetEvaluation(
        category=budget.category,
        limit=budget.limit,
        spent=spent,
        ratio_percent=ratio,
        percentage=min(ratio, HUNDRED),
        remaining=max(budget.limit - spent, ZERO),
        overspent=max(spent - budget.limit, ZERO),
        status=classify_status(ratio),
        budget_id=budget.id,
    )


def classify_status(ratio_percent: Decimal) -> str:
    if ratio_percent >= HUNDRED:
        return "over"
    if ratio_percent >= WARNING_THRESHOLD:
        return "warning"
    return "healthy"


def summarize_budgets(
    transactions: Iterable[Transaction],
    budgets: Iterable[Budget],
) -> BudgetOverview:
    spending = spending_by_category(transactions)
    evaluations = [evaluate_budget(budget, spending) for budget in budgets]

    total_limit = sum((e.limit for e in evaluations), ZERO)
    total_spent = sum((e.spent for e in evaluations), ZERO)
    remaining = max(total_limit - total_spent, ZERO)
    overspent = max(total_spent - total_limit, ZERO)

    chart = [
        ChartSlice(name="spent", value=min(total_spent, total_limit)),
        ChartSlice(name="remaining", value=remaining),
    ]
    if overspent > ZERO:
        chart.append(ChartSlice(name="overspent", value=overspent))

    return BudgetOverview(
        total_limit=total_limit,
        total_spent=total_spent,
        remaining=remaining,
        overspent=overspent,
        spending_by_category=spending,
        budgets=evaluations,
        chart=chart,
    )


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
