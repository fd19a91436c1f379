"""In-memory state for one dashboard session.

Collections are tuples replaced wholesale on every write, and each write bumps
``version``. Derived views are cached against that version, so they are
recomputed at most once per change.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Protocol, Tuple

from backend.ai_client import StockQuote
from backend.budget_engine import TRANSACTION_TYPES, Budget, BudgetOverview, Transaction, summarize_budgets
from backend.currency_conversion import (
    normalize_currency,
    purchase_quote_needs_conversion,
    refresh_quote_needs_conversion,
    usd_to_eur_if,
)
from backend.dividend_engine import DividendCalendar, DividendProjection, build_dividend_calendar, project_dividends
from backend.ledger import PortfolioSummary, build_financial_context, summarize_ledger
from backend.portfolio_engine import (
    AllocationSlice,
    Investment,
    PortfolioPerformance,
    allocation_by_ticker,
    summarize_portfolio,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
INVESTMENT_CATEGORY = "Inversión"


class QuoteSource(Protocol):
    async def fetch_stock_quote(self, ticker: str) -> StockQuote | None: ...


class RefreshInProgress(RuntimeError):
    """Raised when a portfolio refresh is requested while one is running."""


class FinanceSession:
    def __init__(self) -> None:
        self.transactions: Tuple[Transaction, ...] = ()
        self.investments: Tuple[Investment, ...] = ()
        self.budgets: Tuple[Budget, ...] = ()
        self.version = 0
        self.refreshing = False
        self._cache: dict[str, tuple[int, Any]] = {}

    def add_transaction(self, transaction: Transaction) -> Transaction:
        stored = _prepare_transaction(transaction)
        # Newest first, as the dashboard lists them.
        self._commit(transactions=(stored,) + self.transactions)
        return stored

    def add_budget(self, budget: Budget) -> Budget:
        if budget.limit <= ZERO:
            raise ValueError("Budget limit must be greater than zero.")
        if not budget.category.strip():
            raise ValueError("Budget category required.")
        stored = replace(budget, category=budget.category.strip(), id=budget.id or _new_id())
        self._commit(budgets=self.budgets + (stored,))
        return stored

    def add_investment(self, investment: Investment) -> Investment:
        """Record a purchase and the cash that left the ledger to fund it."""
        stored = replace(investment, id=investment.id or _new_id())
        cash_out = _prepare_transaction(
            Transaction(
                description=f"Compra {stored.ticker}",
                amount=stored.shares * stored.purchase_price,
                type="investment",
                date=stored.purchase_date,
                category=INVESTMENT_CATEGORY,
            )
        )
        self._commit(
            investments=self.investments + (stored,),
            transactions=(cash_out,) + self.transactions,
        )
        logger.info("Added %s shares of %s", stored.shares, stored.ticker)
        return stored

    def purchase_from_quote(
        self,
        quote: StockQuote,
        shares: Decimal,
        purchase_price: Decimal,
        selected_currency: str,
        purchase_date: date,
    ) -> Investment:
        selected = normalize_currency(selected_currency)
        if shares <= ZERO:
            raise ValueError("Shares must be greater than zero.")
        if purchase_price <= ZERO:
            raise ValueError("Purchase price must be greater than zero.")

        convert_quote = purchase_quote_needs_conversion(selected, quote.currency)
        investment = Investment(
            ticker=quote.symbol,
            name=quote.name,
            shares=shares,
            purchase_price=usd_to_eur_if(purchase_price, selected == "USD"),
            original_currency=selected,
            purchase_date=purchase_date,
            current_price=usd_to_eur_if(quote.price, convert_quote),
            dividend_per_share=usd_to_eur_if(quote.annual_dividend, convert_quote),
            payment_months=tuple(quote.payment_months),
        )
        return self.add_investment(investment)

    async def refresh_portfolio(self, quotes: QuoteSource) -> Tuple[Investment, ...]:
        """Re-price every holding concurrently and commit the result once.

        Holdings whose lookup fails keep their previous prices.
        """
        if self.refreshing:
            raise RefreshInProgress("A portfolio refresh is already running.")
        if not self.investments:
            return self.investments

        self.refreshing = True
        try:
            snapshot = self.investments
            results = await asyncio.gather(
                *(quotes.fetch_stock_quote(inv.ticker) for inv in snapshot),
                return_exceptions=True,
            )
            updated = tuple(
                _apply_quote(inv, result) for inv, result in zip(snapshot, results)
            )
            # Purchases made during the refresh are kept unchanged.
            added_meanwhile = self.investments[len(snapshot):]
            self._commit(investments=updated + added_meanwhile)
            return self.investments
        finally:
            self.refreshing = False

    def summary(self) -> PortfolioSummary:
        return self._memo("summary", lambda: summarize_ledger(self.transactions, self.investments))

    def performance(self) -> PortfolioPerformance:
        return self._memo("performance", lambda: summarize_portfolio(self.investments))

    def allocation(self) -> list[AllocationSlice]:
        return self._memo("allocation", lambda: allocation_by_ticker(self.investments))

    def dividend_calendar(self) -> DividendCalendar:
        return self._memo("calendar", lambda: build_dividend_calendar(self.investments))

    def dividend_projection(self, years: int, start_year: int | None = None) -> DividendProjection:
        return project_dividends(self.performance().total_dividends, years, start_year=start_year)

    def budget_overview(self) -> BudgetOverview:
        return self._memo("budgets", lambda: summarize_budgets(self.transactions, self.budgets))

    def financial_context(self) -> str:
        return build_financial_context(self.summary(), self.investments)

    def _memo(self, key: str, compute: Callable[[], Any]) -> Any:
        cached = self._cache.get(key)
        if cached is not None and cached[0] == self.version:
            return cached[1]
        value = compute()
        self._cache[key] = (self.version, value)
        return value

    def _commit(self, **collections: Tuple[Any, ...]) -> None:
        for name, value in collections.items():
            setattr(self, name, value)
        self.version += 1


def _apply_quote(investment: Investment, result: StockQuote | BaseException | None) -> Investment:
    if isinstance(result, BaseException):
        logger.warning("Refresh of %s failed: %s", investment.ticker, result)
        return investment
    if result is None or result.price <= ZERO:
        return investment

    convert = refresh_quote_needs_conversion(investment.original_currency, result.currency)
    dividend = usd_to_eur_if(result.annual_dividend, convert)
    return replace(
        investment,
        current_price=usd_to_eur_if(result.price, convert),
        dividend_per_share=dividend if dividend != ZERO else investment.dividend_per_share,
    )


def _prepare_transaction(transaction: Transaction) -> Transaction:
    if transaction.amount <= ZERO:
        raise ValueError("Amount must be greater than zero.")
    txn_type = transaction.type.strip().lower()
    if txn_type not in TRANSACTION_TYPES:
        raise ValueError("Invalid transaction type.")
    return replace(transaction, type=txn_type, id=transaction.id or _new_id())


def _new_id() -> str:
    return str(uuid.uuid4())
