from datetime import date
from decimal import Decimal

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from backend.ai_client import AIClient, DeepStockAnalysis, GlobalIndices, NewsHeadline, StockQuote
from backend.budget_engine import Budget, Transaction
from backend.config import get_settings
from backend.currency_conversion import normalize_currency
from backend.dividend_engine import SUPPORTED_HORIZONS
from backend.logging_config import setup_logging
from backend.portfolio_engine import Investment
from backend.session import FinanceSession, RefreshInProgress

settings = get_settings()
setup_logging(settings.log_level)

app = FastAPI(title="Lumina Finance API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

session = FinanceSession()
ai_client = AIClient(settings)

LOOKUP_NOT_FOUND_MESSAGE = "No pudimos encontrar información actual para este ticker."


class TransactionType:
    values = {"income", "expense", "investment"}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in cls.values:
            raise ValueError("Invalid transaction type.")
        return normalized


class PurchaseCurrency:
    values = {"EUR", "USD"}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = normalize_currency(value)
        if normalized not in cls.values:
            raise ValueError("Purchase currency must be EUR or USD.")
        return normalized


class TransactionPayload(BaseModel):
    description: str
    amount: Decimal
    type: str
    date: date
    category: str | None = None

    @classmethod
    def validate_payload(cls, payload: "TransactionPayload") -> "TransactionPayload":
        payload.type = TransactionType.validate(payload.type)
        payload.description = payload.description.strip()
        if not payload.description:
            raise ValueError("Description required.")
        if payload.amount <= 0:
            raise ValueError("Amount must be greater than zero.")
        payload.category = payload.category.strip() if payload.category else None
        if payload.category is None:
            payload.category = "General"
        return payload


class TransactionResponse(BaseModel):
    id: str
    description: str
    amount: Decimal
    type: str
    date: date
    category: str | None = None


class BudgetPayload(BaseModel):
    category: str
    limit: Decimal

    @classmethod
    def validate_payload(cls, payload: "BudgetPayload") -> "BudgetPayload":
        payload.category = payload.category.strip()
        if not payload.category:
            raise ValueError("Budget category required.")
        if payload.limit <= 0:
            raise ValueError("Budget limit must be greater than zero.")
        return payload


class BudgetResponse(BaseModel):
    id: str
    category: str
    limit: Decimal


class BudgetEvaluationResponse(BaseModel):
    budget_id: str | None = None
    category: str
    limit: Decimal
    spent: Decimal
    ratio_percent: Decimal
    percentage: Decimal
    remaining: Decimal
    overspent: Decimal
    status: str


class ChartSliceResponse(BaseModel):
    name: str
    value: Decimal


class BudgetOverviewResponse(BaseModel):
    total_limit: Decimal
    total_spent: Decimal
    remaining: Decimal
    overspent: Decimal
    spending_by_category: dict[str, Decimal]
    budgets: list[BudgetEvaluationResponse]
    chart: list[ChartSliceResponse]


class InvestmentPayload(BaseModel):
    ticker: str
    name: str
    shares: Decimal
    purchase_price: Decimal
    current_price: Decimal
    original_currency: str = "EUR"
    purchase_date: date | None = None
    dividend_per_share: Decimal = Decimal("0")
    payment_months: list[int] = []

    @classmethod
    def validate_payload(cls, payload: "InvestmentPayload") -> "InvestmentPayload":
        payload.ticker = payload.ticker.strip().upper()
        payload.name = payload.name.strip()
        if not payload.ticker or not payload.name:
            raise ValueError("Ticker and name required.")
        if payload.shares <= 0:
            raise ValueError("Shares must be greater than zero.")
        if payload.purchase_price <= 0:
            raise ValueError("Purchase price must be greater than zero.")
        if payload.current_price < 0 or payload.dividend_per_share < 0:
            raise ValueError("Prices must not be negative.")
        payload.original_currency = PurchaseCurrency.validate(payload.original_currency)
        if payload.purchase_date is None:
            payload.purchase_date = date.today()
        return payload


class PurchasePayload(BaseModel):
    ticker: str
    shares: Decimal
    purchase_price: Decimal
    currency: str | None = None
    purchase_date: date | None = None

    @classmethod
    def validate_payload(cls, payload: "PurchasePayload") -> "PurchasePayload":
        payload.ticker = payload.ticker.strip().upper()
        if not payload.ticker:
            raise ValueError("Ticker required.")
        if payload.shares <= 0:
            raise ValueError("Shares must be greater than zero.")
        if payload.purchase_price <= 0:
            raise ValueError("Purchase price must be greater than zero.")
        if payload.currency is not None:
            payload.currency = PurchaseCurrency.validate(payload.currency)
        if payload.purchase_date is None:
            payload.purchase_date = date.today()
        return payload


class InvestmentResponse(BaseModel):
    id: str
    ticker: str
    name: str
    shares: Decimal
    purchase_price: Decimal
    original_currency: str
    purchase_date: date
    current_price: Decimal
    dividend_per_share: Decimal
    payment_months: list[int]


class HoldingMetricsResponse(BaseModel):
    ticker: str
    invested: Decimal
    current_value: Decimal
    profit_loss: Decimal
    profit_loss_percent: Decimal
    annual_dividends: Decimal
    current_yield: Decimal
    yield_on_cost: Decimal


class PortfolioPerformanceResponse(BaseModel):
    total_invested: Decimal
    current_value: Decimal
    total_pl: Decimal
    percent_pl: Decimal
    total_dividends: Decimal
    yield_on_cost: Decimal
    holdings: list[HoldingMetricsResponse]


class AllocationResponse(BaseModel):
    ticker: str
    value: Decimal
    percentage: Decimal


class SummaryResponse(BaseModel):
    total_income: Decimal
    total_expenses: Decimal
    investments_cash_out: Decimal
    investments_value: Decimal
    total_balance: Decimal


class MonthlyDividendResponse(BaseModel):
    month: int
    label: str
    amount: Decimal


class DividendCalendarResponse(BaseModel):
    months: list[MonthlyDividendResponse]
    annual_total: Decimal
    peak: Decimal


class ProjectionPointResponse(BaseModel):
    year: int
    amount: int


class DividendProjectionResponse(BaseModel):
    years: int
    points: list[ProjectionPointResponse]
    future_value: int
    annual_goal: Decimal
    monthly_goal: Decimal
    monthly_income: Decimal
    progress_percent: Decimal
    progress_display_percent: Decimal
    daily_income: Decimal
    hourly_income: Decimal


class AdvisorPayload(BaseModel):
    question: str

    @classmethod
    def validate_payload(cls, payload: "AdvisorPayload") -> "AdvisorPayload":
        payload.question = payload.question.strip()
        if not payload.question:
            raise ValueError("Question required.")
        return payload


class AdvisorResponse(BaseModel):
    answer: str


def transaction_response(txn: Transaction) -> TransactionResponse:
    return TransactionResponse(
        id=txn.id,
        description=txn.description,
        amount=txn.amount,
        type=txn.type,
        date=txn.date,
        category=txn.category,
    )


def investment_response(inv: Investment) -> InvestmentResponse:
    return InvestmentResponse(
        id=inv.id,
        ticker=inv.ticker,
        name=inv.name,
        shares=inv.shares,
        purchase_price=inv.purchase_price,
        original_currency=inv.original_currency,
        purchase_date=inv.purchase_date,
        current_price=inv.current_price,
        dividend_per_share=inv.dividend_per_share,
        payment_months=list(inv.payment_months),
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "ai_configured": ai_client.configured}


@app.get("/transactions", response_model=list[TransactionResponse])
def list_transactions() -> list[TransactionResponse]:
    return [transaction_response(txn) for txn in session.transactions]


@app.post("/transactions", response_model=TransactionResponse)
def create_transaction(payload: TransactionPayload) -> TransactionResponse:
    try:
        payload = TransactionPayload.validate_payload(payload)
        txn = session.add_transaction(
            Transaction(
                description=payload.description,
                amount=payload.amount,
                type=payload.type,
                date=payload.date,
                category=payload.category,
            )
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return transaction_response(txn)


@app.get("/budgets", response_model=list[BudgetResponse])
def list_budgets() -> list[BudgetResponse]:
    return [
        BudgetResponse(id=budget.id, category=budget.category, limit=budget.limit)
        for budget in session.budgets
    ]


@app.post("/budgets", response_model=BudgetResponse)
def create_budget(payload: BudgetPayload) -> BudgetResponse:
    try:
        payload = BudgetPayload.validate_payload(payload)
        budget = session.add_budget(Budget(category=payload.category, limit=payload.limit))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return BudgetResponse(id=budget.id, category=budget.category, limit=budget.limit)


@app.get("/budgets/overview", response_model=BudgetOverviewResponse)
def budget_overview() -> BudgetOverviewResponse:
    overview = session.budget_overview()
    return BudgetOverviewResponse(
        total_limit=overview.total_limit,
        total_spent=overview.total_spent,
        remaining=overview.remaining,
        overspent=overview.overspent,
        spending_by_category=overview.spending_by_category,
        budgets=[
            BudgetEvaluationResponse(
                budget_id=e.budget_id,
                category=e.category,
                limit=e.limit,
                spent=e.spent,
                ratio_percent=e.ratio_percent,
                percentage=e.percentage,
                remaining=e.remaining,
                overspent=e.overspent,
                status=e.status,
            )
            for e in overview.budgets
        ],
        chart=[ChartSliceResponse(name=s.name, value=s.value) for s in overview.chart],
    )


@app.get("/investments", response_model=list[InvestmentResponse])
def list_investments() -> list[InvestmentResponse]:
    return [investment_response(inv) for inv in session.investments]


@app.post("/investments", response_model=InvestmentResponse)
def create_investment(payload: InvestmentPayload) -> InvestmentResponse:
    try:
        payload = InvestmentPayload.validate_payload(payload)
        investment = session.add_investment(
            Investment(
                ticker=payload.ticker,
                name=payload.name,
                shares=payload.shares,
                purchase_price=payload.purchase_price,
                current_price=payload.current_price,
                original_currency=payload.original_currency,
                purchase_date=payload.purchase_date,
                dividend_per_share=payload.dividend_per_share,
                payment_months=tuple(payload.payment_months),
            )
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return investment_response(investment)


@app.post("/investments/purchase", response_model=InvestmentResponse)
async def purchase_investment(payload: PurchasePayload) -> InvestmentResponse:
    try:
        payload = PurchasePayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    quote = await ai_client.fetch_stock_quote(payload.ticker)
    if quote is None:
        raise HTTPException(status_code=404, detail=LOOKUP_NOT_FOUND_MESSAGE)

    # Without an explicit choice the price is read in the quote's currency.
    selected_currency = payload.currency or ("USD" if quote.currency == "USD" else "EUR")

    try:
        investment = session.purchase_from_quote(
            quote,
            shares=payload.shares,
            purchase_price=payload.purchase_price,
            selected_currency=selected_currency,
            purchase_date=payload.purchase_date,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return investment_response(investment)


@app.post("/investments/refresh", response_model=list[InvestmentResponse])
async def refresh_investments() -> list[InvestmentResponse]:
    try:
        investments = await session.refresh_portfolio(ai_client)
    except RefreshInProgress as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return [investment_response(inv) for inv in investments]


@app.get("/portfolio/performance", response_model=PortfolioPerformanceResponse)
def portfolio_performance() -> PortfolioPerformanceResponse:
    performance = session.performance()
    return PortfolioPerformanceResponse(
        total_invested=performance.total_invested,
        current_value=performance.current_value,
        total_pl=performance.total_pl,
        percent_pl=performance.percent_pl,
        total_dividends=performance.total_dividends,
        yield_on_cost=performance.yield_on_cost,
        holdings=[
            HoldingMetricsResponse(
                ticker=h.ticker,
                invested=h.invested,
                current_value=h.current_value,
                profit_loss=h.profit_loss,
                profit_loss_percent=h.profit_loss_percent,
                annual_dividends=h.annual_dividends,
                current_yield=h.current_yield,
                yield_on_cost=h.yield_on_cost,
            )
            for h in performance.holdings
        ],
    )


@app.get("/portfolio/allocation", response_model=list[AllocationResponse])
def portfolio_allocation() -> list[AllocationResponse]:
    return [
        AllocationResponse(ticker=s.ticker, value=s.value, percentage=s.percentage)
        for s in session.allocation()
    ]


@app.get("/summary", response_model=SummaryResponse)
def ledger_summary() -> SummaryResponse:
    summary = session.summary()
    return SummaryResponse(
        total_income=summary.total_income,
        total_expenses=summary.total_expenses,
        investments_cash_out=summary.investments_cash_out,
        investments_value=summary.investments_value,
        total_balance=summary.total_balance,
    )


@app.get("/dividends/calendar", response_model=DividendCalendarResponse)
def dividend_calendar() -> DividendCalendarResponse:
    calendar = session.dividend_calendar()
    return DividendCalendarResponse(
        months=[
            MonthlyDividendResponse(month=m.month, label=m.label, amount=m.amount)
            for m in calendar.months
        ],
        annual_total=calendar.annual_total,
        peak=calendar.peak,
    )


@app.get("/dividends/projection", response_model=DividendProjectionResponse)
def dividend_projection(years: int = Query(10)) -> DividendProjectionResponse:
    if years not in SUPPORTED_HORIZONS:
        raise HTTPException(status_code=400, detail="years must be one of 10, 25 or 40.")
    projection = session.dividend_projection(years)
    return DividendProjectionResponse(
        years=years,
        points=[ProjectionPointResponse(year=p.year, amount=p.amount) for p in projection.points],
        future_value=projection.future_value,
        annual_goal=projection.annual_goal,
        monthly_goal=projection.monthly_goal,
        monthly_income=projection.monthly_income,
        progress_percent=projection.progress_percent,
        progress_display_percent=projection.progress_display_percent,
        daily_income=projection.daily_income,
        hourly_income=projection.hourly_income,
    )


@app.get("/market/quote/{ticker}", response_model=StockQuote)
async def market_quote(ticker: str) -> StockQuote:
    quote = await ai_client.fetch_stock_quote(ticker.strip().upper())
    if quote is None:
        raise HTTPException(status_code=404, detail=LOOKUP_NOT_FOUND_MESSAGE)
    return quote


@app.get("/market/news", response_model=list[NewsHeadline])
async def market_news() -> list[NewsHeadline]:
    return await ai_client.fetch_market_news()


@app.get("/market/indices", response_model=GlobalIndices | None)
async def market_indices() -> GlobalIndices | None:
    return await ai_client.fetch_global_indices()


@app.get("/market/analysis/{ticker}", response_model=DeepStockAnalysis | None)
async def market_analysis(ticker: str) -> DeepStockAnalysis | None:
    return await ai_client.get_deep_stock_analysis(ticker.strip().upper())


@app.post("/advisor", response_model=AdvisorResponse)
async def ask_advisor(payload: AdvisorPayload) -> AdvisorResponse:
    try:
        payload = AdvisorPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    answer = await ai_client.get_financial_advice(payload.question, session.financial_context())
    return AdvisorResponse(answer=answer)
