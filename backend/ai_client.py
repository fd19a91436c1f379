"""Generative-AI lookups used by the dashboard.

Every public method makes a single model request and never raises. Missing
configuration, transport errors, timeouts and unparseable replies all come back
as the method's empty value (``None``, ``[]`` or a fixed message), so callers
only ever branch on "data" versus "no data".
"""

from __future__ import annotations

import asyncio
import json
import logging
from decimal import Decimal
from typing import Any, TypeVar

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from backend.config import Settings, get_settings

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = "Error: API Key no configurada."
CONNECTION_ERROR_MESSAGE = "Error de conexión."
EMPTY_ADVICE_MESSAGE = "Sin respuesta."

ADVISOR_INSTRUCTIONS = "Eres un experto financiero. Usa datos reales si es necesario."

QUOTE_PROMPT = """
Find the current real-time stock price, annual dividend per share, AND typical dividend payment months for ticker symbol "{ticker}".

Return ONLY a JSON object with these fields:
- symbol (string, uppercase)
- name (string, company name)
- price (number, current price)
- currency (string, e.g. "USD", "EUR")
- changePercent (number, today's percentage change)
- annualDividend (number, total annual dividend per share. If none, 0)
- paymentMonths (array of integers 0-11 representing months, e.g., [0,3,6,9] for Jan/Apr/Jul/Oct. If unknown, guess based on sector or return empty)

Do not add any explanation, just the JSON.
"""

NEWS_PROMPT = """
Find 4 distinct, latest financial news headlines from today (Global or Europe).
Return ONLY a JSON array of objects with:
- title (string)
- tag (string, short category like "Tech", "Crypto", "Macro")
- time (string, e.g., "2h ago")
"""

INDICES_PROMPT = """
Find current values for: S&P 500, NASDAQ, and IBEX 35.
Return ONLY a JSON object with keys "sp500", "nasdaq", "ibex".
Each value should be an object with:
- price (string formatted with currency)
- change (number, percent change)
"""

ANALYSIS_PROMPT = """
Perform a fundamental analysis search for ticker: "{ticker}".
Gather financial data for the last 4 years (2021-2024/TTM).

Return strictly a JSON object with this structure (use 0 if data not found):
{{
  "symbol": "string",
  "name": "string",
  "price": number,
  "currency": "string",
  "description": "Short 1 sentence company description",
  "metrics": {{
     "pe": number (P/E Ratio),
     "fcfYield": number (Free Cash Flow Yield %),
     "dividendYield": number (Dividend Yield %),
     "marketCap": "string (e.g. 2.30 B)",
     "payoutRatio": number (Payout Ratio %)
  }},
  "history": {{
     "revenue": [{{ "year": "2021", "value": number }}, ...],
     "eps": [{{ "year": "2021", "value": number }}, ...],
     "fcf": [{{ "year": "2021", "value": number }}, ...],
     "dividends": [{{ "year": "2021", "value": number }}, ...],
     "debt": [{{ "year": "2021", "value": number }}, ...],
     "roe": [{{ "year": "2021", "value": number }}, ...],
     "roic": [{{ "year": "2021", "value": number }}, ...]
  }}
}}
"""


class _AliasedModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class StockQuote(_AliasedModel):
    symbol: str
    name: str
    price: Decimal
    currency: str = ""
    change_percent: float = Field(default=0.0, alias="changePercent")
    annual_dividend: Decimal = Field(default=Decimal("0"), alias="annualDividend")
    payment_months: list[int] = Field(default_factory=list, alias="paymentMonths")

    @field_validator("currency", mode="before")
    @classmethod
    def _blank_when_missing(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("symbol", "currency")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("annual_dividend", "change_percent", mode="before")
    @classmethod
    def _zero_when_missing(cls, value: Any) -> Any:
        return value or 0

    @field_validator("payment_months", mode="before")
    @classmethod
    def _valid_months(cls, value: Any) -> list[int]:
        if not isinstance(value, list):
            return []
        months = {
            month
            for month in value
            if isinstance(month, int) and not isinstance(month, bool) and 0 <= month <= 11
        }
        return sorted(months)


class NewsHeadline(BaseModel):
    title: str
    tag: str = ""
    time: str = ""


class IndexQuote(BaseModel):
    price: str
    change: float = 0.0


class GlobalIndices(BaseModel):
    sp500: IndexQuote | None = None
    nasdaq: IndexQuote | None = None
    ibex: IndexQuote | None = None


class AnnualMetric(BaseModel):
    year: str
    value: float = 0.0

    @field_validator("year", mode="before")
    @classmethod
    def _year_as_text(cls, value: Any) -> str:
        return str(value)


class ValuationMetrics(_AliasedModel):
    pe: float = 0.0
    fcf_yield: float = Field(default=0.0, alias="fcfYield")
    dividend_yield: float = Field(default=0.0, alias="dividendYield")
    market_cap: str = Field(default="", alias="marketCap")
    payout_ratio: float = Field(default=0.0, alias="payoutRatio")


class FundamentalHistory(BaseModel):
    revenue: list[AnnualMetric] = Field(default_factory=list)
    eps: list[AnnualMetric] = Field(default_factory=list)
    fcf: list[AnnualMetric] = Field(default_factory=list)
    dividends: list[AnnualMetric] = Field(default_factory=list)
    debt: list[AnnualMetric] = Field(default_factory=list)
    roe: list[AnnualMetric] = Field(default_factory=list)
    roic: list[AnnualMetric] = Field(default_factory=list)


class DeepStockAnalysis(BaseModel):
    symbol: str
    name: str
    price: float = 0.0
    currency: str = ""
    description: str = ""
    metrics: ValuationMetrics = Field(default_factory=ValuationMetrics)
    history: FundamentalHistory = Field(default_factory=FundamentalHistory)


ModelT = TypeVar("ModelT", bound=BaseModel)


def clean_and_parse_json(text: str | None) -> Any | None:
    """Strip markdown code fences from a model reply and parse it as JSON."""
    if not text:
        return None
    cleaned = text.replace("```json", "").replace("```", "").strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        logger.warning("Failed to parse JSON from AI: %s", text)
        return None


class AIClient:
    def __init__(self, settings: Settings | None = None, client: AsyncOpenAI | None = None) -> None:
        self.settings = settings or get_settings()
        self._client = client

    @property
    def configured(self) -> bool:
        return self.settings.ai_configured

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.settings.openai_api_key)
        return self._client

    async def get_financial_advice(self, question: str, context: str) -> str:
        if not self.configured:
            return NOT_CONFIGURED_MESSAGE

        prompt = (
            f"Contexto financiero del usuario (Valores en EUR): {context}\n"
            f"Pregunta: {question}\n\n"
            "Responde como NeonOracle (asesor financiero futurista). Sé breve y usa Markdown."
        )
        text = await self._generate(prompt, instructions=ADVISOR_INSTRUCTIONS, purpose="advice")
        if text is None:
            return CONNECTION_ERROR_MESSAGE
        return text or EMPTY_ADVICE_MESSAGE

    async def fetch_stock_quote(self, ticker: str) -> StockQuote | None:
        if not self.configured:
            return None

        text = await self._generate(QUOTE_PROMPT.format(ticker=ticker), search=True, purpose="quote")
        quote = _validate(StockQuote, clean_and_parse_json(text))
        if quote is None or quote.price <= 0:
            logger.info("No usable quote for %s", ticker)
            return None
        return quote

    async def fetch_market_news(self) -> list[NewsHeadline]:
        if not self.configured:
            return []

        text = await self._generate(NEWS_PROMPT, search=True, purpose="news")
        payload = clean_and_parse_json(text)
        if not isinstance(payload, list):
            return []
        headlines = [_validate(NewsHeadline, item) for item in payload]
        return [headline for headline in headlines if headline is not None]

    async def fetch_global_indices(self) -> GlobalIndices | None:
        if not self.configured:
            return None

        text = await self._generate(INDICES_PROMPT, search=True, purpose="indices")
        return _validate(GlobalIndices, clean_and_parse_json(text))

    async def get_deep_stock_analysis(self, ticker: str) -> DeepStockAnalysis | None:
        if not self.configured:
            return None

        text = await self._generate(ANALYSIS_PROMPT.format(ticker=ticker), search=True, purpose="analysis")
        return _validate(DeepStockAnalysis, clean_and_parse_json(text))

    async def _generate(
        self,
        prompt: str,
        *,
        instructions: str | None = None,
        search: bool = False,
        purpose: str,
    ) -> str | None:
        request: dict[str, Any] = {"model": self.settings.openai_model, "input": prompt}
        if instructions:
            request["instructions"] = instructions
        if search:
            request["tools"] = [{"type": "web_search"}]

        try:
            response = await asyncio.wait_for(
                self._get_client().responses.create(**request),
                timeout=self.settings.ai_request_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "AI %s request timed out after %ss", purpose, self.settings.ai_request_timeout_seconds
            )
            return None
        except OpenAIError as exc:
            logger.exception("AI %s request failed: %s", purpose, exc)
            return None
        except Exception as exc:
            logger.exception("Unexpected error in AI %s request: %s", purpose, exc)
            return None
        return response.output_text or ""


def _validate(model: type[ModelT], payload: Any) -> ModelT | None:
    if payload is None:
        return None
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        logger.warning("Malformed %s payload from AI: %s", model.__name__, exc)
        return None
