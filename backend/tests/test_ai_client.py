import asyncio
import unittest
from decimal import Decimal
from types import SimpleNamespace

import httpx
from openai import APIConnectionError

from backend.ai_client import (
    CONNECTION_ERROR_MESSAGE,
    EMPTY_ADVICE_MESSAGE,
    NOT_CONFIGURED_MESSAGE,
    AIClient,
    clean_and_parse_json,
)
from backend.config import Settings


class FakeResponses:
    def __init__(self, output_text: str | None = None, error: Exception | None = None, delay: float = 0) -> None:
        self.output_text = output_text
        self.error = error
        self.delay = delay
        self.requests: list[dict] = []

    async def create(self, **request):
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(output_text=self.output_text)


def make_client(responses: FakeResponses, api_key: str | None = "test-key", timeout: float = 5.0) -> AIClient:
    settings = Settings(OPENAI_API_KEY=api_key, AI_REQUEST_TIMEOUT_SEC=timeout)
    return AIClient(settings, client=SimpleNamespace(responses=responses))


class CleanAndParseJsonTests(unittest.TestCase):
    def test_strips_code_fences(self) -> None:
        text = '```json\n{"symbol": "KO", "price": 61.2}\n```'

        self.assertEqual(clean_and_parse_json(text), {"symbol": "KO", "price": 61.2})

    def test_parses_loose_json(self) -> None:
        self.assertEqual(clean_and_parse_json('  [{"title": "x"}] '), [{"title": "x"}])

    def test_malformed_text_is_no_data(self) -> None:
        with self.assertLogs("backend.ai_client", level="WARNING"):
            self.assertIsNone(clean_and_parse_json("The price is about 60 dollars"))

    def test_empty_text_is_no_data(self) -> None:
        self.assertIsNone(clean_and_parse_json(""))
        self.assertIsNone(clean_and_parse_json(None))


class AIClientTests(unittest.IsolatedAsyncioTestCase):
    async def test_missing_api_key_short_circuits(self) -> None:
        responses = FakeResponses(output_text="{}")
        client = make_client(responses, api_key=None)

        self.assertEqual(await client.get_financial_advice("¿Qué hago?", "ctx"), NOT_CONFIGURED_MESSAGE)
        self.assertIsNone(await client.fetch_stock_quote("KO"))
        self.assertEqual(await client.fetch_market_news(), [])
        self.assertIsNone(await client.fetch_global_indices())
        self.assertIsNone(await client.get_deep_stock_analysis("KO"))
        self.assertEqual(responses.requests, [])

    async def test_advice_returns_model_text(self) -> None:
        responses = FakeResponses(output_text="**Diversifica.**")
        client = make_client(responses)

        answer = await client.get_financial_advice("¿Qué hago?", "Balance Total: €100")

        self.assertEqual(answer, "**Diversifica.**")
        request = responses.requests[0]
        self.assertIn("Balance Total: €100", request["input"])
        self.assertIn("¿Qué hago?", request["input"])
        self.assertIn("instructions", request)
        self.assertNotIn("tools", request)

    async def test_advice_without_text(self) -> None:
        client = make_client(FakeResponses(output_text=""))

        self.assertEqual(await client.get_financial_advice("q", "ctx"), EMPTY_ADVICE_MESSAGE)

    async def test_advice_transport_failure(self) -> None:
        error = APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/responses"))
        client = make_client(FakeResponses(error=error))

        with self.assertLogs("backend.ai_client", level="ERROR"):
            answer = await client.get_financial_advice("q", "ctx")

        self.assertEqual(answer, CONNECTION_ERROR_MESSAGE)

    async def test_quote_is_parsed_and_normalized(self) -> None:
        text = (
            '```json\n{"symbol": "ko", "name": "Coca-Cola", "price": 61.5, "currency": "usd", '
            '"changePercent": -0.4, "annualDividend": 1.94, "paymentMonths": [3, 0, 6, 9, 13, 3]}\n```'
        )
        responses = FakeResponses(output_text=text)
        client = make_client(responses)

        quote = await client.fetch_stock_quote("KO")

        self.assertEqual(quote.symbol, "KO")
        self.assertEqual(quote.currency, "USD")
        self.assertEqual(quote.price, Decimal("61.5"))
        self.assertEqual(quote.annual_dividend, Decimal("1.94"))
        self.assertEqual(quote.change_percent, -0.4)
        self.assertEqual(quote.payment_months, [0, 3, 6, 9])
        self.assertEqual(responses.requests[0]["tools"], [{"type": "web_search"}])

    async def test_quote_without_dividend_defaults_to_zero(self) -> None:
        text = '{"symbol": "TSLA", "name": "Tesla", "price": 200, "currency": "USD", "annualDividend": null}'
        client = make_client(FakeResponses(output_text=text))

        quote = await client.fetch_stock_quote("TSLA")

        self.assertEqual(quote.annual_dividend, Decimal("0"))
        self.assertEqual(quote.payment_months, [])

    async def test_quote_without_currency_is_blank(self) -> None:
        missing = make_client(FakeResponses(output_text='{"symbol": "AAPL", "name": "Apple", "price": 200}'))
        null = make_client(
            FakeResponses(output_text='{"symbol": "AAPL", "name": "Apple", "price": 200, "currency": null}')
        )

        self.assertEqual((await missing.fetch_stock_quote("AAPL")).currency, "")
        self.assertEqual((await null.fetch_stock_quote("AAPL")).currency, "")

    async def test_quote_without_price_is_not_found(self) -> None:
        text = '{"symbol": "XXX", "name": "Unknown", "price": 0, "currency": "EUR"}'
        client = make_client(FakeResponses(output_text=text))

        self.assertIsNone(await client.fetch_stock_quote("XXX"))

    async def test_malformed_quote_is_no_data(self) -> None:
        client = make_client(FakeResponses(output_text='{"symbol": "KO"}'))

        with self.assertLogs("backend.ai_client", level="WARNING"):
            self.assertIsNone(await client.fetch_stock_quote("KO"))

    async def test_timeout_is_no_data(self) -> None:
        client = make_client(FakeResponses(output_text="{}", delay=1), timeout=0.01)

        with self.assertLogs("backend.ai_client", level="WARNING"):
            self.assertIsNone(await client.fetch_stock_quote("KO"))

    async def test_unexpected_error_is_no_data(self) -> None:
        client = make_client(FakeResponses(error=KeyError("output")))

        with self.assertLogs("backend.ai_client", level="ERROR"):
            self.assertIsNone(await client.fetch_stock_quote("KO"))
            answer = await client.get_financial_advice("q", "ctx")

        self.assertEqual(answer, CONNECTION_ERROR_MESSAGE)

    async def test_news_skips_invalid_items(self) -> None:
        text = '[{"title": "BCE mantiene tipos", "tag": "Macro", "time": "2h ago"}, {"tag": "Tech"}]'
        client = make_client(FakeResponses(output_text=text))

        with self.assertLogs("backend.ai_client", level="WARNING"):
            news = await client.fetch_market_news()

        self.assertEqual(len(news), 1)
        self.assertEqual(news[0].title, "BCE mantiene tipos")

    async def test_news_that_is_not_a_list_is_empty(self) -> None:
        client = make_client(FakeResponses(output_text='{"title": "x"}'))

        self.assertEqual(await client.fetch_market_news(), [])

    async def test_indices(self) -> None:
        text = '{"sp500": {"price": "$5,100", "change": 0.5}, "nasdaq": {"price": "$16,000", "change": -1.2}, "ibex": {"price": "11,000 €", "change": 0.1}}'
        client = make_client(FakeResponses(output_text=text))

        indices = await client.fetch_global_indices()

        self.assertEqual(indices.sp500.price, "$5,100")
        self.assertEqual(indices.nasdaq.change, -1.2)

    async def test_deep_analysis(self) -> None:
        text = """```json
        {
          "symbol": "ITX",
          "name": "Inditex",
          "price": 45.1,
          "currency": "EUR",
          "description": "Fashion retailer.",
          "metrics": {"pe": 24.5, "fcfYield": 3.8, "dividendYield": 3.4, "marketCap": "140 B", "payoutRatio": 77},
          "history": {
            "revenue": [{"year": 2021, "value": 27.7}, {"year": "2022", "value": 32.6}],
            "eps": [{"year": "2022", "value": 1.3}]
          }
        }
        ```"""
        client = make_client(FakeResponses(output_text=text))

        analysis = await client.get_deep_stock_analysis("ITX")

        self.assertEqual(analysis.metrics.fcf_yield, 3.8)
        self.assertEqual(analysis.metrics.market_cap, "140 B")
        self.assertEqual([m.year for m in analysis.history.revenue], ["2021", "2022"])
        self.assertEqual(analysis.history.roic, [])


if __name__ == "__main__":
    unittest.main()
