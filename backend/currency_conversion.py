from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping

logger = logging.getLogger(__name__)

BASE_CURRENCY = "EUR"
USD_TO_EUR_RATE = Decimal("0.92")

# EUR per 1 unit of the source currency.
DEFAULT_RATES: dict[str, Decimal] = {
    "EUR": Decimal("1"),
    "USD": USD_TO_EUR_RATE,
}


@dataclass(frozen=True)
class StaticRateProvider:
    """Fixed, in-memory FX rates into EUR.

    Codes without a rate are treated as already EUR-equivalent. Quotes in
    GBP, JPY or CNY therefore pass through unconverted.
    """

    rates: Mapping[str, Decimal] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "rates", dict(self.rates or DEFAULT_RATES))

    def get_rate(self, currency: str) -> Decimal:
        normalized = normalize_currency(currency)
        rate = self.rates.get(normalized)
        if rate is None:
            logger.warning("No EUR rate for %s; treating amount as EUR", normalized)
            return Decimal("1")
        return rate


def to_eur(
    amount: Decimal | int | float | str,
    source_currency: str,
    rate_provider: StaticRateProvider | None = None,
) -> Decimal:
    """Convert an amount into EUR, the storage unit for every monetary field."""
    provider = rate_provider or StaticRateProvider()
    coerced_amount = _coerce_amount(amount)
    if normalize_currency(source_currency) == BASE_CURRENCY:
        return coerced_amount
    return coerced_amount * provider.get_rate(source_currency)


def purchase_quote_needs_conversion(selected_currency: str, quote_currency: str | None) -> bool:
    selected = normalize_currency(selected_currency)
    quoted = _quoted_currency(quote_currency)
    return quoted == "USD" or (quoted != BASE_CURRENCY and selected == "USD")


def refresh_quote_needs_conversion(original_currency: str, quote_currency: str | None) -> bool:
    original = normalize_currency(original_currency)
    quoted = _quoted_currency(quote_currency)
    return quoted == "USD" or (original == "USD" and quoted != BASE_CURRENCY)


def usd_to_eur_if(amount: Decimal | int | float | str, convert: bool) -> Decimal:
    if not convert:
        return _coerce_amount(amount)
    return to_eur(amount, "USD")


def normalize_currency(value: str) -> str:
    normalized = value.strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError("Currency must be a 3-letter ISO 4217 code.")
    return normalized


def _quoted_currency(value: str | None) -> str:
    # Quotes may omit the currency; an empty code is neither EUR nor USD.
    return (value or "").strip().upper()


def _coerce_amount(amount: Decimal | int | float | str) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
