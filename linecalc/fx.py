"""
Currency conversion through an exchange-rate provider.

The engine never fetches rates itself. Callers hand it a provider that
answers synchronously; the default one serves a static demonstration table.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional

from .values import CURRENCIES, CurrencyValue, ErrorValue, SemanticValue

logger = logging.getLogger(__name__)

# Static exchange rates for demonstration (relative to USD)
DEMO_RATES: Dict[str, float] = {
    "USD": 1.0,
    "EUR": 0.85,
    "GBP": 0.75,
    "JPY": 108.0,
    "CAD": 1.25,
    "AUD": 1.35,
    "CHF": 0.92,
    "CNY": 6.45,
    "INR": 75.0,
    "HKD": 7.78,
    "NZD": 1.42,
    "SGD": 1.35,
    "RUB": 75.0,
    "KRW": 1150.0,
    "THB": 33.5,
    "VND": 23000.0,
    "UAH": 28.0,
    "TRY": 8.5,
    "NGN": 410.0,
    "PHP": 48.0,
    "PYG": 6800.0,
    "CRC": 620.0,
}


class RateProvider(ABC):
    @abstractmethod
    def get_rate(self, from_currency: str, to_currency: str) -> Optional[float]:
        """Units of ``to_currency`` per one ``from_currency``, or None."""
        pass


class StaticRateProvider(RateProvider):
    """Rates from a fixed table of values relative to one base currency."""

    def __init__(self, rates: Optional[Mapping[str, float]] = None, base: str = "USD"):
        self.rates = dict(DEMO_RATES if rates is None else rates)
        self.base = base
        # The base currency is worth one of itself even when the table omits it
        self.rates.setdefault(base, 1.0)

    def get_rate(self, from_currency: str, to_currency: str) -> Optional[float]:
        if from_currency == to_currency:
            return 1.0
        # Check if currencies are supported
        if from_currency not in self.rates or to_currency not in self.rates:
            return None
        # Convert to the base currency first, then to the target
        return self.rates[to_currency] / self.rates[from_currency]


DEFAULT_RATE_PROVIDER = StaticRateProvider()


def convert_currency(
    value: CurrencyValue, target: str, provider: Optional[RateProvider] = None
) -> SemanticValue:
    """Convert ``value`` into the currency keyed by ``target`` (symbol or code)."""
    provider = provider or DEFAULT_RATE_PROVIDER
    target_code = CURRENCIES[target].code
    if value.code == target_code:
        return CurrencyValue(target, value.amount)

    rate = provider.get_rate(value.code, target_code)
    if rate is None:
        logger.warning(f"No exchange rate available for {value.code} -> {target_code}")
        return ErrorValue.conversion_error(
            f"Exchange rate unavailable: {value.code} to {target_code}"
        )
    logger.debug(f"Converted {value.code} -> {target_code} at rate {rate}")
    return CurrencyValue(target, value.amount * rate)
