# core/rate_source.py
"""
Exchange rate providers

A rate source performs exactly one outbound request per fetch() and turns the
provider payload into a RateSample. There is no retry here: a failed fetch
aborts the current alert cycle and the next scheduled tick tries again.
"""

import math
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

import requests

from core.exceptions import ConfigurationError, FetchError, InvalidRateError, ParseError
from core.models import RateSample

logger = logging.getLogger(__name__)

DEFAULT_RATE_API_URL = 'https://api.freecurrencyapi.com/v1/latest'

# Ratio formulas between the fixed USD/BZD peg and the fetched USD/MXN quote
FORMULA_BZD_PER_MXN = 'bzd_per_mxn'
FORMULA_MXN_PER_BZD = 'mxn_per_bzd'
RATE_FORMULAS = (FORMULA_BZD_PER_MXN, FORMULA_MXN_PER_BZD)


def _require_positive_number(value: Any, label: str) -> float:
    """Return value as float or raise InvalidRateError"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidRateError(f"{label} is not numeric: {value!r}")

    try:
        number = float(value)
    except (OverflowError, ValueError) as exc:
        raise InvalidRateError(f"{label} is out of range: {value!r}") from exc

    if not math.isfinite(number) or number <= 0:
        raise InvalidRateError(f"{label} is not a finite positive number: {number!r}")

    return number


class RateSource(ABC):
    """Contract for anything that can produce a RateSample"""

    name = 'rate_source'

    @abstractmethod
    def fetch(self) -> RateSample:
        """
        Fetch one rate sample.

        Raises:
            FetchError: transport or HTTP failure
            ParseError: malformed response body
            InvalidRateError: value is not a finite positive number
        """


class FreeCurrencyApiSource(RateSource):
    """
    freecurrencyapi.com client deriving the BZD/MXN cross rate

    The provider only quotes USD/MXN; BZD is pegged to USD so the cross rate
    is computed against a fixed conversion constant.
    """

    name = 'freecurrencyapi'

    def __init__(self,
                 api_key: str,
                 url: str = DEFAULT_RATE_API_URL,
                 base_currency: str = 'USD',
                 quote_currency: str = 'MXN',
                 usd_to_bzd: float = 2.01,
                 formula: str = FORMULA_BZD_PER_MXN,
                 timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        if formula not in RATE_FORMULAS:
            raise ConfigurationError(
                f"Unknown RATE_FORMULA {formula!r}, expected one of {', '.join(RATE_FORMULAS)}"
            )
        if usd_to_bzd <= 0:
            raise ConfigurationError("USD_TO_BZD must be positive")

        self.api_key = api_key
        self.url = url
        self.base_currency = base_currency.upper()
        self.quote_currency = quote_currency.upper()
        self.usd_to_bzd = float(usd_to_bzd)
        self.formula = formula
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'FreeCurrencyApiSource':
        """Build a source from a Flask config mapping"""
        return cls(
            api_key=config.get('RATE_API_KEY', ''),
            url=config.get('RATE_API_URL', DEFAULT_RATE_API_URL),
            base_currency=config.get('BASE_CURRENCY', 'USD'),
            quote_currency=config.get('QUOTE_CURRENCY', 'MXN'),
            usd_to_bzd=float(config.get('USD_TO_BZD', 2.01)),
            formula=config.get('RATE_FORMULA', FORMULA_BZD_PER_MXN),
            timeout=float(config.get('RATE_API_TIMEOUT', 10)),
        )

    def _request_params(self) -> Dict[str, str]:
        return {
            'apikey': self.api_key,
            'base_currency': self.base_currency,
            'currencies': self.quote_currency,
            'target_currency': self.quote_currency,
        }

    def _derive(self, quote_rate: float) -> float:
        if self.formula == FORMULA_BZD_PER_MXN:
            return self.usd_to_bzd / quote_rate
        return quote_rate / self.usd_to_bzd

    def fetch(self) -> RateSample:
        logger.info(f"Fetching {self.base_currency}/{self.quote_currency} rate from {self.url}")

        try:
            response = self.session.get(
                self.url,
                params=self._request_params(),
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as exc:
            raise FetchError(f"Request to rate provider failed: {exc}") from exc

        if response.status_code != 200:
            raise FetchError(
                f"Rate provider returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseError("Rate provider returned invalid JSON") from exc

        logger.debug(f"Raw rate API response: {payload}")

        data = payload.get('data') if isinstance(payload, dict) else None
        if not isinstance(data, dict) or self.quote_currency not in data:
            raise ParseError(
                f"Rate provider response has no data.{self.quote_currency} field"
            )

        quote_rate = _require_positive_number(
            data[self.quote_currency],
            f"{self.base_currency}/{self.quote_currency} rate"
        )
        logger.info(f"Exchange rate fetched: {self.base_currency}/{self.quote_currency} = {quote_rate}")

        value = _require_positive_number(self._derive(quote_rate), 'Derived rate')
        logger.info(f"Calculated {self.formula} rate: {value}")

        return RateSample(
            value=value,
            fetched_at=datetime.now(timezone.utc),
            quote_rate=quote_rate,
            source=self.name
        )
