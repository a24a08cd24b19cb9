"""CurrencyConverter — converts integer minor-unit amounts between currencies."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

import httpx

from interbank_settlement.domain.exceptions import RateUnavailableError
from interbank_settlement.domain.models import RateSource
from interbank_settlement.logging_config import get_logger

logger = get_logger(__name__)


class HttpRateSource:
    """Rate feed answering `GET {url}?base=EUR&symbols=USD` with `{"rates": {"USD": 1.08}}`."""

    def __init__(self, client: httpx.AsyncClient, rates_url: str, timeout: float = 5.0) -> None:
        self._client = client
        self._rates_url = rates_url
        self._timeout = timeout

    async def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        try:
            response = await self._client.get(
                self._rates_url,
                params={"base": from_currency, "symbols": to_currency},
                timeout=self._timeout,
            )
            response.raise_for_status()
            rate = response.json()["rates"][to_currency]
            value = Decimal(str(rate))
        except httpx.HTTPError as exc:
            raise RateUnavailableError(from_currency, to_currency, repr(exc)) from exc
        except (ValueError, KeyError, TypeError, InvalidOperation) as exc:
            raise RateUnavailableError(
                from_currency, to_currency, f"unexpected response: {exc!r}"
            ) from exc

        if not value.is_finite() or value <= 0:
            raise RateUnavailableError(from_currency, to_currency, f"bad rate {rate!r}")
        return value


class CurrencyConverter:
    """Converts amounts using a RateSource capability."""

    def __init__(self, rate_source: RateSource) -> None:
        self._rate_source = rate_source

    async def convert(self, amount: int, from_currency: str, to_currency: str) -> int:
        """Return `amount` expressed in `to_currency`, rounded half-up.

        Raises:
            RateUnavailableError: If the currencies differ and no rate is available.
        """
        if from_currency == to_currency:
            return amount

        rate = await self._rate_source.get_rate(from_currency, to_currency)
        converted = (Decimal(amount) * Decimal(str(rate))).quantize(
            Decimal(1), rounding=ROUND_HALF_UP
        )
        logger.debug(
            "currency.converted",
            amount=amount,
            from_currency=from_currency,
            to_currency=to_currency,
            rate=str(rate),
            converted=int(converted),
        )
        return int(converted)
