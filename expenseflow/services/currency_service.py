"""Currency conversion and metadata helpers."""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

import requests

logger = logging.getLogger(__name__)

EXCHANGE_API_URL = "https://api.exchangerate-api.com/v4/latest/{base}"
REST_COUNTRIES_URL = "https://restcountries.com/v3.1/all?fields=name,currencies"
DEFAULT_TIMEOUT = 10


class ConversionUnavailable(Exception):
    """The exchange-rate service could not provide a usable rate."""


def get_default_currency_for_country(country_name: str, timeout: float = DEFAULT_TIMEOUT) -> Dict[str, Optional[str]]:
    """Return the default currency information for a given country."""
    try:
        response = requests.get(REST_COUNTRIES_URL, timeout=timeout)
        response.raise_for_status()
        countries = response.json()
    except (requests.RequestException, ValueError) as exc:
        logger.warning("Country lookup failed for %s: %s", country_name, exc)
        return {"currency_code": None, "currency_name": None}

    target = next(
        (
            entry
            for entry in countries
            if entry.get("name", {}).get("common", "").lower() == country_name.lower()
        ),
        None,
    )

    if not target:
        return {"currency_code": None, "currency_name": None}

    currencies = target.get("currencies") or {}
    if not currencies:
        return {"currency_code": None, "currency_name": None}

    code, details = next(iter(currencies.items()))
    return {"currency_code": code, "currency_name": details.get("name")}


def fetch_exchange_rates(
    base_currency: str,
    api_url: str = EXCHANGE_API_URL,
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, float]:
    """Fetch exchange rates for the given base currency."""
    try:
        response = requests.get(api_url.format(base=base_currency.upper()), timeout=timeout)
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as exc:
        raise ConversionUnavailable(f"Exchange rates for {base_currency} unavailable: {exc}") from exc

    rates = payload.get("rates") if isinstance(payload, dict) else None
    if not rates or not isinstance(rates, dict):
        raise ConversionUnavailable(f"Exchange rate response for {base_currency} has no rates.")
    return rates


def _parse_rate(value: object, source_currency: str, target_currency: str) -> Decimal:
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ConversionUnavailable(f"{source_currency}->{target_currency} rate {value!r} is not a number.") from None
    if not rate.is_finite() or rate <= 0:
        raise ConversionUnavailable(f"No usable {source_currency}->{target_currency} rate published.")
    return rate


def convert_currency(
    amount: Decimal | float,
    source_currency: str,
    target_currency: str,
    api_url: str = EXCHANGE_API_URL,
    timeout: float = DEFAULT_TIMEOUT,
) -> Decimal:
    """Convert an amount between currencies using the exchangerate-api service.

    Never raises for service problems: when no rate can be obtained the
    original amount is returned unconverted.
    """
    amount = Decimal(str(amount))
    if source_currency.upper() == target_currency.upper():
        return amount

    try:
        rates = fetch_exchange_rates(source_currency, api_url=api_url, timeout=timeout)
        rate = _parse_rate(rates.get(target_currency.upper()), source_currency, target_currency)
    except ConversionUnavailable as exc:
        logger.warning("Currency conversion fell back to the original amount: %s", exc)
        return amount

    converted = rate * amount
    return converted.quantize(Decimal("0.01"))
