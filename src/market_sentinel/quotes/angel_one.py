"""Angel One SmartAPI quote adapter.

Authentication is a single password/MPIN login performed by ``connect()``.
The resulting JWT lives on the adapter instance for the rest of its life;
a failed quote request never triggers a second login.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Sequence

import httpx

from market_sentinel.core.config import AngelOneConfig
from market_sentinel.core.exceptions import (
    AuthenticationError,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderResponseError,
)
from market_sentinel.core.models import QuoteRecord, Symbol
from market_sentinel.quotes.provider import IST, to_float

logger = logging.getLogger(__name__)

LOGIN_PATH = "/rest/auth/angelbroking/user/v1/loginByPassword"
QUOTE_PATH = "/rest/secure/angelbroking/market/v1/quote/"

# symbol -> (exchange, symbol token)
_SYMBOL_TOKENS: dict[Symbol, tuple[str, str]] = {
    "NIFTY": ("NSE", "99926000"),
    "BANKNIFTY": ("NSE", "99926009"),
    "SENSEX": ("BSE", "99919000"),
}

_FEED_TIME_FORMAT = "%d-%b-%Y %H:%M:%S"


class AngelOneAdapter:
    """Fetches index quotes from Angel One SmartAPI in FULL mode.

    Args:
        config: Credentials and base URL.
        timeout: HTTP timeout per request in seconds.
        symbol_tokens: Override the symbol -> (exchange, token) table.
    """

    def __init__(
        self,
        config: AngelOneConfig,
        timeout: float = 10.0,
        symbol_tokens: dict[Symbol, tuple[str, str]] | None = None,
    ) -> None:
        self._config = config
        self._timeout = timeout
        self._symbol_tokens = symbol_tokens or dict(_SYMBOL_TOKENS)
        self._base_url = config.base_url.rstrip("/")
        self._jwt_token: str | None = None
        self._login_attempted = False

    @property
    def name(self) -> str:
        return "angel_one"

    @property
    def is_authenticated(self) -> bool:
        return self._jwt_token is not None

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-UserType": "USER",
            "X-SourceID": "WEB",
            "X-ClientLocalIP": "127.0.0.1",
            "X-ClientPublicIP": "127.0.0.1",
            "X-MACAddress": "00:00:00:00:00:00",
            "X-PrivateKey": self._config.api_key,
        }
        if self._jwt_token:
            headers["Authorization"] = f"Bearer {self._jwt_token}"
        return headers

    async def connect(self) -> bool:
        """Log in once. Returns True if a session token is held afterwards.

        Later calls return the outcome of the first attempt without touching
        the network.
        """
        if self._login_attempted:
            return self.is_authenticated
        self._login_attempted = True

        if not self._config.is_configured:
            logger.info("Angel One credentials not configured, skipping login")
            return False

        url = f"{self._base_url}{LOGIN_PATH}"
        payload = {
            "clientcode": self._config.client_id,
            "password": self._config.mpin,
            "totp": self._config.totp,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=payload, headers=self._headers())
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPError as e:
            logger.error("Angel One login failed: %s", e)
            return False
        except ValueError as e:
            logger.error("Angel One login returned invalid JSON: %s", e)
            return False

        token = (body.get("data") or {}).get("jwtToken") if body.get("status") else None
        if not token:
            logger.error("Angel One login rejected: %s", body.get("message"))
            return False

        self._jwt_token = token
        logger.info("Angel One session established")
        return True

    async def fetch(self, symbols: Sequence[Symbol]) -> list[QuoteRecord]:
        """Fetch FULL-mode quotes for the mapped symbols.

        Raises:
            ProviderNotConfiguredError: Credentials are missing.
            AuthenticationError: No session token is held.
            ProviderError: Transport or HTTP failure.
            ProviderResponseError: The API answered with an error payload.
        """
        if not self._config.is_configured:
            raise ProviderNotConfiguredError(
                "Angel One credentials not configured",
                context={"provider": self.name},
            )
        if self._jwt_token is None:
            raise AuthenticationError(
                "Angel One session not authenticated",
                context={"provider": self.name},
            )

        exchange_tokens: dict[str, list[str]] = defaultdict(list)
        token_to_symbol: dict[str, Symbol] = {}
        for symbol in symbols:
            mapping = self._symbol_tokens.get(symbol)
            if mapping is None:
                logger.debug("No Angel One token for %s, skipping", symbol)
                continue
            exchange, token = mapping
            exchange_tokens[exchange].append(token)
            token_to_symbol[token] = symbol

        if not exchange_tokens:
            return []

        url = f"{self._base_url}{QUOTE_PATH}"
        payload = {"mode": "FULL", "exchangeTokens": dict(exchange_tokens)}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=payload, headers=self._headers())
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"Angel One quote request failed: HTTP {e.response.status_code}",
                context={
                    "provider": self.name,
                    "url": url,
                    "status_code": e.response.status_code,
                },
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(
                f"Angel One quote request failed: {e}",
                context={"provider": self.name, "url": url},
            ) from e
        except ValueError as e:
            raise ProviderResponseError(
                "Angel One returned invalid JSON",
                context={"provider": self.name, "url": url},
            ) from e

        if not body.get("status"):
            raise ProviderResponseError(
                f"Angel One quote error: {body.get('message')}",
                context={
                    "provider": self.name,
                    "url": url,
                    "errorcode": body.get("errorcode"),
                },
            )

        fetched = (body.get("data") or {}).get("fetched") or []
        records: list[QuoteRecord] = []
        for item in fetched:
            symbol = token_to_symbol.get(str(item.get("symbolToken")))
            if symbol is None:
                continue
            record = self._parse_item(item, symbol)
            if record is not None:
                records.append(record)
        return records

    def _parse_item(self, item: dict[str, Any], symbol: Symbol) -> QuoteRecord | None:
        ltp = to_float(item.get("ltp"))
        if ltp is None or ltp <= 0:
            logger.warning("Angel One quote for %s has no usable ltp", symbol)
            return None

        return QuoteRecord(
            symbol=symbol,
            open=to_float(item.get("open")),
            high=to_float(item.get("high")) or ltp,
            low=to_float(item.get("low")) or ltp,
            close=ltp,
            change=to_float(item.get("netChange")) or 0.0,
            change_percent=to_float(item.get("percentChange")) or 0.0,
            volume=int(to_float(item.get("tradeVolume")) or 0),
            timestamp=_parse_feed_time(item.get("exchFeedTime")),
            source=self.name,
        )


def _parse_feed_time(value: Any) -> datetime:
    """``exchFeedTime`` is exchange-local (IST), e.g. ``21-Jun-2024 15:29:59``."""
    if isinstance(value, str):
        try:
            return datetime.strptime(value, _FEED_TIME_FORMAT).replace(tzinfo=IST)
        except ValueError:
            logger.debug("Unparseable exchFeedTime %r", value)
    return datetime.now(timezone.utc)
