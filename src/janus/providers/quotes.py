from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

import requests
from sqlalchemy import select
from sqlalchemy.orm import Session

from janus.config.settings import get_settings
from janus.db.models import PriceCache
from janus.utils.logging import get_logger
from janus.utils.money import parse_decimal

logger = get_logger(__name__)

STOOQ_FIELDS = "sd2t2ohlcv"
_MISSING = {"", "N/D", "N/A"}


@dataclass(frozen=True)
class Quote:
    ticker: str
    symbol: str
    close: Decimal
    open: Decimal | None
    high: Decimal | None
    low: Decimal | None
    volume: int | None
    as_of: datetime

    @property
    def change(self) -> Decimal | None:
        if self.open is None:
            return None
        return self.close - self.open

    @property
    def change_percent(self) -> Decimal | None:
        if self.open in (None, Decimal("0")):
            return None
        return (self.close - self.open) / self.open * 100


def stooq_symbol(ticker: str) -> str:
    """Polish tickers drop the ``.PL`` suffix (``CDR.PL`` -> ``cdr``); others keep theirs."""
    token = ticker.strip().lower()
    if token.endswith(".pl"):
        token = token[: -len(".pl")]
    return token


def _decimal_field(payload: dict[str, Any], name: str) -> Decimal | None:
    value = payload.get(name)
    if value is None or str(value).strip().upper() in _MISSING:
        return None
    try:
        return parse_decimal(value, decimal_separator=".")
    except ValueError:
        return None


def _volume_field(payload: dict[str, Any]) -> int | None:
    volume = _decimal_field(payload, "volume")
    return int(volume) if volume is not None else None


def _as_of(payload: dict[str, Any]) -> datetime | None:
    raw_date = str(payload.get("date") or "").strip()
    raw_time = str(payload.get("time") or "").strip()
    try:
        day = date.fromisoformat(raw_date)
    except ValueError:
        return None
    try:
        moment = time.fromisoformat(raw_time) if raw_time else time(0, 0)
    except ValueError:
        moment = time(0, 0)
    return datetime.combine(day, moment)


class StooqQuoteProvider:
    """Latest end-of-day quotes from the public Stooq CSV/JSON endpoint.

    Stooq is treated as untrusted: any transport error, non-2xx status or
    malformed payload yields ``None`` instead of an exception.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        settings = get_settings()
        self.base_url = base_url or settings.stooq_base_url
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.stooq_timeout_seconds
        )
        self.session = session or requests.Session()

    def _fetch(self, symbol: str) -> dict[str, Any] | None:
        try:
            response = self.session.get(
                self.base_url,
                params={"s": symbol, "f": STOOQ_FIELDS, "h": "", "e": "json"},
                timeout=self.timeout_seconds,
                headers={"User-Agent": "Janus/1.0 (+portfolio tracker)"},
            )
        except requests.RequestException as exc:
            logger.warning("Quote request for %s failed: %s", symbol, exc)
            return None

        if not response.ok:
            logger.warning("Quote request for %s returned HTTP %s", symbol, response.status_code)
            return None
        try:
            payload = response.json()
        except ValueError:
            logger.warning("Quote response for %s is not valid JSON", symbol)
            return None
        if not isinstance(payload, dict):
            logger.warning("Quote response for %s is not an object", symbol)
            return None
        return payload

    def get_quote(self, ticker: str) -> Quote | None:
        symbol = stooq_symbol(ticker)
        if not symbol:
            return None

        payload = self._fetch(symbol)
        if payload is None:
            return None

        symbols = payload.get("symbols")
        if not isinstance(symbols, list) or not symbols or not isinstance(symbols[0], dict):
            logger.warning("Quote response for %s has no symbols", symbol)
            return None

        data = symbols[0]
        close = _decimal_field(data, "close")
        as_of = _as_of(data)
        if close is None or close <= 0 or as_of is None:
            logger.warning("Quote response for %s has no valid close price", symbol)
            return None

        return Quote(
            ticker=ticker.strip().upper(),
            symbol=symbol,
            close=close,
            open=_decimal_field(data, "open"),
            high=_decimal_field(data, "high"),
            low=_decimal_field(data, "low"),
            volume=_volume_field(data),
            as_of=as_of,
        )

    def get_quotes(self, tickers: list[str]) -> dict[str, Quote | None]:
        return {ticker: self.get_quote(ticker) for ticker in tickers}


def cache_quote(session: Session, quote: Quote, source: str = "stooq") -> PriceCache:
    symbol = quote.ticker.upper()
    row = session.scalar(
        select(PriceCache).where(
            PriceCache.symbol == symbol,
            PriceCache.as_of == quote.as_of,
            PriceCache.interval == "1d",
        )
    )
    if row is None:
        row = PriceCache(symbol=symbol, as_of=quote.as_of, interval="1d")
        session.add(row)
    row.open = quote.open
    row.high = quote.high
    row.low = quote.low
    row.close = quote.close
    row.volume = quote.volume
    row.source = source
    session.flush()
    return row


def get_cached_close(session: Session, ticker: str) -> Decimal | None:
    stmt = (
        select(PriceCache.close)
        .where(PriceCache.symbol == ticker.strip().upper())
        .order_by(PriceCache.as_of.desc())
        .limit(1)
    )
    return session.scalar(stmt)
