"""
CurrencyConverter -- cached, single-flighted exchange rates against one base.

Responsibility:
    Answers ``rate(target)`` (units of ``target`` per 1 base currency) and
    converts Money between currencies using one combined rate per call.
    Captures rate snapshots that quotations lock at creation.

Architecture position:
    Kernel > Services -- imperative shell.  The only component that talks
    to a rate provider; the pricing engine sees plain snapshots.

Invariants enforced:
    - ``rate(base) == 1`` and never touches the provider.
    - A fresh cache entry (age < ttl) is returned without a fetch.
    - At most one provider call per currency is in flight; concurrent
      callers wait on that call's result (single-flight).
    - No lock is held while the provider runs.  Fetches run on a worker
      thread and every caller waits at most ``fetch_timeout_seconds``.
    - Failure or timeout falls back to a stale cached rate, logged as
      ``exchange_rate_stale_fallback``.  No cached rate at all raises
      RateUnavailableError.

Failure modes:
    - RateUnavailableError when neither a fetch nor the cache yields a rate.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Protocol

import requests

from quote_config.schema import CurrencyConfig
from quote_kernel.domain.clock import Clock, SystemClock
from quote_kernel.domain.values import Currency, ExchangeRate, Money, to_decimal
from quote_kernel.exceptions import RateUnavailableError
from quote_kernel.logging_config import get_logger

logger = get_logger("services.currency")

ONE = Decimal("1")


class RateProvider(Protocol):
    """External source of exchange rates: a rate now, or raise."""

    def fetch_rate(self, base: str, target: str) -> Decimal:
        ...


@dataclass(frozen=True)
class RateCacheEntry:
    base_currency: str
    target_currency: str
    rate: Decimal
    fetched_at: datetime
    ttl_seconds: int

    def is_fresh(self, now: datetime) -> bool:
        return now - self.fetched_at < timedelta(seconds=self.ttl_seconds)


class _Flight:
    """One in-progress provider call, shared by every caller waiting on it."""

    __slots__ = ("done", "rate", "error")

    def __init__(self) -> None:
        self.done = threading.Event()
        self.rate: Decimal | None = None
        self.error: BaseException | None = None


class CurrencyConverter:
    """
    Process-wide rate cache in front of a RateProvider.

    Usage:
        converter = CurrencyConverter.from_config(provider, config.currency)
        converter.rate("USD")                       # Decimal('0.2723')
        converter.convert(Money.of("100", "USD"), "EUR")
    """

    def __init__(
        self,
        provider: RateProvider,
        base_currency: str,
        clock: Clock | None = None,
        ttl_seconds: int = 300,
        fetch_timeout_seconds: float = 10.0,
        max_workers: int = 4,
    ):
        self._provider = provider
        self._base = Currency(base_currency).code
        self._clock = clock or SystemClock()
        self._ttl_seconds = ttl_seconds
        self._timeout = fetch_timeout_seconds
        self._lock = threading.Lock()
        self._cache: dict[str, RateCacheEntry] = {}
        self._inflight: dict[str, _Flight] = {}
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="rate-fetch"
        )
        self._hits = 0
        self._fetches = 0
        self._fallbacks = 0

    @classmethod
    def from_config(
        cls,
        provider: RateProvider,
        config: CurrencyConfig,
        clock: Clock | None = None,
    ) -> CurrencyConverter:
        return cls(
            provider,
            config.base_currency,
            clock=clock,
            ttl_seconds=config.rate_ttl_seconds,
            fetch_timeout_seconds=config.fetch_timeout_seconds,
        )

    @property
    def base_currency(self) -> str:
        return self._base

    # -- public API -----------------------------------------------------------

    def rate(self, target: Currency | str) -> Decimal:
        """Units of ``target`` per 1 base currency."""
        code = target.code if isinstance(target, Currency) else Currency(target).code
        if code == self._base:
            return ONE

        with self._lock:
            entry = self._cache.get(code)
            if entry is not None and entry.is_fresh(self._clock.now()):
                self._hits += 1
                return entry.rate
            flight = self._inflight.get(code)
            if flight is None:
                flight = _Flight()
                self._inflight[code] = flight
                self._fetches += 1
                self._executor.submit(self._fetch, code, flight)

        if not flight.done.wait(self._timeout):
            return self._fallback(code, f"fetch exceeded {self._timeout}s")
        if flight.error is not None:
            return self._fallback(code, str(flight.error))
        return flight.rate

    def convert(self, money: Money, target: Currency | str) -> Money:
        """Convert with the single combined rate ``rate(target) / rate(source)``.

        The result is not rounded.
        """
        target_ccy = target if isinstance(target, Currency) else Currency(target)
        if money.currency == target_ccy:
            return money
        exchange = ExchangeRate.cross(
            money.currency,
            target_ccy,
            self.rate(money.currency),
            self.rate(target_ccy),
        )
        return exchange.convert(money)

    def snapshot(self, currencies: Iterable[str]) -> dict[str, Decimal]:
        """Rates for every given currency plus the base, for locking."""
        rates = {self._base: ONE}
        for code in sorted({Currency(c).code for c in currencies}):
            rates[code] = self.rate(code)
        return rates

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
        logger.info("exchange_rate_cache_cleared")

    def cache_stats(self) -> dict[str, Any]:
        now = self._clock.now()
        with self._lock:
            entries = list(self._cache.values())
            return {
                "base_currency": self._base,
                "entries": len(entries),
                "fresh": sum(1 for e in entries if e.is_fresh(now)),
                "stale": sum(1 for e in entries if not e.is_fresh(now)),
                "in_flight": len(self._inflight),
                "hits": self._hits,
                "fetches": self._fetches,
                "fallbacks": self._fallbacks,
            }

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    # -- internals ------------------------------------------------------------

    def _fetch(self, code: str, flight: _Flight) -> None:
        try:
            rate = to_decimal(self._provider.fetch_rate(self._base, code), field="rate")
            if rate <= 0:
                raise RateUnavailableError(self._base, code, f"non-positive rate {rate}")
            entry = RateCacheEntry(
                base_currency=self._base,
                target_currency=code,
                rate=rate,
                fetched_at=self._clock.now(),
                ttl_seconds=self._ttl_seconds,
            )
            with self._lock:
                self._cache[code] = entry
            flight.rate = rate
            logger.debug(
                "exchange_rate_fetched",
                extra={"base_currency": self._base, "target_currency": code, "rate": rate},
            )
        except Exception as e:
            # Handed to every waiter; they fall back or raise RateUnavailableError.
            flight.error = e
            logger.warning(
                "exchange_rate_fetch_failed",
                extra={"base_currency": self._base, "target_currency": code, "reason": str(e)},
            )
        finally:
            with self._lock:
                if self._inflight.get(code) is flight:
                    del self._inflight[code]
            flight.done.set()

    def _fallback(self, code: str, reason: str) -> Decimal:
        with self._lock:
            entry = self._cache.get(code)
            if entry is not None:
                self._fallbacks += 1
        if entry is None:
            raise RateUnavailableError(self._base, code, reason)
        logger.warning(
            "exchange_rate_stale_fallback",
            extra={
                "base_currency": self._base,
                "target_currency": code,
                "rate": entry.rate,
                "fetched_at": entry.fetched_at,
                "reason": reason,
            },
        )
        return entry.rate


class HttpRateProvider:
    """
    Rate provider for an openexchangerates-style ``latest.json`` endpoint.

    ``GET <url>?app_id=...&base=...&symbols=...`` -> ``{"rates": {"USD": 0.27}}``
    """

    def __init__(
        self,
        url: str,
        app_id: str,
        timeout_seconds: float = 10.0,
        session: requests.Session | None = None,
    ):
        self._url = url
        self._app_id = app_id
        self._timeout = timeout_seconds
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, config: CurrencyConfig) -> HttpRateProvider:
        return cls(
            config.provider_url,
            config.provider_app_id,
            timeout_seconds=config.fetch_timeout_seconds,
        )

    def fetch_rate(self, base: str, target: str) -> Decimal:
        try:
            response = self._session.get(
                self._url,
                params={"app_id": self._app_id, "base": base, "symbols": target},
                timeout=self._timeout,
            )
            response.raise_for_status()
            payload = response.json(parse_float=Decimal)
        except requests.RequestException as e:
            raise RateUnavailableError(base, target, f"provider request failed: {e}") from e
        except ValueError as e:
            raise RateUnavailableError(base, target, "provider returned invalid JSON") from e

        rates = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(rates, dict) or target not in rates:
            raise RateUnavailableError(base, target, "rate missing from provider response")
        try:
            rate = Decimal(str(rates[target]))
        except ArithmeticError as e:
            raise RateUnavailableError(base, target, f"invalid rate {rates[target]!r}") from e
        if not rate.is_finite() or rate <= 0:
            raise RateUnavailableError(base, target, f"invalid rate {rate}")
        return rate


class StaticRateProvider:
    """Fixed rate table, for tests and offline demos.

    ``rates`` maps currency -> units per 1 ``base``.
    """

    def __init__(self, base: str, rates: Mapping[str, Decimal | str]):
        self._base = Currency(base).code
        self._rates = {Currency(k).code: to_decimal(v, field="rate") for k, v in rates.items()}
        self._lock = threading.Lock()
        self.calls: list[str] = []

    def set_rate(self, currency: str, rate: Decimal | str) -> None:
        with self._lock:
            self._rates[Currency(currency).code] = to_decimal(rate, field="rate")

    def fetch_rate(self, base: str, target: str) -> Decimal:
        with self._lock:
            self.calls.append(target)
            if base != self._base:
                raise RateUnavailableError(base, target, f"static table is based on {self._base}")
            if target not in self._rates:
                raise RateUnavailableError(base, target, "not in static table")
            return self._rates[target]
