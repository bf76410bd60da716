"""
Configuration Schema (``quote_config.schema``).

Responsibility
--------------
Frozen dataclass definitions for every runtime configuration section.
These are pure data containers with no I/O; YAML parsing lives in
``quote_config.loader``.

Invariants enforced
-------------------
* All schema types are ``frozen=True`` -- immutable after construction.
* Role permissions are stored as tuples of ``(role, frozenset)`` pairs so
  the whole config stays hashable.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class CurrencyConfig:
    """Exchange-rate settings.  ``base_currency`` is the only base anywhere."""

    base_currency: str
    rate_ttl_seconds: int = 300
    fetch_timeout_seconds: float = 10.0
    provider_url: str = "https://openexchangerates.org/api/latest.json"
    provider_app_id: str = ""


@dataclass(frozen=True)
class QuotationConfig:
    validity_days: int = 3
    default_vat_rate: Decimal | None = None


@dataclass(frozen=True)
class NumberingConfig:
    """Prefixes for human-readable document numbers."""

    quotation_prefix: str = "QUO"
    invoice_prefix: str = "CI"
    receipt_prefix: str = "PN"


@dataclass(frozen=True)
class RbacConfig:
    role_permissions: tuple[tuple[str, frozenset[str]], ...] = ()

    def permissions_for(self, roles: tuple[str, ...]) -> frozenset[str]:
        granted: set[str] = set()
        mapping = dict(self.role_permissions)
        for role in roles:
            granted |= mapping.get(role, frozenset())
        return frozenset(granted)


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///quotations.db"
    pool_size: int = 20


@dataclass(frozen=True)
class QuoteConfig:
    """The complete, validated runtime configuration."""

    currency: CurrencyConfig
    quotation: QuotationConfig
    numbering: NumberingConfig
    rbac: RbacConfig
    database: DatabaseConfig
    checksum: str = ""
    source: str = ""
