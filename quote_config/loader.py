"""
Configuration Loader (``quote_config.loader``).

Responsibility
--------------
Loads a YAML file and parses it into the frozen dataclasses of
``quote_config.schema``.  Runtime callers go through
``quote_config.get_active_config()`` instead of calling this directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing or invalid values -> ``ValueError`` naming the offending key.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from quote_config.schema import (
    CurrencyConfig,
    DatabaseConfig,
    NumberingConfig,
    QuotationConfig,
    QuoteConfig,
    RbacConfig,
)
from quote_kernel.domain.currency import CurrencyRegistry


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"{key}: expected a mapping, got {type(value).__name__}")
    return value


def _positive_int(data: dict[str, Any], key: str, path: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{path}.{key}: expected a positive integer, got {value!r}")
    return value


def parse_currency(data: dict[str, Any]) -> CurrencyConfig:
    if "base_currency" not in data:
        raise ValueError("currency.base_currency: required")
    try:
        base = CurrencyRegistry.normalize(data["base_currency"])
    except ValueError as e:
        raise ValueError(f"currency.base_currency: {e}") from e
    timeout = data.get("fetch_timeout_seconds", 10)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ValueError(
            f"currency.fetch_timeout_seconds: expected a positive number, got {timeout!r}"
        )
    return CurrencyConfig(
        base_currency=base,
        rate_ttl_seconds=_positive_int(data, "rate_ttl_seconds", "currency", 300),
        fetch_timeout_seconds=float(timeout),
        provider_url=str(data.get("provider_url", CurrencyConfig.provider_url)),
        provider_app_id=str(data.get("provider_app_id") or ""),
    )


def parse_quotation(data: dict[str, Any]) -> QuotationConfig:
    raw_vat = data.get("default_vat_rate")
    vat: Decimal | None = None
    if raw_vat is not None:
        try:
            vat = Decimal(str(raw_vat))
        except InvalidOperation as e:
            raise ValueError(f"quotation.default_vat_rate: invalid number {raw_vat!r}") from e
        if vat < 0 or vat > 100:
            raise ValueError(f"quotation.default_vat_rate: must be 0-100, got {vat}")
    return QuotationConfig(
        validity_days=_positive_int(data, "validity_days", "quotation", 3),
        default_vat_rate=vat,
    )


def parse_numbering(data: dict[str, Any]) -> NumberingConfig:
    values = {}
    for key in ("quotation_prefix", "invoice_prefix", "receipt_prefix"):
        if key in data:
            value = data[key]
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"numbering.{key}: expected a non-empty string")
            values[key] = value.strip()
    return NumberingConfig(**values)


def parse_rbac(data: dict[str, Any]) -> RbacConfig:
    roles = data.get("role_permissions") or {}
    if not isinstance(roles, dict):
        raise ValueError("rbac.role_permissions: expected a mapping of role -> list")
    pairs = []
    for role, perms in sorted(roles.items()):
        if not isinstance(perms, list):
            raise ValueError(f"rbac.role_permissions.{role}: expected a list")
        pairs.append((str(role), frozenset(str(p) for p in perms)))
    return RbacConfig(role_permissions=tuple(pairs))


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    url = data.get("url", DatabaseConfig.url)
    if not isinstance(url, str) or not url:
        raise ValueError("database.url: expected a non-empty string")
    return DatabaseConfig(
        url=url,
        pool_size=_positive_int(data, "pool_size", "database", 20),
    )


def parse_config(data: dict[str, Any], source: str = "") -> QuoteConfig:
    """Parse a whole configuration document."""
    return QuoteConfig(
        currency=parse_currency(_section(data, "currency")),
        quotation=parse_quotation(_section(data, "quotation")),
        numbering=parse_numbering(_section(data, "numbering")),
        rbac=parse_rbac(_section(data, "rbac")),
        database=parse_database(_section(data, "database")),
        checksum=compute_checksum(data),
        source=source,
    )


def load_config(path: Path) -> QuoteConfig:
    return parse_config(load_yaml_file(path), source=str(path))
