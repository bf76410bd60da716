"""
quote_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive the resulting ``QuoteConfig``
    (or one of its sections) by injection; none of them read files or
    environment variables themselves.

Failure modes:
    - ``FileNotFoundError`` -- the requested YAML file does not exist.
    - ``ValueError`` -- a value fails validation (message names the key).

Audit relevance:
    Every successful ``get_active_config()`` call logs
    ``quote_config_loaded`` with the source path and checksum.
"""

from __future__ import annotations

import os
from pathlib import Path

from quote_config.loader import load_config, parse_config
from quote_config.schema import (
    CurrencyConfig,
    DatabaseConfig,
    NumberingConfig,
    QuotationConfig,
    QuoteConfig,
    RbacConfig,
)
from quote_kernel.logging_config import get_logger

logger = get_logger("config")

CONFIG_PATH_ENV = "QUOTE_CONFIG_PATH"

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> QuoteConfig:
    """The ONLY public configuration entrypoint.

    Resolution order: explicit ``path``, then ``$QUOTE_CONFIG_PATH``, then
    the packaged ``defaults.yaml``.
    """
    if path is None:
        path = os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH
    config = load_config(Path(path))
    logger.info(
        "quote_config_loaded",
        extra={
            "source": config.source,
            "checksum": config.checksum,
            "base_currency": config.currency.base_currency,
        },
    )
    return config


__all__ = [
    "get_active_config",
    "parse_config",
    "CONFIG_PATH_ENV",
    "DEFAULT_CONFIG_PATH",
    "CurrencyConfig",
    "DatabaseConfig",
    "NumberingConfig",
    "QuotationConfig",
    "QuoteConfig",
    "RbacConfig",
]
