"""Currency -- ISO 4217 registry used to validate currency codes."""

from dataclasses import dataclass
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    name: str
    minor_units: int = 2


class CurrencyRegistry:
    """Registry of ISO 4217 currencies accepted on quotations and catalog prices."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        info.code: info
        for info in (
            # Gulf region
            CurrencyInfo("AED", "UAE Dirham"),
            CurrencyInfo("SAR", "Saudi Riyal"),
            CurrencyInfo("QAR", "Qatari Riyal"),
            CurrencyInfo("OMR", "Omani Rial", 3),
            CurrencyInfo("KWD", "Kuwaiti Dinar", 3),
            CurrencyInfo("BHD", "Bahraini Dinar", 3),
            # Major trading currencies
            CurrencyInfo("USD", "US Dollar"),
            CurrencyInfo("EUR", "Euro"),
            CurrencyInfo("GBP", "Pound Sterling"),
            CurrencyInfo("JPY", "Japanese Yen", 0),
            CurrencyInfo("CNY", "Chinese Yuan"),
            CurrencyInfo("KRW", "South Korean Won", 0),
            CurrencyInfo("CHF", "Swiss Franc"),
            CurrencyInfo("CAD", "Canadian Dollar"),
            CurrencyInfo("AUD", "Australian Dollar"),
            CurrencyInfo("INR", "Indian Rupee"),
            CurrencyInfo("PKR", "Pakistani Rupee"),
            CurrencyInfo("EGP", "Egyptian Pound"),
            CurrencyInfo("JOD", "Jordanian Dinar", 3),
            CurrencyInfo("TRY", "Turkish Lira"),
            CurrencyInfo("RUB", "Russian Ruble"),
            CurrencyInfo("ZAR", "South African Rand"),
            CurrencyInfo("KES", "Kenyan Shilling"),
            CurrencyInfo("NGN", "Nigerian Naira"),
            CurrencyInfo("SGD", "Singapore Dollar"),
            CurrencyInfo("HKD", "Hong Kong Dollar"),
            CurrencyInfo("THB", "Thai Baht"),
            CurrencyInfo("MYR", "Malaysian Ringgit"),
        )
    }

    @classmethod
    def is_valid(cls, code: str) -> bool:
        """Check if a currency code is known."""
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def normalize(cls, code: str) -> str:
        """Validate and normalize a currency code; raises ValueError if unknown."""
        if not code or not isinstance(code, str):
            raise ValueError(f"Invalid currency code: {code!r}")
        normalized = code.upper().strip()
        if len(normalized) != 3:
            raise ValueError(f"Currency code must be 3 characters: {code!r}")
        if normalized not in cls._CURRENCIES:
            raise ValueError(f"Invalid ISO 4217 currency code: {code!r}")
        return normalized

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        return frozenset(cls._CURRENCIES)
