"""
Static currency table.

All catalog prices are kept in the base unit (US dollars). Every other
currency carries a fixed multiplicative rate: 1 USD = rate units. Prices
are shown to the customer in their currency for clarity, payment is taken
in dollars on arrival.

An unknown currency code is never an error: the amount is treated as
already being in the base unit and returned unchanged. The same fallback
applies to conversion and to formatting.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
import logging

logger = logging.getLogger(__name__)

BASE_CURRENCY = 'USD'


@dataclass(frozen=True)
class Currency:
    code: str
    symbol: str
    name: str
    name_ar: str
    exchange_rate: Decimal  # 1 USD = exchange_rate units

    def to_dict(self):
        return {
            'code': self.code,
            'symbol': self.symbol,
            'name': self.name,
            'nameAr': self.name_ar,
            'exchangeRate': float(self.exchange_rate),
        }


_DEFAULT_CURRENCIES = (
    Currency('USD', '$', 'US Dollar', 'دولار أمريكي', Decimal('1')),
    Currency('SAR', 'ريال', 'Saudi Riyal', 'ريال سعودي', Decimal('3.75')),
    Currency('QAR', 'ريال', 'Qatari Riyal', 'ريال قطري', Decimal('3.64')),
    Currency('AED', 'درهم', 'UAE Dirham', 'درهم إماراتي', Decimal('3.67')),
    Currency('KWD', 'د.ك', 'Kuwaiti Dinar', 'دينار كويتي', Decimal('0.31')),
    Currency('BHD', 'د.ب', 'Bahraini Dinar', 'دينار بحريني', Decimal('0.38')),
    Currency('OMR', 'ر.ع', 'Omani Rial', 'ريال عماني', Decimal('0.385')),
    Currency('JOD', 'د.أ', 'Jordanian Dinar', 'دينار أردني', Decimal('0.709')),
    Currency('EGP', 'ج.م', 'Egyptian Pound', 'جنيه مصري', Decimal('48.50')),
    Currency('EUR', '€', 'Euro', 'يورو', Decimal('0.92')),
    Currency('GBP', '£', 'British Pound', 'جنيه إسترليني', Decimal('0.79')),
    Currency('TRY', '₺', 'Turkish Lira', 'ليرة تركية', Decimal('32.50')),
    Currency('GEL', '₾', 'Georgian Lari', 'لاري جورجي', Decimal('2.70')),
)


class CurrencyTable:
    """Lookup, conversion and display formatting for fixed-rate currencies."""

    def __init__(self, currencies=_DEFAULT_CURRENCIES, base_code: str = BASE_CURRENCY):
        self._by_code = {c.code: c for c in currencies}
        if base_code not in self._by_code:
            raise ValueError(f"Base currency {base_code} missing from currency table")
        self.base_code = base_code

    def list(self) -> list[Currency]:
        return list(self._by_code.values())

    def get(self, code: str | None) -> Currency | None:
        if not code:
            return None
        return self._by_code.get(code.strip().upper())

    def is_supported(self, code: str | None) -> bool:
        return self.get(code) is not None

    def convert(self, amount_in_base, target_currency: str | None) -> Decimal:
        """Convert a base-unit amount into `target_currency`."""
        amount = Decimal(str(amount_in_base))
        currency = self.get(target_currency)
        if currency is None:
            logger.warning(f"Unknown currency {target_currency!r}, keeping amount in {self.base_code}")
            return amount
        return (amount * currency.exchange_rate).quantize(Decimal('0.01'), ROUND_HALF_UP)

    def convert_to_base(self, amount, from_currency: str | None) -> Decimal:
        """Convert an amount expressed in `from_currency` back to the base unit."""
        amount = Decimal(str(amount))
        currency = self.get(from_currency)
        if currency is None:
            logger.warning(f"Unknown currency {from_currency!r}, treating amount as {self.base_code}")
            return amount
        return (amount / currency.exchange_rate).quantize(Decimal('0.01'), ROUND_HALF_UP)

    def format(self, amount, currency_code: str | None) -> str:
        """Display string: rounded to whole units, grouped, symbol last."""
        rounded = Decimal(str(amount)).quantize(Decimal('1'), ROUND_HALF_UP)
        currency = self.get(currency_code)
        if currency is None:
            return f"{rounded:,} {self.base_code}"
        return f"{rounded:,} {currency.symbol}"


default_currency_table = CurrencyTable()
