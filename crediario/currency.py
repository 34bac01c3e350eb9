"""
Money Module

Decimal-backed money for credit limits, debts and payments, plus parsing and
formatting of Brazilian-style amounts ("R$ 1.234,56"). NEVER uses float for
monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from enum import Enum
from typing import Union
import re

getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 currency codes with precision and display symbol"""
    BRL = ("BRL", 2, "R$")
    USD = ("USD", 2, "US$")
    EUR = ("EUR", 2, "€")
    
    def __init__(self, code: str, precision: int, symbol: str):
        self.code = code
        self.precision = precision
        self.symbol = symbol


@dataclass(frozen=True)
class Money:
    """
    Immutable money representation with currency and proper precision.
    """
    amount: Decimal
    currency: Currency = Currency.BRL
    
    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))
        
        rounded = self.amount.quantize(
            Decimal('0.1') ** self.currency.precision,
            rounding=ROUND_HALF_UP
        )
        object.__setattr__(self, 'amount', rounded)
    
    @classmethod
    def zero(cls, currency: Currency = Currency.BRL) -> 'Money':
        return cls(Decimal('0'), currency)
    
    def _check_currency(self, other: 'Money', verb: str) -> None:
        if self.currency != other.currency:
            raise ValueError(f"Cannot {verb} {self.currency.code} and {other.currency.code}")
    
    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)
    
    def __sub__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)
    
    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)
    
    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount and self.currency == other.currency
    
    def __hash__(self) -> int:
        return hash((self.amount, self.currency.code))
    
    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount < other.amount
    
    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount <= other.amount
    
    def __gt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount > other.amount
    
    def __ge__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount >= other.amount
    
    def is_zero(self) -> bool:
        """Check if amount is exactly zero"""
        return self.amount == Decimal('0')
    
    def is_positive(self) -> bool:
        """Check if amount is positive"""
        return self.amount > Decimal('0')
    
    def is_negative(self) -> bool:
        """Check if amount is negative"""
        return self.amount < Decimal('0')
    
    def to_string(self) -> str:
        """Format for logs and audit metadata"""
        return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"


def format_brl(money: Money) -> str:
    """
    Format money the way pt-BR displays it: "R$ 1.234,56"
    """
    text = f"{abs(money.amount):,.{money.currency.precision}f}"
    # 1,234.56 -> 1.234,56
    text = text.replace(",", "_").replace(".", ",").replace("_", ".")
    sign = "-" if money.is_negative() else ""
    return f"{sign}{money.currency.symbol} {text}"


def parse_amount(value: Union[str, int, Decimal], currency: Currency = Currency.BRL) -> Money:
    """
    Parse a user-entered amount into Money.
    
    Accepts Brazilian ("1.234,56", "R$ 300,00") and plain ("1234.56") notation.
    When both separators appear the rightmost one is the decimal separator;
    a lone comma is always decimal; a lone dot is decimal only when followed
    by at most two digits.
    
    Amounts finer than the currency precision are rejected, never rounded.
    
    Raises:
        ValueError: If the value cannot be read as a number or has more
            decimal places than the currency allows
    """
    if isinstance(value, (int, Decimal)):
        return Money(_exact(Decimal(value), currency, value), currency)
    if not isinstance(value, str) or not value.strip():
        raise ValueError("Amount must be a non-empty string")
    
    clean = re.sub(r'[^\d.,\-]', '', value.strip())
    
    if ',' in clean and '.' in clean:
        if clean.rfind(',') > clean.rfind('.'):
            clean = clean.replace('.', '').replace(',', '.')
        else:
            clean = clean.replace(',', '')
    elif ',' in clean:
        if clean.count(',') > 1:
            raise ValueError(f"Cannot read amount '{value}'")
        clean = clean.replace(',', '.')
    elif clean.count('.') == 1:
        decimals = clean.split('.')[1]
        if len(decimals) > 2:
            clean = clean.replace('.', '')
    elif clean.count('.') > 1:
        clean = clean.replace('.', '')
    
    try:
        amount = Decimal(clean)
    except InvalidOperation:
        raise ValueError(f"Cannot read amount '{value}'")
    return Money(_exact(amount, currency, value), currency)


def _exact(amount: Decimal, currency: Currency, value) -> Decimal:
    """The amount itself, provided it fits the currency precision"""
    try:
        fits = amount == amount.quantize(Decimal(1).scaleb(-currency.precision))
    except InvalidOperation:
        fits = False
    if not fits:
        raise ValueError(
            f"Amount '{value}' has more than {currency.precision} decimal places"
        )
    return amount
