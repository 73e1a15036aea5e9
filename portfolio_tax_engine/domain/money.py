# portfolio_tax_engine/domain/money.py
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional

from .enums import Currency

_ZERO = Decimal(0)


@dataclass(frozen=True)
class MultiCurrencyValue:
    """
    Parallel USD and ILS projections of the same monetary amount.
    Aggregating both projections side by side avoids re-deriving one from the
    other with whatever rate happens to be current at read time.
    """
    val_usd: Decimal = _ZERO
    val_ils: Decimal = _ZERO

    @classmethod
    def zero(cls) -> "MultiCurrencyValue":
        return cls(_ZERO, _ZERO)

    def add(self, other: "MultiCurrencyValue") -> "MultiCurrencyValue":
        return MultiCurrencyValue(self.val_usd + other.val_usd, self.val_ils + other.val_ils)

    def sub(self, other: "MultiCurrencyValue") -> "MultiCurrencyValue":
        return MultiCurrencyValue(self.val_usd - other.val_usd, self.val_ils - other.val_ils)

    def scale(self, factor: Decimal) -> "MultiCurrencyValue":
        return MultiCurrencyValue(self.val_usd * factor, self.val_ils * factor)

    def get(self, currency: Currency) -> Decimal:
        if currency == Currency.USD:
            return self.val_usd
        if currency == Currency.ILS:
            return self.val_ils
        if currency == Currency.ILA:
            return self.val_ils * Decimal(100)
        raise ValueError(f"MultiCurrencyValue tracks USD and ILS only, not {currency}.")

    def __add__(self, other: "MultiCurrencyValue") -> "MultiCurrencyValue":
        return self.add(other)

    def __sub__(self, other: "MultiCurrencyValue") -> "MultiCurrencyValue":
        return self.sub(other)


@dataclass
class Money:
    amount: Decimal
    currency: Currency
    rate_to_portfolio: Decimal = Decimal(1) # Historical rate at transaction time
    # Projections captured at transaction time, never recomputed from current rates
    val_usd: Optional[Decimal] = None
    val_ils: Optional[Decimal] = None

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            raise ValueError(f"Money amount must be a Decimal: {self.amount} (type: {type(self.amount)})")

    @classmethod
    def zero(cls, currency: Currency) -> "Money":
        return cls(amount=_ZERO, currency=currency, val_usd=_ZERO, val_ils=_ZERO)

    def scaled(self, ratio: Decimal) -> "Money":
        """Scales the amount and every captured projection by the same ratio."""
        return replace(
            self,
            amount=self.amount * ratio,
            val_usd=self.val_usd * ratio if self.val_usd is not None else None,
            val_ils=self.val_ils * ratio if self.val_ils is not None else None,
        )

    def minus(self, other: "Money") -> "Money":
        """Field-wise subtraction. A projection missing on either side is dropped."""
        return replace(
            self,
            amount=self.amount - other.amount,
            val_usd=self.val_usd - other.val_usd if self.val_usd is not None and other.val_usd is not None else None,
            val_ils=self.val_ils - other.val_ils if self.val_ils is not None and other.val_ils is not None else None,
        )

    def projection(self, currency: Currency) -> Optional[Decimal]:
        """Captured value in `currency`, or None when it has to be converted."""
        if currency == self.currency:
            return self.amount
        if currency == Currency.USD:
            return self.val_usd
        if currency == Currency.ILS:
            return self.val_ils
        if currency == Currency.ILA and self.val_ils is not None:
            return self.val_ils * Decimal(100)
        return None
