"""
Currency propagation for monetary documents.

Each monetary model lists its transaction-currency columns in
MONETARY_FIELDS; every such column has a <field>_base mirror in the
document's base currency. Exchange rates are supplied by the caller; there is
no rate lookup.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from docflow.config import settings
from docflow.core.exceptions import ValidationError
from docflow.database import flush_changes


logger = logging.getLogger(__name__)


TWO_PLACES = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Optional[Number]) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value: Optional[Number]) -> Decimal:
    """Round to 2 decimal places, half up."""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def resolve_base_currency(document_currency: str) -> str:
    """Configured reporting currency, or the document's own when none is set."""
    return settings.BASE_CURRENCY or document_currency


class CurrencyService:
    """Keeps *_base mirrors consistent with amounts, currency and rate."""

    def __init__(self, db: Optional[AsyncSession] = None):
        self.db = db

    @staticmethod
    def convert(
        amount: Number,
        from_currency: str,
        to_currency: str,
        rate: Optional[Number] = None,
    ) -> Decimal:
        """
        Convert amount between currencies.

        Same currency returns the amount unchanged (rounded to cents).
        Otherwise amount * rate, where a missing rate means 1:1.
        """
        if from_currency == to_currency:
            return money(amount)
        effective_rate = to_decimal(rate) if rate is not None else Decimal("1")
        return money(to_decimal(amount) * effective_rate)

    def apply_base_amounts(self, document) -> None:
        """Recompute every *_base mirror on document and its items."""
        if document.currency == document.base_currency:
            document.exchange_rate = Decimal("1")
        rate = document.exchange_rate

        self._mirror(document, document.currency, document.base_currency, rate)
        for item in getattr(document, "items", None) or []:
            if getattr(item, "MONETARY_FIELDS", None):
                self._mirror(item, document.currency, document.base_currency, rate)

    def _mirror(self, target, from_currency: str, to_currency: str, rate) -> None:
        for field in target.MONETARY_FIELDS:
            setattr(
                target,
                f"{field}_base",
                self.convert(getattr(target, field), from_currency, to_currency, rate),
            )

    async def update_document_currency(
        self,
        document,
        new_currency: str,
        rate: Number,
    ):
        """
        Switch document to new_currency at rate and recompute all base mirrors.

        Transaction-currency amounts are left as they are. Nothing is
        mutated if the input is rejected.

        Raises:
            ValidationError: empty currency code or non-positive rate
        """
        code = (new_currency or "").strip().upper()
        if not code:
            raise ValidationError("Currency code is required", fields=["currency"])
        try:
            rate_value = to_decimal(rate)
        except ArithmeticError:
            raise ValidationError(f"Invalid exchange rate: {rate}", fields=["rate"])
        if rate_value <= 0:
            raise ValidationError("Exchange rate must be greater than zero", fields=["rate"])

        old_currency = document.currency
        document.currency = code
        document.exchange_rate = rate_value
        self.apply_base_amounts(document)

        if self.db is not None:
            await flush_changes(self.db, f"Update {type(document).__name__} currency")

        logger.info(
            f"{type(document).__name__} {document.id}: currency {old_currency} -> {code} "
            f"at {document.exchange_rate} (base {document.base_currency})"
        )
        return document
