"""
Payment account and pricing models.

The payment account is administered elsewhere; the engine reads its tax and
service fee rates to compute the totals shown on receipts and emails.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict

DEFAULT_TAX_RATE = 0.13
DEFAULT_SERVICE_FEE_RATE = 0.04

CENTS = Decimal("0.01")


class PaymentRates(BaseModel):
    """Tax and service fee rates applied on top of the ticket price."""

    tax_rate: float = Field(default=DEFAULT_TAX_RATE, ge=0.0, le=1.0)
    service_fee_rate: float = Field(default=DEFAULT_SERVICE_FEE_RATE, ge=0.0, le=1.0)


class PaymentAccountModel(BaseModel):
    """Bank and mobile money details customers pay into."""
    model_config = ConfigDict(from_attributes=True)

    account_id: int
    bank_name: Optional[str] = None
    account_name: Optional[str] = None
    account_number: Optional[str] = None
    swift_code: Optional[str] = None
    mobile_provider: Optional[str] = None
    mobile_number: Optional[str] = None
    tax_rate: Optional[float] = Field(None, ge=0.0, le=1.0)
    service_fee_rate: Optional[float] = Field(None, ge=0.0, le=1.0)

    def rates(self, defaults: Optional[PaymentRates] = None) -> PaymentRates:
        """Return this account's rates with unset values filled from defaults."""
        defaults = defaults or PaymentRates()
        return PaymentRates(
            tax_rate=self.tax_rate if self.tax_rate is not None else defaults.tax_rate,
            service_fee_rate=(
                self.service_fee_rate if self.service_fee_rate is not None
                else defaults.service_fee_rate
            ),
        )


class PriceBreakdown(BaseModel):
    """Ticket price with tax and service fee, rounded to cents."""

    base_fare: Decimal
    tax: Decimal
    service_fee: Decimal
    total: Decimal
    tax_rate: float
    service_fee_rate: float

    @classmethod
    def from_price(cls, price: Decimal, rates: PaymentRates) -> "PriceBreakdown":
        base = Decimal(price).quantize(CENTS, rounding=ROUND_HALF_UP)
        tax = (base * Decimal(str(rates.tax_rate))).quantize(CENTS, rounding=ROUND_HALF_UP)
        fee = (base * Decimal(str(rates.service_fee_rate))).quantize(CENTS, rounding=ROUND_HALF_UP)
        return cls(
            base_fare=base,
            tax=tax,
            service_fee=fee,
            total=base + tax + fee,
            tax_rate=rates.tax_rate,
            service_fee_rate=rates.service_fee_rate,
        )
