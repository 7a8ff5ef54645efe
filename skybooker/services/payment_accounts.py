"""
Payment account rate readers.

Receipts and payment emails show the ticket price plus tax and a service fee.
The rates come from the newest payment account; unset rates fall back to the
configured defaults (13% tax, 4% service fee).
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import select

from ..database.config import DatabaseConfig
from ..database.models import PaymentAccount
from ..models.payment import PaymentRates, PaymentAccountModel

logger = logging.getLogger(__name__)


class PaymentAccountReader(ABC):
    """Supplies the tax and service fee rates used for price breakdowns."""

    @abstractmethod
    async def get_rates(self) -> PaymentRates:
        """Return the rates currently in effect."""


class StaticPaymentAccountReader(PaymentAccountReader):
    """Fixed rates, used when no payment account table is available."""

    def __init__(self, rates: Optional[PaymentRates] = None):
        self.rates = rates or PaymentRates()

    async def get_rates(self) -> PaymentRates:
        return self.rates


class SqlAlchemyPaymentAccountReader(PaymentAccountReader):
    """Reads rates from the newest payment account row; blocks the loop thread."""

    def __init__(self, db_config: DatabaseConfig, defaults: Optional[PaymentRates] = None):
        self.db = db_config
        self.defaults = defaults or PaymentRates()

    async def get_account(self) -> Optional[PaymentAccountModel]:
        with self.db.get_session_context() as session:
            row = session.execute(
                select(PaymentAccount).order_by(PaymentAccount.account_id.desc()).limit(1)
            ).scalar_one_or_none()
            return PaymentAccountModel.model_validate(row) if row is not None else None

    async def get_rates(self) -> PaymentRates:
        account = await self.get_account()
        if account is None:
            logger.debug("No payment account configured, using default rates")
            return self.defaults
        return account.rates(self.defaults)
