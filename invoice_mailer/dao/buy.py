"""
Buy Data Access Object (DAO).

WHAT: Database operations for purchases.

WHY: The invoice email needs a buy with its items and customer already
loaded; this is the one place that knows how to load them.
"""

from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from invoice_mailer.dao.base import BaseDAO
from invoice_mailer.models.buy import Buy


class BuyDAO(BaseDAO[Buy]):
    """Data Access Object for Buy model."""

    def __init__(self, session: AsyncSession):
        """
        Initialize BuyDAO.

        Args:
            session: Async database session
        """
        super().__init__(Buy, session)

    async def get_with_invoice_relations(self, buy_id: int) -> Optional[Buy]:
        """
        Get a buy with items and customer eagerly loaded.

        WHAT: Load the buy, its line items and its customer.

        WHY: Both relations are lazy="raise"; the invoice template, the PDF
        and the email pipeline all read them.

        Args:
            buy_id: Buy ID

        Returns:
            Buy with relations loaded, or None
        """
        result = await self.session.execute(
            select(Buy)
            .options(
                selectinload(Buy.items),
                selectinload(Buy.customer),
            )
            .where(Buy.id == buy_id)
        )
        return result.scalar_one_or_none()
