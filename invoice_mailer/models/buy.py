"""
Buy (purchase) model.

WHAT: SQLAlchemy models for a completed purchase and its line items.

WHY: A Buy is the aggregate the invoice is generated from. Its `items` and
`customer` relations are declared lazy="raise": under async sessions an
implicit lazy load cannot happen anyway, so code that needs them must load
them explicitly (BuyDAO.get_with_invoice_relations) and a forgotten load
fails loudly instead of producing an empty invoice.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, TYPE_CHECKING
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Numeric,
)
from sqlalchemy.orm import relationship, Mapped

from invoice_mailer.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from invoice_mailer.models.customer import Customer


class Buy(Base, TimestampMixin):
    """
    A completed purchase.

    Attributes:
        id: Primary key, also the order number shown to customers
        customer_id: Customer who placed the order
        purchased_at: When checkout completed
        items: Ordered line items
        customer: Billed customer
    """

    __tablename__ = "buys"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    customer_id: Mapped[int] = Column(
        Integer,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    purchased_at: Mapped[datetime] = Column(DateTime, default=datetime.utcnow, nullable=False)

    items: Mapped[List["BuyItem"]] = relationship(
        "BuyItem",
        back_populates="buy",
        order_by="BuyItem.id",
        cascade="all, delete-orphan",
        lazy="raise",
    )
    customer: Mapped["Customer"] = relationship(
        "Customer",
        back_populates="buys",
        lazy="raise",
    )

    @property
    def total(self) -> Decimal:
        """Sum of line item amounts (requires items to be loaded)."""
        return sum((item.amount for item in self.items), Decimal("0"))

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Buy(id={self.id}, customer_id={self.customer_id})>"


class BuyItem(Base):
    """
    One line of a purchase.

    Attributes:
        id: Primary key (insertion order = display order)
        buy_id: Parent purchase
        product_name: Name printed on the invoice
        quantity: Units bought
        unit_price: Price per unit at purchase time
    """

    __tablename__ = "buy_items"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    buy_id: Mapped[int] = Column(
        Integer,
        ForeignKey("buys.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_name: Mapped[str] = Column(String(255), nullable=False)
    quantity: Mapped[int] = Column(Integer, nullable=False, default=1)
    unit_price: Mapped[Decimal] = Column(Numeric(10, 2), nullable=False, default=0)

    buy: Mapped[Optional["Buy"]] = relationship(
        "Buy",
        back_populates="items",
    )

    @property
    def amount(self) -> Decimal:
        """Line total."""
        return Decimal(self.unit_price or 0) * (self.quantity or 0)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<BuyItem(id={self.id}, product={self.product_name}, qty={self.quantity})>"
