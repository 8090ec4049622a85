"""
Customer model.

WHAT: The person a purchase is billed to.

WHY: The invoice shows the customer's name and address, and the invoice
email defaults to the customer's address when the caller gives none.
"""

from typing import List, Optional, TYPE_CHECKING
from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship, Mapped

from invoice_mailer.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from invoice_mailer.models.buy import Buy


class Customer(Base, TimestampMixin):
    """
    Customer model.

    Attributes:
        id: Primary key
        name: Full name shown on the invoice
        email: Default invoice recipient
        address: Billing address (optional)
        phone: Contact phone (optional)
    """

    __tablename__ = "customers"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    name: Mapped[str] = Column(String(255), nullable=False)
    email: Mapped[str] = Column(String(255), nullable=False, index=True)
    address: Mapped[Optional[str]] = Column(String(500), nullable=True)
    phone: Mapped[Optional[str]] = Column(String(50), nullable=True)

    buys: Mapped[List["Buy"]] = relationship(
        "Buy",
        back_populates="customer",
        lazy="raise",
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Customer(id={self.id}, email={self.email})>"
