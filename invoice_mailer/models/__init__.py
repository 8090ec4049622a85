"""
Database models package.

WHY: Centralizing model imports ensures Alembic can discover all models
for migration generation and makes it easier to import models elsewhere.
"""

from invoice_mailer.models.base import Base, TimestampMixin
from invoice_mailer.models.customer import Customer
from invoice_mailer.models.buy import Buy, BuyItem

__all__ = ["Base", "TimestampMixin", "Customer", "Buy", "BuyItem"]
