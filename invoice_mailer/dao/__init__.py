"""
Data Access Object (DAO) package.

WHY: DAOs provide a clean separation between database operations and business logic,
making the codebase more testable and maintainable.
"""

from invoice_mailer.dao.base import BaseDAO
from invoice_mailer.dao.buy import BuyDAO

__all__ = ["BaseDAO", "BuyDAO"]
