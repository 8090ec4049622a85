"""Database package"""

from invoice_mailer.db.session import AsyncSessionLocal, engine, get_db
from invoice_mailer.models.base import Base

__all__ = ["Base", "AsyncSessionLocal", "engine", "get_db"]
