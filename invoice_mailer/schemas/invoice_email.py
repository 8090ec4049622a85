"""
Invoice email schemas for API request/response validation.

WHAT: Pydantic schemas for the send-invoice endpoint.

HOW: Uses Pydantic v2 with Field descriptions and EmailStr validation.
"""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class InvoiceEmailRequest(BaseModel):
    """
    Schema for sending a buy's invoice.

    WHY: Both fields are optional; the customer's own address and name
    are used when omitted.
    """

    recipient_email: Optional[EmailStr] = Field(
        default=None,
        description="Destination address (defaults to the customer's email)",
    )
    recipient_name: Optional[str] = Field(
        default=None,
        max_length=255,
        description="Display name (defaults to the customer's name)",
    )


class InvoiceEmailResponse(BaseModel):
    """
    Outcome of a send-invoice request.

    WHY: A failed email never voids the purchase, so failures come back
    as a warning with the complete error text instead of an error status.
    """

    buy_id: int
    recipient_email: str
    sent: bool
    warning: Optional[str] = Field(
        default=None,
        description="Full error detail, including nested causes, when sending failed",
    )
