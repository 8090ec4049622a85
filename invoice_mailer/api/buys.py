"""
Buy API endpoints.

WHAT: Sends the invoice email for an existing purchase.

WHY: The checkout workflow (and operators re-sending an invoice) need a
single call that loads the purchase with everything the invoice needs and
reports the outcome.

HOW: FastAPI router; the buy is loaded through BuyDAO with items and
customer eagerly loaded, then handed to InvoiceEmailService.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_mailer.core.exceptions import (
    BuyNotFoundError,
    InvoiceEmailError,
    format_error_chain,
)
from invoice_mailer.dao.buy import BuyDAO
from invoice_mailer.db.session import get_db
from invoice_mailer.schemas.invoice_email import InvoiceEmailRequest, InvoiceEmailResponse
from invoice_mailer.services.invoice_email_service import (
    InvoiceEmailService,
    get_invoice_email_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/buys", tags=["buys"])


@router.post(
    "/{buy_id}/invoice-email",
    response_model=InvoiceEmailResponse,
    status_code=status.HTTP_200_OK,
    summary="Send invoice email",
    description="Render the invoice for a buy and email it with the PDF attached",
)
async def send_invoice_email(
    buy_id: int,
    request: Optional[InvoiceEmailRequest] = None,
    db: AsyncSession = Depends(get_db),
    email_service: InvoiceEmailService = Depends(get_invoice_email_service),
) -> InvoiceEmailResponse:
    """
    Send the invoice email for a buy.

    Args:
        buy_id: Buy ID
        request: Optional recipient override
        db: Database session
        email_service: Invoice email service

    Returns:
        Send outcome; on failure `sent` is false and `warning` holds the
        complete error text

    Raises:
        BuyNotFoundError (404): If the buy doesn't exist
    """
    buy = await BuyDAO(db).get_with_invoice_relations(buy_id)
    if buy is None:
        raise BuyNotFoundError(
            message=f"Buy with id {buy_id} not found",
            resource_type="Buy",
            resource_id=buy_id,
        )

    request = request or InvoiceEmailRequest()
    customer = buy.customer
    recipient_email = request.recipient_email or (customer.email if customer else "")
    recipient_name = request.recipient_name or (customer.name if customer else "")

    try:
        await email_service.send_invoice_email(buy, recipient_email, recipient_name)
    except InvoiceEmailError as exc:
        warning = f"The purchase was completed, but the invoice email could not be sent: {format_error_chain(exc)}"
        logger.warning(warning, extra={"buy_id": buy_id})
        return InvoiceEmailResponse(
            buy_id=buy_id,
            recipient_email=recipient_email,
            sent=False,
            warning=warning,
        )

    return InvoiceEmailResponse(
        buy_id=buy_id,
        recipient_email=recipient_email,
        sent=True,
    )
