"""
PDF generation service for purchase invoices.

WHAT: Generates the invoice PDF attached to the invoice email, using ReportLab.

WHY: The PDF is the customer's formal record of the purchase:
1. Print-ready invoice document
2. Email attachment alongside the HTML summary
3. Record keeping

HOW: ReportLab platypus layout (header, bill-to block, line items table,
totals) rendered into an in-memory buffer; returns bytes.
"""

import io
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, List, Optional, Protocol
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import (
    SimpleDocTemplate,
    Paragraph,
    Spacer,
    Table,
    TableStyle,
)
from reportlab.lib.enums import TA_RIGHT

from invoice_mailer.core.config import settings
from invoice_mailer.models.buy import Buy
from invoice_mailer.services.template_service import format_currency

logger = logging.getLogger(__name__)


class InvoicePdfGenerator(Protocol):
    """Produces invoice PDF bytes for a buy."""

    def generate_invoice_pdf(self, buy: Buy) -> bytes:
        ...


# ============================================================================
# Configuration
# ============================================================================


@dataclass
class CompanyInfo:
    """
    Company branding information for PDFs.

    WHY: Centralizes company info for consistent branding.
    """

    name: str = "InnovaTech"
    address: str = ""
    email: str = ""
    website: str = ""


# ============================================================================
# PDF Styles
# ============================================================================


def get_styles():
    """
    Get PDF document styles.

    Returns:
        StyleSheet1 with the invoice paragraph styles added
    """
    styles = getSampleStyleSheet()

    styles.add(ParagraphStyle(
        name='DocumentTitle',
        parent=styles['Heading1'],
        fontSize=24,
        spaceAfter=20,
        textColor=colors.HexColor('#1a365d'),
    ))

    styles.add(ParagraphStyle(
        name='InvoiceBody',
        parent=styles['Normal'],
        fontSize=10,
        spaceBefore=5,
        spaceAfter=5,
    ))

    styles.add(ParagraphStyle(
        name='SmallText',
        parent=styles['Normal'],
        fontSize=8,
        textColor=colors.HexColor('#718096'),
    ))

    styles.add(ParagraphStyle(
        name='RightAlign',
        parent=styles['Normal'],
        fontSize=10,
        alignment=TA_RIGHT,
    ))

    return styles


def format_date(d: Any) -> str:
    """
    Format date for display.

    Args:
        d: Date to format (date, datetime, or None)

    Returns:
        Formatted date string (e.g., "15/01/2024")
    """
    if d is None:
        return ""

    if isinstance(d, datetime):
        d = d.date()

    if isinstance(d, date):
        return d.strftime("%d/%m/%Y")

    return str(d)


# ============================================================================
# PDF Service
# ============================================================================


class PDFService:
    """
    ReportLab implementation of InvoicePdfGenerator.

    HOW: Uses ReportLab's platypus for document layout.
    """

    def __init__(self, company_info: Optional[CompanyInfo] = None):
        """
        Initialize PDF service.

        Args:
            company_info: Company branding info (defaults to settings.COMPANY_NAME)
        """
        self.company = company_info or CompanyInfo(name=settings.COMPANY_NAME)
        self.styles = get_styles()

    def _build_header(self, doc_number: str) -> List:
        elements = []

        elements.append(Paragraph(escape(self.company.name), self.styles['DocumentTitle']))

        contact = [part for part in (self.company.address, self.company.email, self.company.website) if part]
        if contact:
            elements.append(Paragraph(escape(" | ".join(contact)), self.styles['SmallText']))

        elements.append(Spacer(1, 20))

        header_table = Table([["FACTURA", doc_number]], colWidths=[3 * inch, 4 * inch])
        header_table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (0, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (0, 0), 18),
            ('TEXTCOLOR', (0, 0), (0, 0), colors.HexColor('#2563eb')),
            ('ALIGN', (0, 0), (0, 0), 'LEFT'),
            ('FONTNAME', (1, 0), (1, 0), 'Helvetica'),
            ('FONTSIZE', (1, 0), (1, 0), 12),
            ('ALIGN', (1, 0), (1, 0), 'RIGHT'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ]))
        elements.append(header_table)
        elements.append(Spacer(1, 15))

        return elements

    def _build_client_info(self, buy: Buy) -> List:
        """
        Bill-to block on the left, order date on the right.
        """
        customer = buy.customer
        left_content = [
            Paragraph("<b>Facturar a:</b>", self.styles['InvoiceBody']),
            Paragraph(escape(customer.name), self.styles['InvoiceBody']),
            Paragraph(escape(customer.email), self.styles['InvoiceBody']),
        ]
        if customer.address:
            left_content.append(Paragraph(escape(customer.address), self.styles['InvoiceBody']))

        right_content = [
            Paragraph(f"<b>Fecha:</b> {format_date(buy.purchased_at)}", self.styles['RightAlign']),
        ]

        info_table = Table([[left_content, right_content]], colWidths=[3.5 * inch, 3.5 * inch])
        info_table.setStyle(TableStyle([
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('ALIGN', (0, 0), (0, 0), 'LEFT'),
            ('ALIGN', (1, 0), (1, 0), 'RIGHT'),
        ]))

        return [info_table, Spacer(1, 20)]

    def _build_line_items_table(self, buy: Buy) -> Table:
        data = [['Producto', 'Cant.', 'Precio', 'Subtotal']]
        for item in buy.items:
            data.append([
                item.product_name,
                str(item.quantity),
                format_currency(item.unit_price),
                format_currency(item.amount),
            ])

        table = Table(data, colWidths=[3.5 * inch, 0.75 * inch, 1.25 * inch, 1.5 * inch])
        table.setStyle(TableStyle([
            # Header row
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#f7fafc')),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.HexColor('#2d3748')),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, 0), 10),
            ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
            ('TOPPADDING', (0, 0), (-1, 0), 12),

            # Data rows
            ('FONTNAME', (0, 1), (-1, -1), 'Helvetica'),
            ('FONTSIZE', (0, 1), (-1, -1), 9),
            ('BOTTOMPADDING', (0, 1), (-1, -1), 8),
            ('TOPPADDING', (0, 1), (-1, -1), 8),

            ('ALIGN', (0, 0), (0, -1), 'LEFT'),
            ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#e2e8f0')),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#f7fafc')]),
        ]))

        return table

    def _build_totals_table(self, buy: Buy) -> Table:
        table = Table([['Total', format_currency(buy.total)]], colWidths=[1.5 * inch, 1.5 * inch])
        table.setStyle(TableStyle([
            ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
            ('FONTNAME', (0, 0), (-1, -1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 12),
            ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#1a365d')),
            ('LINEABOVE', (0, 0), (-1, 0), 1, colors.HexColor('#2d3748')),
        ]))
        return table

    def generate_invoice_pdf(self, buy: Buy) -> bytes:
        """
        Generate the invoice PDF for a buy.

        Requires buy.items and buy.customer to be loaded.

        Args:
            buy: Purchase with items and customer

        Returns:
            PDF file as bytes
        """
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=letter,
            rightMargin=0.75 * inch,
            leftMargin=0.75 * inch,
            topMargin=0.75 * inch,
            bottomMargin=0.75 * inch,
            title=f"Factura {buy.id}",
        )

        elements = []
        elements.extend(self._build_header(f"Orden #{buy.id}"))
        elements.extend(self._build_client_info(buy))
        elements.append(self._build_line_items_table(buy))
        elements.append(Spacer(1, 20))

        totals_layout = Table([['', self._build_totals_table(buy)]], colWidths=[4 * inch, 3 * inch])
        totals_layout.setStyle(TableStyle([
            ('ALIGN', (1, 0), (1, 0), 'RIGHT'),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ]))
        elements.append(totals_layout)

        doc.build(elements)
        pdf_bytes = buffer.getvalue()
        buffer.close()

        logger.info(f"Generated invoice PDF for buy {buy.id}")
        return pdf_bytes


_pdf_service: Optional[PDFService] = None


def get_pdf_service() -> PDFService:
    """
    Get or create the global PDF service instance.

    Returns:
        PDFService instance
    """
    global _pdf_service

    if _pdf_service is None:
        _pdf_service = PDFService()

    return _pdf_service
