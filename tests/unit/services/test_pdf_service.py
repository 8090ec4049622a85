"""
Unit tests for PDFService.

WHY: The PDF attachment must build for any purchase, including names with
characters that are markup in ReportLab paragraphs.
"""

from datetime import date, datetime
from decimal import Decimal

from invoice_mailer.services.pdf_service import CompanyInfo, PDFService, format_date
from tests.factories import build_buy, build_customer


class TestFormatDate:
    def test_datetime(self):
        assert format_date(datetime(2026, 10, 16, 12, 30)) == "16/10/2026"

    def test_date(self):
        assert format_date(date(2024, 1, 15)) == "15/01/2024"

    def test_none(self):
        assert format_date(None) == ""


class TestPDFService:
    def test_generates_pdf_bytes(self):
        service = PDFService(company_info=CompanyInfo(name="InnovaTech", email="facturas@innovatech.example"))

        pdf = service.generate_invoice_pdf(build_buy())

        assert pdf.startswith(b"%PDF")
        assert len(pdf) > 500

    def test_escapes_markup_in_names(self):
        buy = build_buy(
            items=[("Cable <USB> & adaptador", 3, Decimal("4.50"))],
            customer=build_customer(name="Pérez & Hijos <SA>", address=None),
        )

        pdf = PDFService().generate_invoice_pdf(buy)

        assert pdf.startswith(b"%PDF")

    def test_many_items_span_pages(self):
        items = [(f"Producto {n}", n, Decimal("1.00")) for n in range(1, 80)]

        pdf = PDFService().generate_invoice_pdf(build_buy(items=items))

        assert pdf.startswith(b"%PDF")
