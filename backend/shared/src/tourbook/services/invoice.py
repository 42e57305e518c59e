"""Invoice PDF rendering with reportlab.

Produces a single A4 page:
- brand header band with an accent stripe and optional logo
- invoice details, customer and booking sections
- highlighted total block
- QR code linking to the manage-booking page
- fiscal disclaimer footer

Standard PDF fonts only cover Latin-1, so text is normalized to cp1252
before drawing.
"""

import io
import logging
import re
import unicodedata
from datetime import datetime, timezone

from pydantic import BaseModel, Field
from reportlab.graphics import renderPDF
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib.colors import HexColor, white
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from tourbook.models import CheckoutSessionSnapshot

from .currency import format_minor_amount

logger = logging.getLogger(__name__)

BRAND_BLUE = HexColor("#0D5BA1")
BRAND_YELLOW = HexColor("#FFC300")
TEXT_DARK = HexColor("#111827")

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"

HEADER_HEIGHT = 110
MARGIN_X = 40
LABEL_WIDTH = 125
LINE_HEIGHT = 18
QR_SIZE = 104
QR_PADDING = 6
QR_LABEL_PAD = 16
FOOTER_Y = 36

FISCAL_NOTE = (
    "This document confirms your booking and may not replace the fiscal invoice "
    "required in your country."
)


class InvoiceRenderError(Exception):
    """Raised when an invoice PDF cannot be produced."""


class InvoiceData(BaseModel):
    """Everything printed on an invoice."""

    booking_id: str = Field(..., description="Checkout session ID used as booking reference")
    created_at: datetime
    customer_name: str | None = None
    customer_email: str | None = None
    tour_title: str
    tour_date: str | None = None
    persons: int = Field(default=1, ge=1)
    total_minor: int | None = None
    currency: str = "USD"
    site_url: str
    brand_name: str = "Tourbook"

    @property
    def manage_url(self) -> str:
        return f"{self.site_url}/booking/{self.booking_id}"

    @property
    def invoice_number(self) -> str:
        return f"INV-{self.created_at:%Y%m%d}-{short_id(self.booking_id)}"

    @classmethod
    def from_session(
        cls,
        session: CheckoutSessionSnapshot,
        site_url: str,
        brand_name: str = "Tourbook",
    ) -> "InvoiceData":
        meta = session.metadata
        return cls(
            booking_id=session.session_id,
            created_at=session.created or datetime.now(timezone.utc),
            customer_name=session.customer_name or (meta.customer_name if meta else None),
            customer_email=session.customer_email,
            tour_title=meta.tour_title if meta else "Tour booking",
            tour_date=meta.date if meta else None,
            persons=meta.quantity if meta else 1,
            total_minor=session.amount_total,
            currency=(session.currency or "USD").upper(),
            site_url=site_url,
            brand_name=brand_name,
        )


def short_id(value: str) -> str:
    return value[-8:] if len(value) > 8 else value


def slugify(value: str) -> str:
    ascii_text = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-z0-9]+", "-", ascii_text.lower()).strip("-")


def build_invoice_filename(tour_title: str, created_at: datetime, brand_name: str = "Tourbook") -> str:
    """Suggested download name, e.g. ``Invoice-tourbook_2026-11-02_guatape-day-trip.pdf``."""
    brand = slugify(brand_name) or "invoice"
    return f"Invoice-{brand}_{created_at:%Y-%m-%d}_{slugify(tour_title) or 'booking'}.pdf"


def _text(value: object) -> str:
    return str(value).encode("cp1252", "replace").decode("cp1252")


class _InvoiceCanvas:
    """Cursor-based drawing helpers over a reportlab canvas."""

    def __init__(self, c: canvas.Canvas) -> None:
        self.c = c
        self.width, self.height = A4
        self.content_width = self.width - MARGIN_X * 2
        self.y = self.height - HEADER_HEIGHT - 32

    def section(self, title: str) -> None:
        self.c.setFont(FONT_BOLD, 13)
        self.c.setFillColor(BRAND_BLUE)
        self.c.drawString(MARGIN_X, self.y, _text(title))
        self.y -= 22

    def line(self, label: str, value: object) -> None:
        if value is None or value == "":
            return
        self.c.setFillColor(TEXT_DARK)
        self.c.setFont(FONT_BOLD, 11)
        self.c.drawString(MARGIN_X, self.y, _text(f"{label}:"))
        self.c.setFont(FONT, 11)
        self.c.drawString(MARGIN_X + LABEL_WIDTH, self.y, _text(value))
        self.y -= LINE_HEIGHT

    def wrapped_line(self, label: str, value: str) -> None:
        lines = simpleSplit(_text(value), FONT, 11, self.content_width - LABEL_WIDTH) or [""]
        self.c.setFillColor(TEXT_DARK)
        self.c.setFont(FONT_BOLD, 11)
        self.c.drawString(MARGIN_X, self.y, _text(f"{label}:"))
        self.c.setFont(FONT, 11)
        for i, text in enumerate(lines):
            self.c.drawString(MARGIN_X + LABEL_WIDTH, self.y - LINE_HEIGHT * i, text)
        self.y -= LINE_HEIGHT * len(lines)

    def paragraph(self, text: str, size: int, leading: int) -> None:
        self.c.setFillColor(TEXT_DARK)
        self.c.setFont(FONT, size)
        for line in simpleSplit(_text(text), FONT, size, self.content_width):
            self.c.drawString(MARGIN_X, self.y, line)
            self.y -= leading


def _draw_header(c: canvas.Canvas, data: InvoiceData, logo_path: str | None) -> None:
    width, height = A4
    c.setFillColor(BRAND_BLUE)
    c.rect(0, height - HEADER_HEIGHT, width, HEADER_HEIGHT, fill=1, stroke=0)
    c.setFillColor(BRAND_YELLOW)
    c.rect(0, height - HEADER_HEIGHT, width, 4, fill=1, stroke=0)

    c.setFillColor(white)
    c.setFont(FONT_BOLD, 18)
    c.drawString(32, height - 56, _text(data.brand_name))
    c.setFont(FONT, 12)
    c.drawString(32, height - 78, "Invoice / Booking confirmation")

    if not logo_path:
        return
    try:
        logo = ImageReader(logo_path)
        img_w, img_h = logo.getSize()
        scale = min(160 / img_w, 56 / img_h)
        w, h = img_w * scale, img_h * scale
        x, y = width - 24 - w, height - 24 - h
        c.setFillColor(white)
        c.rect(x - 6, y - 6, w + 12, h + 12, fill=1, stroke=0)
        c.drawImage(logo, x, y, width=w, height=h, mask="auto")
    except Exception as e:
        logger.warning("Invoice logo %s could not be drawn: %s", logo_path, e)


def _draw_total(page: _InvoiceCanvas, total: str) -> None:
    c = page.c
    block_h = 56
    block_y = page.y - block_h
    c.setFillColor(BRAND_YELLOW)
    c.rect(MARGIN_X - 4, block_y, page.content_width + 8, block_h, fill=1, stroke=0)

    c.setFillColor(TEXT_DARK)
    c.setFont(FONT_BOLD, 12)
    c.drawString(MARGIN_X + 8, block_y + 19, "TOTAL")
    c.setFont(FONT_BOLD, 20)
    c.drawRightString(MARGIN_X + page.content_width - 8, block_y + 15, _text(total))
    page.y = block_y - 24


def _draw_qr(c: canvas.Canvas, value: str, label: str = "Scan me") -> None:
    width, _ = A4
    widget = QrCodeWidget(value, barLevel="M")
    x1, y1, x2, y2 = widget.getBounds()
    drawing = Drawing(
        QR_SIZE,
        QR_SIZE,
        transform=[QR_SIZE / (x2 - x1), 0, 0, QR_SIZE / (y2 - y1), 0, 0],
    )
    drawing.add(widget)

    qr_x = width - QR_SIZE - 24
    qr_y = FOOTER_Y + 10
    c.setFillColor(white)
    c.rect(
        qr_x - QR_PADDING,
        qr_y - QR_PADDING,
        QR_SIZE + QR_PADDING * 2,
        QR_SIZE + QR_PADDING * 2 + QR_LABEL_PAD,
        fill=1,
        stroke=0,
    )
    renderPDF.draw(drawing, c, qr_x, qr_y + QR_LABEL_PAD)

    c.setFillColor(TEXT_DARK)
    c.setFont(FONT, 9)
    c.drawCentredString(qr_x + QR_SIZE / 2, qr_y + 3, label)


def _draw_footer(c: canvas.Canvas) -> None:
    width, _ = A4
    lines = simpleSplit(FISCAL_NOTE, FONT, 9, width - MARGIN_X * 2 - QR_SIZE - 40)
    c.setFillColor(TEXT_DARK)
    c.setFont(FONT, 9)
    for i, text in enumerate(lines):
        c.drawString(MARGIN_X, FOOTER_Y + 14 * (len(lines) - 1 - i), text)


def render_invoice_pdf(data: InvoiceData, logo_path: str | None = None) -> bytes:
    """Render an invoice as PDF bytes.

    Args:
        data: Invoice contents
        logo_path: Optional PNG/JPG placed in the header

    Returns:
        The PDF document

    Raises:
        InvoiceRenderError: If reportlab fails to produce the document.
    """
    buffer = io.BytesIO()
    try:
        c = canvas.Canvas(buffer, pagesize=A4)
        c.setTitle(_text(f"{data.brand_name} invoice {short_id(data.booking_id)}"))
        c.setAuthor(_text(data.brand_name))
        c.setSubject("Booking confirmation")

        _draw_header(c, data, logo_path)
        page = _InvoiceCanvas(c)

        page.section("Invoice details")
        page.line("Invoice", data.invoice_number)
        page.line("Issue date", f"{data.created_at:%B %d, %Y}")
        page.line("Website", data.site_url)
        page.y -= 10

        page.section("Customer")
        page.line("Name", data.customer_name)
        page.line("Email", data.customer_email)
        page.y -= 10

        page.section("Booking")
        page.wrapped_line("Tour", data.tour_title)
        page.line("Tour date", data.tour_date)
        page.line("Persons", data.persons)
        page.line("Currency", data.currency)
        page.y -= 14

        total = (
            format_minor_amount(data.total_minor, data.currency)
            if data.total_minor is not None
            else ""
        )
        _draw_total(page, total)

        page.paragraph(f"Thank you for booking with {data.brand_name}. {data.site_url}", 10, 14)
        manage_url = data.manage_url
        shown = manage_url if len(manage_url) <= 70 else manage_url[:67] + "..."
        page.paragraph(f"Manage your booking: {shown}", 9, 12)

        _draw_qr(c, manage_url)
        _draw_footer(c)

        c.showPage()
        c.save()
    except Exception as e:
        logger.error("Invoice rendering failed for %s: %s", data.booking_id, e)
        raise InvoiceRenderError(f"Failed to render invoice for {data.booking_id}: {e}") from e

    return buffer.getvalue()

