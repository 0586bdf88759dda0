"""
PDF de factura con reportlab.
"""
import io
import logging
from decimal import Decimal
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.core.config import settings

logger = logging.getLogger(__name__)


def _amount(value) -> str:
    return f"{Decimal(str(value or 0)):.2f}"


def _quantity(value) -> str:
    # 2.000 -> 2, 1.500 -> 1.5
    normalized = Decimal(str(value or 0)).normalize()
    return f"{normalized:f}"


def pdf_filename(invoice) -> str:
    return f"factura-{invoice.ncf}.pdf"


def render_invoice_pdf(invoice) -> bytes:
    """
    Encabezado de la empresa, número fiscal, fecha, cliente, tabla de líneas
    (Descripción, Cantidad, Precio, Total) y Subtotal / ITBIS / Total.
    """
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=letter,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
        title=f"Factura {invoice.ncf}"
    )
    styles = getSampleStyleSheet()

    elements = []

    # Encabezado
    header_style = ParagraphStyle("Header", parent=styles["Heading1"], fontSize=20, alignment=TA_CENTER)
    tagline_style = ParagraphStyle("Tagline", parent=styles["Normal"], fontSize=12, alignment=TA_CENTER)
    elements.append(Paragraph(escape(settings.PDF_COMPANY_NAME), header_style))
    elements.append(Paragraph(escape(settings.PDF_COMPANY_TAGLINE), tagline_style))
    elements.append(Spacer(1, 24))

    # Datos de la factura
    meta_style = ParagraphStyle("Meta", parent=styles["Normal"], fontSize=10)
    customer = getattr(invoice, "customer", None)
    customer_name = getattr(customer, "full_name", "") if customer is not None else ""
    elements.append(Paragraph(f"Factura #{escape(invoice.ncf)}", styles["Heading2"]))
    elements.append(Paragraph(f"Fecha: {invoice.issue_date.strftime('%d/%m/%Y')}", meta_style))
    elements.append(Paragraph(f"Cliente: {escape(customer_name or '')}", meta_style))
    elements.append(Spacer(1, 18))

    # Líneas
    table_data = [["Descripción", "Cantidad", "Precio", "Total"]]
    for item in invoice.items or []:
        product = getattr(item, "product", None)
        table_data.append([
            getattr(product, "name", "") if product is not None else "",
            _quantity(item.quantity),
            _amount(item.unit_price),
            _amount(item.total_amount),
        ])

    # Totales
    table_data.append(["", "", "Subtotal:", _amount(invoice.subtotal)])
    table_data.append(["", "", "ITBIS:", _amount(invoice.tax_amount)])
    table_data.append(["", "", "Total:", _amount(invoice.total_amount)])

    table = Table(table_data, colWidths=[3.5 * inch, 1 * inch, 1.25 * inch, 1.25 * inch])
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#065f46")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, 0), 10),
                ("BOTTOMPADDING", (0, 0), (-1, 0), 12),
                ("GRID", (0, 0), (-1, -4), 0.5, colors.grey),
                ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
                ("FONTNAME", (2, -3), (-1, -1), "Helvetica-Bold"),
                ("LINEABOVE", (2, -3), (-1, -3), 1, colors.black),
                ("LINEABOVE", (2, -1), (-1, -1), 2, colors.black),
            ]
        )
    )
    elements.append(table)

    if getattr(invoice, "notes", None):
        elements.append(Spacer(1, 18))
        elements.append(Paragraph(f"Notas: {escape(invoice.notes)}", meta_style))

    doc.build(elements)
    logger.debug(f"Rendered PDF for invoice {invoice.ncf}")
    return buf.getvalue()
