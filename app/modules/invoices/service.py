import base64
import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple
from uuid import UUID

from fastapi import HTTPException, Response, status
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.common.export import create_csv_response
from app.core.config import settings
from app.modules.invoices.listing import InvoiceListView, compute_monthly_stats, format_currency
from app.modules.invoices.models import (
    Customer, Invoice, InvoiceItem, InvoiceStatus, NcfSequence, PaymentStatus, Product
)
from app.modules.invoices.pdf import pdf_filename, render_invoice_pdf
from app.modules.invoices.schemas import (
    DateRange, FilterCategory, SortKey, SortDirection,
    InvoiceCreate, InvoiceUpdate, InvoiceItemCreate, InvoiceListResponse, InvoiceOut,
    InvoiceEmailRequest, InvoiceEmailResponse, MonthlyStats
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

_INSERT_BUILDERS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

CSV_HEADERS = {
    "ncf": "NCF",
    "customer": "Cliente",
    "issue_date": "Fecha",
    "status": "Estado",
    "payment_status": "Estado de pago",
    "subtotal": "Subtotal",
    "tax_amount": "ITBIS",
    "total_amount": "Total",
}


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class InvoiceService:
    """
    Facturación de un tenant. La sesión recibida ya apunta al schema del
    tenant, por lo que ninguna consulta filtra por tenant explícitamente.
    """

    def __init__(self, db: Session):
        self.db = db

    # Consultas

    def fetch_all(self) -> List[Invoice]:
        """Todas las facturas del tenant con cliente, líneas y productos."""
        return (
            self.db.query(Invoice)
            .options(
                selectinload(Invoice.customer),
                selectinload(Invoice.items).selectinload(InvoiceItem.product)
            )
            .order_by(Invoice.ncf.desc())
            .all()
        )

    def build_view(
        self,
        category: Optional[FilterCategory] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        search: Optional[str] = None,
        sort_key: SortKey = SortKey.STATUS,
        sort_direction: SortDirection = SortDirection.ASC,
        page: int = 1
    ) -> InvoiceListView:
        """
        Vista del listado con el estado pedido. El rango de fechas solo aplica
        con ambos extremos y se evalúa antes que la categoría.
        """
        view = InvoiceListView()
        token = view.begin_load()
        try:
            view.complete_load(token, self.fetch_all())
        except SQLAlchemyError as e:
            view.fail_load(token, e)

        if date_from and date_to:
            view.date_range = DateRange(start_date=date_from, end_date=date_to)
        view.active_filter = category
        view.search = search or ""
        view.sort_key = sort_key
        view.sort_direction = sort_direction
        view.set_page(page)
        return view

    def list_view(self, **params) -> InvoiceListResponse:
        view = self.build_view(**params)
        rows = view.visible_rows
        return InvoiceListResponse(
            invoices=[InvoiceOut.model_validate(inv) for inv in view.page_rows],
            total=len(rows),
            page=view.page,
            page_size=view.page_size,
            total_pages=view.total_pages,
            description=view.description,
            active_filter=view.active_filter,
            date_range=view.date_range,
            sort_key=view.sort_key,
            sort_direction=view.sort_direction,
            search=view.search
        )

    def monthly_stats(self, today: Optional[date] = None) -> MonthlyStats:
        return compute_monthly_stats(self.fetch_all(), today)

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        """Obtener factura por ID con detalles completos"""
        invoice = (
            self.db.query(Invoice)
            .options(
                selectinload(Invoice.customer),
                selectinload(Invoice.items).selectinload(InvoiceItem.product)
            )
            .filter(Invoice.id == invoice_id)
            .first()
        )
        if not invoice:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Factura no encontrada"
            )
        return invoice

    # Creación y edición

    def next_ncf(self, prefix: str = settings.NCF_PREFIX) -> str:
        """
        Siguiente comprobante fiscal del tenant, p. ej. B0100000001.

        La fila de la secuencia se crea (ON CONFLICT DO NOTHING) antes de
        bloquearla con FOR UPDATE.
        """
        insert = _INSERT_BUILDERS[self.db.get_bind().dialect.name]
        self.db.execute(
            insert(NcfSequence.__table__)
            .values(prefix=prefix, current_number=0)
            .on_conflict_do_nothing(index_elements=["prefix"])
        )

        sequence = (
            self.db.query(NcfSequence)
            .filter(NcfSequence.prefix == prefix)
            .with_for_update()
            .one()
        )
        sequence.current_number += 1
        return f"{prefix}{sequence.current_number:08d}"

    def _get_customer(self, customer_id: UUID) -> Customer:
        customer = self.db.query(Customer).filter(Customer.id == customer_id).first()
        if not customer:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="El cliente especificado no existe"
            )
        return customer

    def _build_items(self, items_data: List[InvoiceItemCreate]) -> List[InvoiceItem]:
        product_ids = {item.product_id for item in items_data}
        products = {
            product.id: product
            for product in self.db.query(Product).filter(Product.id.in_(product_ids)).all()
        }

        items = []
        for position, item_data in enumerate(items_data):
            product = products.get(item_data.product_id)
            if product is None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"El producto {item_data.product_id} no existe"
                )
            unit_price = item_data.unit_price if item_data.unit_price is not None else product.unit_price
            items.append(InvoiceItem(
                product=product,
                position=position,
                quantity=item_data.quantity,
                unit_price=_money(unit_price),
                total_amount=_money(Decimal(item_data.quantity) * Decimal(unit_price))
            ))
        return items

    @staticmethod
    def calculate_totals(invoice: Invoice):
        """Subtotal de las líneas, ITBIS sobre el subtotal y total."""
        subtotal = sum((Decimal(item.total_amount) for item in invoice.items), Decimal("0"))
        invoice.subtotal = _money(subtotal)
        invoice.tax_amount = _money(subtotal * settings.ITBIS_RATE)
        invoice.total_amount = invoice.subtotal + invoice.tax_amount

    def create_invoice(self, invoice_data: InvoiceCreate, user_id: Optional[UUID] = None) -> Invoice:
        """Crear factura en borrador con su NCF y totales."""
        try:
            self._get_customer(invoice_data.customer_id)

            invoice = Invoice(
                ncf=self.next_ncf(),
                customer_id=invoice_data.customer_id,
                created_by=user_id,
                issue_date=invoice_data.issue_date,
                due_date=invoice_data.due_date,
                notes=invoice_data.notes,
                status=InvoiceStatus.DRAFT,
                payment_status=PaymentStatus.PENDING
            )
            invoice.items = self._build_items(invoice_data.items)
            self.calculate_totals(invoice)

            self.db.add(invoice)
            self.db.commit()
            logger.info(f"Invoice {invoice.ncf} created as draft (total {invoice.total_amount})")

        except HTTPException:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating invoice: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error creando factura"
            )

        return self.get_invoice(invoice.id)

    def _require_draft(self, invoice: Invoice, action: str):
        if invoice.status != InvoiceStatus.DRAFT:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Solo se puede {action} una factura en borrador"
            )

    def update_invoice(self, invoice_id: UUID, invoice_data: InvoiceUpdate) -> Invoice:
        """Editar una factura en borrador; las líneas se reemplazan completas."""
        invoice = self.get_invoice(invoice_id)
        self._require_draft(invoice, "editar")

        try:
            changes = invoice_data.model_dump(exclude_unset=True, exclude={"items"})
            if "customer_id" in changes:
                self._get_customer(changes["customer_id"])
            for field, value in changes.items():
                setattr(invoice, field, value)

            if invoice.due_date and invoice.due_date < invoice.issue_date:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="La fecha de vencimiento no puede ser anterior a la fecha de emisión"
                )

            if invoice_data.items is not None:
                invoice.items = self._build_items(invoice_data.items)
                self.calculate_totals(invoice)

            self.db.commit()
            logger.info(f"Invoice {invoice.ncf} updated")

        except HTTPException:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating invoice {invoice_id}: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error actualizando factura"
            )

        return self.get_invoice(invoice_id)

    def delete_invoice(self, invoice_id: UUID, confirm: bool = False):
        """Eliminar un borrador. Es irreversible, por eso exige confirmación."""
        if not confirm:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Debe confirmar la eliminación de la factura"
            )

        invoice = self.get_invoice(invoice_id)
        self._require_draft(invoice, "eliminar")

        try:
            self.db.delete(invoice)
            self.db.commit()
            logger.info(f"Invoice {invoice.ncf} deleted")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting invoice {invoice_id}: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error eliminando factura"
            )

    # Ciclo de vida

    def _change(self, invoice: Invoice, **values) -> Invoice:
        try:
            for field, value in values.items():
                setattr(invoice, field, value)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating invoice {invoice.id}: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error actualizando factura"
            )
        return self.get_invoice(invoice.id)

    def issue_invoice(self, invoice_id: UUID) -> Invoice:
        """Emitir un borrador. A partir de aquí solo cambia el estado de pago o se anula."""
        invoice = self.get_invoice(invoice_id)
        self._require_draft(invoice, "emitir")
        logger.info(f"Issuing invoice {invoice.ncf}")
        return self._change(invoice, status=InvoiceStatus.ISSUED)

    def void_invoice(self, invoice_id: UUID) -> Invoice:
        """Anular factura"""
        invoice = self.get_invoice(invoice_id)
        if invoice.status == InvoiceStatus.VOIDED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="La factura ya está anulada"
            )
        logger.info(f"Voiding invoice {invoice.ncf} (was {invoice.status.value})")
        return self._change(invoice, status=InvoiceStatus.VOIDED)

    def update_payment_status(self, invoice_id: UUID, payment_status: PaymentStatus) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        if invoice.status != InvoiceStatus.ISSUED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Solo las facturas emitidas tienen estado de pago"
            )
        return self._change(invoice, payment_status=payment_status)

    # Exportación

    def export_csv(self, **params) -> Response:
        """CSV del listado filtrado y ordenado (la búsqueda no aplica)."""
        params.pop("page", None)
        params.pop("search", None)
        view = self.build_view(**params)
        data = [
            {
                "ncf": inv.ncf,
                "customer": inv.customer.full_name if inv.customer else "",
                "issue_date": inv.issue_date,
                "status": inv.status,
                "payment_status": inv.payment_status,
                "subtotal": inv.subtotal,
                "tax_amount": inv.tax_amount,
                "total_amount": inv.total_amount,
            }
            for inv in view.rows
        ]
        return create_csv_response(data, f"invoices-{date.today().isoformat()}.csv", CSV_HEADERS)

    def render_pdf(self, invoice_id: UUID) -> Tuple[bytes, str]:
        invoice = self.get_invoice(invoice_id)
        try:
            return render_invoice_pdf(invoice), pdf_filename(invoice)
        except Exception as e:
            logger.error(f"Error exporting invoice {invoice.ncf} to PDF: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error generando el PDF de la factura"
            )

    def send_invoice_email(self, invoice_id: UUID, email_request: InvoiceEmailRequest) -> InvoiceEmailResponse:
        """
        Enviar factura por email con PDF adjunto usando Celery.

        El destinatario por defecto es el email del cliente.
        """
        invoice = self.get_invoice(invoice_id)
        to_email = email_request.to_email or (invoice.customer.email if invoice.customer else None)
        if not to_email:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="El cliente no tiene email; indique un destinatario"
            )

        pdf_content, filename = self.render_pdf(invoice_id)

        invoice_data = {
            "ncf": invoice.ncf,
            "issue_date": invoice.issue_date.strftime("%d/%m/%Y"),
            "due_date": invoice.due_date.strftime("%d/%m/%Y") if invoice.due_date else None,
            "total_amount": format_currency(invoice.total_amount),
            "customer_name": invoice.customer.full_name if invoice.customer else None,
            "company_name": settings.PDF_COMPANY_NAME,
        }

        from app.modules.email.tasks import send_invoice_email_task

        task = send_invoice_email_task.delay(
            to_email=to_email,
            invoice_data=invoice_data,
            pdf_content_b64=base64.b64encode(pdf_content).decode("utf-8"),
            pdf_filename=filename,
            custom_message=email_request.message,
            subject=email_request.subject
        )
        logger.info(f"Invoice {invoice.ncf} email queued for {to_email} (task {task.id})")

        return InvoiceEmailResponse(
            status="queued",
            task_id=task.id,
            message=f"Email de factura {invoice.ncf} programado para envío a {to_email}"
        )
