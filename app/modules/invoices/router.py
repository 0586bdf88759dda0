from fastapi import APIRouter, Depends, status, Query, Response
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from datetime import date

from app.modules.auth.dependencies import get_tenant_db, require_admin, require_any_role
from app.modules.auth.schemas import AuthContext
from app.modules.invoices.service import InvoiceService
from app.modules.invoices.schemas import (
    FilterCategory, SortKey, SortDirection,
    InvoiceCreate, InvoiceUpdate, InvoiceDetail, InvoiceListResponse, MonthlyStats,
    PaymentStatusUpdate, InvoiceEmailRequest, InvoiceEmailResponse
)

# Router principal del módulo de facturas
router = APIRouter(prefix="/invoices", tags=["Invoices"])

any_role = require_any_role()
admin_only = require_admin()


def list_params(
    category: Optional[FilterCategory] = Query(None, description="month, draft, paid, pending, voided, history"),
    date_from: Optional[date] = Query(None, description="Fecha inicial (YYYY-MM-DD), requiere date_to"),
    date_to: Optional[date] = Query(None, description="Fecha final (YYYY-MM-DD), requiere date_from"),
    sort_key: SortKey = Query(SortKey.STATUS),
    sort_direction: SortDirection = Query(SortDirection.ASC),
) -> dict:
    return {
        "category": category,
        "date_from": date_from,
        "date_to": date_to,
        "sort_key": sort_key,
        "sort_direction": sort_direction,
    }


@router.get("", response_model=InvoiceListResponse)
def list_invoices(
    params: dict = Depends(list_params),
    search: Optional[str] = Query(None, description="Buscar por NCF o nombre del cliente"),
    page: int = Query(1, ge=1),
    db: Session = Depends(get_tenant_db),
    auth_context: AuthContext = Depends(any_role)
):
    """
    Listar facturas del tenant

    Sin categoría solo se listan borradores y emitidas. El rango de fechas
    (ambos extremos, inclusive) se aplica antes que la categoría.
    """
    service = InvoiceService(db)
    return service.list_view(search=search, page=page, **params)


@router.get("/stats", response_model=MonthlyStats)
def get_monthly_stats(
    db: Session = Depends(get_tenant_db),
    auth_context: AuthContext = Depends(any_role)
):
    """
    Estadísticas del mes en curso: emitidas, cobradas, por cobrar, anuladas,
    borradores y los tres productos más vendidos.
    """
    service = InvoiceService(db)
    return service.monthly_stats()


@router.get("/export")
def export_invoices_csv(
    params: dict = Depends(list_params),
    db: Session = Depends(get_tenant_db),
    auth_context: AuthContext = Depends(any_role)
):
    """Exportar a CSV el listado filtrado y ordenado."""
    service = InvoiceService(db)
    return service.export_csv(**params)


@router.post("", response_model=InvoiceDetail, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice_data: InvoiceCreate,
    db: Session = Depends(get_tenant_db),
    auth_context: AuthContext = Depends(any_role)
):
    """
    Crear una factura en borrador

    Se asigna el siguiente NCF del tenant y se calculan subtotal, ITBIS y total.
    """
    service = InvoiceService(db)
    return service.create_invoice(invoice_data, auth_context.user_id)


@router.get("/{invoice_id}", response_model=InvoiceDetail)
def get_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_tenant_db),
    auth_context: AuthContext = Depends(any_role)
):
    """
    Obtener detalles completos de una factura
    """
    service = InvoiceService(db)
    return service.get_invoice(invoice_id)


@router.get("/{invoice_id}/pdf")
def get_invoice_pdf(
    invoice_id: UUID,
    db: Session = Depends(get_tenant_db),
    auth_context: AuthContext = Depends(any_role)
):
    """Descargar la factura en PDF."""
    service = InvoiceService(db)
    content, filename = service.render_pdf(invoice_id)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@router.patch("/{invoice_id}", response_model=InvoiceDetail)
def update_invoice(
    invoice_id: UUID,
    invoice_update: InvoiceUpdate,
    db: Session = Depends(get_tenant_db),
    auth_context: AuthContext = Depends(any_role)
):
    """
    Actualizar una factura (solo si está en estado draft)
    """
    service = InvoiceService(db)
    return service.update_invoice(invoice_id, invoice_update)


@router.post("/{invoice_id}/issue", response_model=InvoiceDetail)
def issue_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_tenant_db),
    auth_context: AuthContext = Depends(any_role)
):
    """Emitir un borrador."""
    service = InvoiceService(db)
    return service.issue_invoice(invoice_id)


@router.post("/{invoice_id}/void", response_model=InvoiceDetail)
def void_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_tenant_db),
    auth_context: AuthContext = Depends(admin_only)
):
    """
    Anular una factura

    Solo administradores.
    """
    service = InvoiceService(db)
    return service.void_invoice(invoice_id)


@router.patch("/{invoice_id}/payment-status", response_model=InvoiceDetail)
def update_payment_status(
    invoice_id: UUID,
    payload: PaymentStatusUpdate,
    db: Session = Depends(get_tenant_db),
    auth_context: AuthContext = Depends(any_role)
):
    """Cambiar el estado de pago de una factura emitida."""
    service = InvoiceService(db)
    return service.update_payment_status(invoice_id, payload.payment_status)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(
    invoice_id: UUID,
    confirm: bool = Query(False, description="Debe ser true; la eliminación es irreversible"),
    db: Session = Depends(get_tenant_db),
    auth_context: AuthContext = Depends(any_role)
):
    """
    Eliminar un borrador
    """
    service = InvoiceService(db)
    service.delete_invoice(invoice_id, confirm=confirm)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{invoice_id}/send-email", response_model=InvoiceEmailResponse)
def send_invoice_email(
    invoice_id: UUID,
    email_request: InvoiceEmailRequest,
    db: Session = Depends(get_tenant_db),
    auth_context: AuthContext = Depends(any_role)
):
    """
    Enviar factura por email con el PDF adjunto

    El envío se encola en Celery; por defecto va al email del cliente.
    """
    service = InvoiceService(db)
    return service.send_invoice_email(invoice_id, email_request)
