from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime
from enum import Enum
from app.modules.invoices.models import InvoiceStatus, PaymentStatus


class FilterCategory(str, Enum):
    """Categorías del listado; son excluyentes entre sí."""
    MONTH = "month"
    DRAFT = "draft"
    PAID = "paid"
    PENDING = "pending"
    VOIDED = "voided"
    HISTORY = "history"


class SortKey(str, Enum):
    STATUS = "status"
    PAYMENT_STATUS = "payment_status"
    CUSTOMER = "customer"
    NCF = "ncf"
    ISSUE_DATE = "issue_date"
    TOTAL_AMOUNT = "total_amount"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class DateRange(BaseModel):
    """Rango de fechas de emisión, ambos extremos inclusive."""
    start_date: date
    end_date: date


# Reference data
class CustomerOut(BaseModel):
    id: UUID
    full_name: str
    email: Optional[str] = None
    rnc: Optional[str] = None

    class Config:
        from_attributes = True


class ProductOut(BaseModel):
    id: UUID
    name: str
    code: Optional[str] = None

    class Config:
        from_attributes = True


# Invoice Item Schemas
class InvoiceItemCreate(BaseModel):
    product_id: UUID
    quantity: Decimal = Field(..., gt=0, description="Cantidad debe ser mayor a 0")
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Precio unitario sin ITBIS; por defecto el del producto")

    @field_validator('quantity')
    @classmethod
    def validate_quantity(cls, v):
        if v <= 0:
            raise ValueError('La cantidad debe ser mayor a 0')
        return v


class InvoiceItemOut(BaseModel):
    id: UUID
    product_id: UUID
    product: Optional[ProductOut] = None
    quantity: Decimal
    unit_price: Decimal
    total_amount: Decimal

    class Config:
        from_attributes = True


# Invoice Schemas
class InvoiceCreate(BaseModel):
    customer_id: UUID
    issue_date: date = Field(default_factory=date.today)
    due_date: Optional[date] = None
    notes: Optional[str] = None
    items: List[InvoiceItemCreate] = Field(..., min_length=1, description="Debe incluir al menos un item")

    @model_validator(mode='after')
    def validate_due_date(self):
        if self.due_date and self.issue_date and self.due_date < self.issue_date:
            raise ValueError('La fecha de vencimiento no puede ser anterior a la fecha de emisión')
        return self


# Se pueden omitir en un PATCH, pero no enviar en null
NON_NULLABLE_UPDATE_FIELDS = ("customer_id", "issue_date", "items")


class InvoiceUpdate(BaseModel):
    customer_id: Optional[UUID] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    items: Optional[List[InvoiceItemCreate]] = Field(None, min_length=1)

    @model_validator(mode='after')
    def validate_required_fields(self):
        for field in NON_NULLABLE_UPDATE_FIELDS:
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f'El campo {field} no puede ser nulo')
        return self

    @model_validator(mode='after')
    def validate_due_date(self):
        if self.due_date and self.issue_date and self.due_date < self.issue_date:
            raise ValueError('La fecha de vencimiento no puede ser anterior a la fecha de emisión')
        return self


class InvoiceOut(BaseModel):
    id: UUID
    ncf: str
    customer_id: UUID
    customer: Optional[CustomerOut] = None
    issue_date: date
    due_date: Optional[date] = None
    notes: Optional[str] = None
    status: InvoiceStatus
    payment_status: PaymentStatus
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InvoiceDetail(InvoiceOut):
    """Factura con sus líneas y productos."""
    items: List[InvoiceItemOut] = []


class InvoiceListResponse(BaseModel):
    """Una página del listado ya filtrado, ordenado y buscado."""
    invoices: List[InvoiceOut]
    total: int
    page: int
    page_size: int
    total_pages: int
    description: str
    active_filter: Optional[FilterCategory] = None
    date_range: Optional[DateRange] = None
    sort_key: SortKey
    sort_direction: SortDirection
    search: str = ""


# Statistics
class StatsBucket(BaseModel):
    count: int = 0
    total: Decimal = Decimal("0")


class ProductTotal(BaseModel):
    name: str
    total: Decimal


class MonthlyStats(BaseModel):
    """Estadísticas del mes en curso (desde el día 1)."""
    month_start: date
    issued: StatsBucket = Field(default_factory=StatsBucket)
    paid: StatsBucket = Field(default_factory=StatsBucket)
    pending: StatsBucket = Field(default_factory=StatsBucket)
    voided: StatsBucket = Field(default_factory=StatsBucket)
    draft: StatsBucket = Field(default_factory=StatsBucket)
    top_products: List[ProductTotal] = []


# Lifecycle
class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus


class InvoiceEmailRequest(BaseModel):
    to_email: Optional[str] = Field(None, max_length=255, description="Por defecto el email del cliente")
    subject: Optional[str] = Field(None, max_length=200, description="Asunto personalizado del email")
    message: Optional[str] = Field(None, max_length=1000, description="Mensaje adicional en el email")

    @field_validator('to_email')
    @classmethod
    def validate_email(cls, v):
        import re
        if v is None:
            return v
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, v):
            raise ValueError('Email inválido')
        return v


class InvoiceEmailResponse(BaseModel):
    """Respuesta del envío de email de factura"""
    status: str = Field(..., description="Estado del envío: 'queued', 'failed'")
    task_id: Optional[str] = Field(None, description="ID de la tarea de Celery")
    message: str = Field(..., description="Mensaje descriptivo del resultado")
