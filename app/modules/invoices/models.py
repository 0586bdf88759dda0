from app.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Enum, Date, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from datetime import date
from sqlalchemy.dialects.postgresql import UUID
from app.common.mixins import UUIDPrimaryKeyMixin, TimestampMixin
import enum


class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"      # Borrador, editable y eliminable
    ISSUED = "issued"    # Emitida, inmutable salvo estado de pago y anulación
    VOIDED = "voided"    # Anulada


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


def _enum_column(enum_cls):
    return Enum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [member.value for member in members]
    )


class Customer(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Cliente del tenant. Se administra en su propia pantalla; aquí solo se referencia."""
    __tablename__ = "customers"

    full_name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True)
    rnc = Column(String(20), nullable=True)  # Registro Nacional del Contribuyente
    phone = Column(String(30), nullable=True)


class Product(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "products"

    name = Column(String(200), nullable=False)
    code = Column(String(50), nullable=True)
    unit_price = Column(Numeric(15, 2), nullable=False, default=0)


class Invoice(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "invoices"

    # Comprobante fiscal, asignado al crear
    ncf = Column(String(19), nullable=False, unique=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False)
    # Identidad que la creó; sin FK porque un admin puede operar sin perfil en este schema
    created_by = Column(UUID(as_uuid=True), nullable=True)

    issue_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    status = Column(_enum_column(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT)
    payment_status = Column(_enum_column(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)

    # Totals (calculated)
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)

    # Relationships
    customer = relationship("Customer")
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position"
    )


class InvoiceItem(Base, UUIDPrimaryKeyMixin):
    __tablename__ = "invoice_items"

    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    quantity = Column(Numeric(10, 3), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)  # Precio sin ITBIS
    total_amount = Column(Numeric(15, 2), nullable=False)  # quantity * unit_price

    # Relationships
    invoice = relationship("Invoice", back_populates="items")
    product = relationship("Product")


class NcfSequence(Base):
    """Secuencia de comprobantes fiscales por prefijo, una tabla por tenant."""
    __tablename__ = "ncf_sequences"

    prefix = Column(String(3), primary_key=True)
    current_number = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
