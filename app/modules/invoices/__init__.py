"""
Módulo de Facturación (Invoices)

- Facturas con comprobante fiscal (NCF) secuencial por tenant
- Ciclo de vida: borrador -> emitida -> anulada
- Estado de pago de facturas emitidas (pending, partial, paid)
- Listado con categorías, rango de fechas, orden, búsqueda y paginación
- Estadísticas del mes en curso
- Exportación a CSV y PDF, envío por email

Permisos:
- admin: todo, incluida la anulación
- user: crear, editar y eliminar borradores, emitir, estado de pago, email

Tablas (una por schema de tenant):
- customers, products: datos de referencia
- invoices, invoice_items: facturas y sus líneas
- ncf_sequences: secuencias de comprobantes fiscales
"""

from .models import Invoice, InvoiceItem, NcfSequence, Customer, Product
from .schemas import InvoiceCreate, InvoiceOut, InvoiceDetail
from .service import InvoiceService
from .router import router

__all__ = [
    "Invoice", "InvoiceItem", "NcfSequence", "Customer", "Product",
    "InvoiceCreate", "InvoiceOut", "InvoiceDetail",
    "InvoiceService",
    "router"
]
