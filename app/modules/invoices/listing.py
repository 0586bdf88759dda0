"""
Listado de facturas: filtros, orden, búsqueda, paginación y estadísticas.

Todo se calcula en memoria sobre el conjunto completo de facturas del
tenant. Las funciones aceptan cualquier objeto con los atributos de
`Invoice` (ncf, customer.full_name, issue_date, status, payment_status,
total_amount, items[].product.name, items[].total_amount).
"""
import logging
import math
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from app.core.config import settings
from app.modules.invoices.schemas import (
    DateRange, FilterCategory, SortKey, SortDirection,
    MonthlyStats, StatsBucket, ProductTotal
)

logger = logging.getLogger(__name__)

STATUS_ORDER = {
    "draft": 0,
    "issued": 1,
    "voided": 2,
}

PAYMENT_STATUS_ORDER = {
    "pending": 0,
    "partial": 1,
    "paid": 2,
}

# Estados visibles cuando no hay categoría seleccionada
DEFAULT_STATUSES = ("draft", "issued")

MONTH_NAMES = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]

TOP_PRODUCTS_LIMIT = 3


def _value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _as_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _customer_name(invoice) -> str:
    customer = getattr(invoice, "customer", None)
    return (getattr(customer, "full_name", None) or "") if customer is not None else ""


def _month_start(today: date) -> date:
    return today.replace(day=1)


def filter_by_date_range(invoices: Sequence, date_range: Optional[DateRange]) -> List:
    """Facturas con fecha de emisión dentro del rango (inclusive)."""
    if date_range is None:
        return list(invoices)
    return [
        inv for inv in invoices
        if date_range.start_date <= _as_date(inv.issue_date) <= date_range.end_date
    ]


def filter_by_category(
    invoices: Sequence,
    category: Optional[FilterCategory],
    today: Optional[date] = None
) -> List:
    """
    Sin categoría solo se muestran borradores y emitidas.

    `paid` y `pending` solo consideran facturas emitidas; `history` no filtra.
    """
    if category is None:
        return [inv for inv in invoices if _value(inv.status) in DEFAULT_STATUSES]

    category = FilterCategory(category)

    if category == FilterCategory.MONTH:
        month_start = _month_start(today or date.today())
        return [
            inv for inv in invoices
            if _as_date(inv.issue_date) >= month_start and _value(inv.status) == "issued"
        ]
    if category == FilterCategory.DRAFT:
        return [inv for inv in invoices if _value(inv.status) == "draft"]
    if category == FilterCategory.PAID:
        return [
            inv for inv in invoices
            if _value(inv.status) == "issued" and _value(inv.payment_status) == "paid"
        ]
    if category == FilterCategory.PENDING:
        return [
            inv for inv in invoices
            if _value(inv.status) == "issued" and _value(inv.payment_status) != "paid"
        ]
    if category == FilterCategory.VOIDED:
        return [inv for inv in invoices if _value(inv.status) == "voided"]
    return list(invoices)


def _rank(order: Dict[str, int]) -> Callable[[Any], int]:
    # Valores fuera de la tabla van después de los conocidos
    return lambda value: order.get(_value(value), len(order))


_status_rank = _rank(STATUS_ORDER)
_payment_rank = _rank(PAYMENT_STATUS_ORDER)

_SORT_KEYS: Dict[SortKey, Callable[[Any], Any]] = {
    SortKey.STATUS: lambda inv: _status_rank(inv.status),
    SortKey.PAYMENT_STATUS: lambda inv: _payment_rank(inv.payment_status),
    SortKey.CUSTOMER: _customer_name,
    SortKey.NCF: lambda inv: inv.ncf or "",
    SortKey.ISSUE_DATE: lambda inv: _as_date(inv.issue_date),
    SortKey.TOTAL_AMOUNT: lambda inv: Decimal(str(inv.total_amount or 0)),
}


def sort_invoices(
    invoices: Sequence,
    key: SortKey = SortKey.STATUS,
    direction: SortDirection = SortDirection.ASC
) -> List:
    """
    Orden estable por una sola columna. En descendente los empates
    conservan su orden relativo previo.
    """
    key_func = _SORT_KEYS[SortKey(key)]
    return sorted(invoices, key=key_func, reverse=SortDirection(direction) == SortDirection.DESC)


def search_invoices(invoices: Sequence, term: Optional[str]) -> List:
    """Coincidencia parcial, sin distinguir mayúsculas, en NCF o nombre del cliente."""
    if not term:
        return list(invoices)
    needle = term.lower()
    return [
        inv for inv in invoices
        if needle in (inv.ncf or "").lower() or needle in _customer_name(inv).lower()
    ]


def total_pages(count: int, page_size: int = settings.INVOICE_PAGE_SIZE) -> int:
    return math.ceil(count / page_size) if count else 0


def paginate(invoices: Sequence, page: int, page_size: int = settings.INVOICE_PAGE_SIZE) -> List:
    page = max(page, 1)
    start = (page - 1) * page_size
    return list(invoices[start:start + page_size])


def compute_monthly_stats(invoices: Sequence, today: Optional[date] = None) -> MonthlyStats:
    """
    Estadísticas de las facturas emitidas desde el primer día del mes en curso,
    agrupadas por estado, más los tres productos con mayor venta.
    """
    month_start = _month_start(today or date.today())
    monthly = [inv for inv in invoices if _as_date(inv.issue_date) >= month_start]

    stats = MonthlyStats(month_start=month_start)

    def add(bucket: StatsBucket, invoice):
        bucket.count += 1
        bucket.total += Decimal(str(invoice.total_amount or 0))

    product_sales: Dict[str, Decimal] = {}

    for invoice in monthly:
        status = _value(invoice.status)
        payment_status = _value(invoice.payment_status)

        if status == "issued":
            add(stats.issued, invoice)
            if payment_status == "paid":
                add(stats.paid, invoice)
            else:
                add(stats.pending, invoice)
        elif status == "voided":
            add(stats.voided, invoice)
        elif status == "draft":
            add(stats.draft, invoice)

        for item in getattr(invoice, "items", None) or []:
            product = getattr(item, "product", None)
            name = (getattr(product, "name", None) or "") if product is not None else ""
            product_sales[name] = product_sales.get(name, Decimal("0")) + Decimal(str(item.total_amount or 0))

    ranked = sorted(product_sales.items(), key=lambda entry: entry[1], reverse=True)
    stats.top_products = [ProductTotal(name=name, total=total) for name, total in ranked[:TOP_PRODUCTS_LIMIT]]
    return stats


def month_name(today: Optional[date] = None) -> str:
    return MONTH_NAMES[(today or date.today()).month - 1]


def describe_filter(
    category: Optional[FilterCategory],
    date_range: Optional[DateRange] = None,
    today: Optional[date] = None
) -> str:
    """Título del listado según el rango de fechas o la categoría activa."""
    if date_range is not None:
        return (
            f"Facturas del {date_range.start_date.strftime('%d/%m/%Y')} "
            f"al {date_range.end_date.strftime('%d/%m/%Y')}"
        )

    current_month = month_name(today)
    descriptions = {
        FilterCategory.MONTH: f"Facturas Emitidas de {current_month}",
        FilterCategory.DRAFT: "Borradores de Facturas",
        FilterCategory.PAID: f"Facturas Cobradas de {current_month}",
        FilterCategory.PENDING: f"Facturas por Cobrar de {current_month}",
        FilterCategory.VOIDED: "Facturas Anuladas",
        FilterCategory.HISTORY: "Historial de Facturas",
    }
    if category is None:
        return "Facturas Emitidas"
    return descriptions[FilterCategory(category)]


def format_currency(amount: Any) -> str:
    """Monto en pesos dominicanos, p. ej. RD$1,234.56."""
    value = Decimal(str(amount or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    return f"{sign}RD${abs(value):,.2f}"


class InvoiceListView:
    """
    Estado del listado de facturas: categoría, rango de fechas, búsqueda,
    orden y página, más el último conjunto cargado.

    Cada carga recibe un número de generación en `begin_load`; una respuesta
    con una generación anterior a la vigente se descarta.
    """

    def __init__(self, page_size: int = settings.INVOICE_PAGE_SIZE, today: Optional[Callable[[], date]] = None):
        self.page_size = page_size
        self._today = today or date.today

        self.invoices: List = []
        self.loading = False
        self.last_error: Optional[Exception] = None

        self.active_filter: Optional[FilterCategory] = None
        self.date_range: Optional[DateRange] = None
        self.search = ""
        self.sort_key = SortKey.STATUS
        self.sort_direction = SortDirection.ASC
        self.page = 1

        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    # Carga

    def begin_load(self) -> int:
        self._generation += 1
        self.loading = True
        return self._generation

    def complete_load(self, token: int, invoices: Sequence) -> bool:
        if token != self._generation:
            logger.debug(f"Discarding stale invoice load {token} (current {self._generation})")
            return False
        self.invoices = list(invoices)
        self.loading = False
        self.last_error = None
        return True

    def fail_load(self, token: int, error: Exception) -> bool:
        """El error se registra y se conservan los datos anteriores."""
        logger.error(f"Error loading invoices: {error}")
        if token != self._generation:
            return False
        self.loading = False
        self.last_error = error
        return True

    # Controles

    def toggle_filter(self, category: FilterCategory):
        category = FilterCategory(category)
        self.active_filter = None if self.active_filter == category else category
        self.page = 1
        if category != FilterCategory.HISTORY:
            self.date_range = None

    def set_date_range(self, start_date: Optional[date], end_date: Optional[date]):
        """Con ambos extremos se activa el rango y se limpia la categoría."""
        if start_date and end_date:
            self.date_range = DateRange(start_date=start_date, end_date=end_date)
            self.active_filter = None
        else:
            self.date_range = None
        self.page = 1

    def set_search(self, term: Optional[str]):
        self.search = term or ""
        self.page = 1

    def toggle_sort(self, key: SortKey):
        key = SortKey(key)
        if self.sort_key == key and self.sort_direction == SortDirection.ASC:
            self.sort_direction = SortDirection.DESC
        else:
            self.sort_direction = SortDirection.ASC
        self.sort_key = key

    def set_page(self, page: int):
        self.page = min(max(page, 1), max(self.total_pages, 1))

    # Derivados

    @property
    def rows(self) -> List:
        """Filtradas y ordenadas, antes de la búsqueda (lo que se exporta a CSV)."""
        invoices = filter_by_date_range(self.invoices, self.date_range)
        invoices = filter_by_category(invoices, self.active_filter, self._today())
        return sort_invoices(invoices, self.sort_key, self.sort_direction)

    @property
    def visible_rows(self) -> List:
        return search_invoices(self.rows, self.search)

    @property
    def total_pages(self) -> int:
        return total_pages(len(self.visible_rows), self.page_size)

    @property
    def page_rows(self) -> List:
        return paginate(self.visible_rows, self.page, self.page_size)

    @property
    def description(self) -> str:
        return describe_filter(self.active_filter, self.date_range, self._today())
