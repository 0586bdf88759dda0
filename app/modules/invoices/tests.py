"""
Tests para el módulo de Invoices

Cubren:
- Listado en memoria: filtros, orden, búsqueda, paginación y estadísticas
- Estado del listado (generaciones de carga y reglas de los controles)
- API: creación con NCF e ITBIS, edición de borradores, ciclo de vida,
  exportación CSV, PDF, envío por email y aislamiento entre tenants
"""

import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from app.modules.invoices.listing import (
    InvoiceListView, compute_monthly_stats, describe_filter, filter_by_category,
    filter_by_date_range, format_currency, paginate, search_invoices, sort_invoices, total_pages
)
from app.modules.invoices.models import Customer, NcfSequence
from app.modules.invoices.schemas import DateRange, FilterCategory, SortKey, SortDirection
from app.modules.invoices.service import InvoiceService

TODAY = date(2026, 10, 18)


def make_invoice(ncf, status="issued", payment_status="pending", issue_date=date(2026, 10, 5),
                 total="100.00", customer="Cliente Genérico", items=()):
    return SimpleNamespace(
        ncf=ncf,
        status=status,
        payment_status=payment_status,
        issue_date=issue_date,
        total_amount=Decimal(total),
        customer=SimpleNamespace(full_name=customer),
        items=[
            SimpleNamespace(product=SimpleNamespace(name=name), total_amount=Decimal(amount))
            for name, amount in items
        ],
    )


def ncfs(invoices):
    return [inv.ncf for inv in invoices]


@pytest.fixture
def sample_invoices():
    return [
        make_invoice("B0100000001", status="draft", issue_date=date(2026, 10, 1), customer="Hotel Caribe"),
        make_invoice("B0100000002", status="issued", payment_status="paid", issue_date=date(2026, 10, 10)),
        make_invoice("B0100000003", status="issued", payment_status="pending", issue_date=date(2026, 9, 20)),
        make_invoice("B0100000004", status="voided", issue_date=date(2026, 10, 12)),
        make_invoice("B0100000005", status="issued", payment_status="partial", issue_date=date(2026, 10, 18),
                     customer="Supermercado Nacional"),
    ]


# ===== TESTS DE FILTROS =====

class TestFilters:
    """Tests para filtros de categoría y rango de fechas"""

    def test_default_excludes_voided(self, sample_invoices):
        result = filter_by_category(sample_invoices, None, TODAY)
        assert "B0100000004" not in ncfs(result)
        assert ncfs(result) == ["B0100000001", "B0100000002", "B0100000003", "B0100000005"]

    def test_paid_only_issued_and_paid(self, sample_invoices):
        result = filter_by_category(sample_invoices, FilterCategory.PAID, TODAY)
        assert ncfs(result) == ["B0100000002"]

    def test_draft_pending_absent_from_paid_but_in_default(self):
        draft = make_invoice("B0100000009", status="draft", payment_status="pending")
        assert filter_by_category([draft], FilterCategory.PAID, TODAY) == []
        assert filter_by_category([draft], None, TODAY) == [draft]

    def test_pending_includes_partial_but_not_drafts(self, sample_invoices):
        result = filter_by_category(sample_invoices, FilterCategory.PENDING, TODAY)
        assert ncfs(result) == ["B0100000003", "B0100000005"]

    def test_month_only_issued_since_first_day(self, sample_invoices):
        result = filter_by_category(sample_invoices, FilterCategory.MONTH, TODAY)
        assert ncfs(result) == ["B0100000002", "B0100000005"]

    def test_draft_and_voided(self, sample_invoices):
        assert ncfs(filter_by_category(sample_invoices, FilterCategory.DRAFT, TODAY)) == ["B0100000001"]
        assert ncfs(filter_by_category(sample_invoices, FilterCategory.VOIDED, TODAY)) == ["B0100000004"]

    def test_history_keeps_everything(self, sample_invoices):
        assert len(filter_by_category(sample_invoices, FilterCategory.HISTORY, TODAY)) == 5

    def test_date_range_is_inclusive(self, sample_invoices):
        date_range = DateRange(start_date=date(2026, 10, 1), end_date=date(2026, 10, 12))
        result = filter_by_date_range(sample_invoices, date_range)
        assert ncfs(result) == ["B0100000001", "B0100000002", "B0100000004"]

    def test_date_range_accepts_datetime_and_strings(self):
        invoices = [make_invoice("A", issue_date="2026-10-03T10:00:00")]
        date_range = DateRange(start_date=date(2026, 10, 3), end_date=date(2026, 10, 3))
        assert ncfs(filter_by_date_range(invoices, date_range)) == ["A"]


# ===== TESTS DE ORDEN, BÚSQUEDA Y PAGINACIÓN =====

class TestSortingAndSearch:
    """Tests para orden, búsqueda y paginación"""

    def test_status_ascending_ranks(self, sample_invoices):
        result = sort_invoices(sample_invoices, SortKey.STATUS, SortDirection.ASC)
        assert [inv.status for inv in result] == ["draft", "issued", "issued", "issued", "voided"]

    def test_status_descending_reverses_ranks(self, sample_invoices):
        result = sort_invoices(sample_invoices, SortKey.STATUS, SortDirection.DESC)
        assert [inv.status for inv in result] == ["voided", "issued", "issued", "issued", "draft"]

    def test_descending_keeps_tie_order(self, sample_invoices):
        result = sort_invoices(sample_invoices, SortKey.STATUS, SortDirection.DESC)
        assert ncfs(result)[1:4] == ["B0100000002", "B0100000003", "B0100000005"]

    def test_unknown_status_sorts_last(self):
        invoices = [make_invoice("X", status="archived"), make_invoice("Y", status="voided")]
        assert ncfs(sort_invoices(invoices, SortKey.STATUS)) == ["Y", "X"]

    def test_payment_status_order(self, sample_invoices):
        issued = [inv for inv in sample_invoices if inv.status == "issued"]
        result = sort_invoices(issued, SortKey.PAYMENT_STATUS)
        assert [inv.payment_status for inv in result] == ["pending", "partial", "paid"]

    def test_sort_by_total_and_customer(self):
        invoices = [
            make_invoice("A", total="950.00", customer="Zeta"),
            make_invoice("B", total="1200.50", customer="Alfa"),
        ]
        assert ncfs(sort_invoices(invoices, SortKey.TOTAL_AMOUNT, SortDirection.DESC)) == ["B", "A"]
        assert ncfs(sort_invoices(invoices, SortKey.CUSTOMER)) == ["B", "A"]

    def test_search_by_ncf_or_customer(self, sample_invoices):
        assert ncfs(search_invoices(sample_invoices, "hotel")) == ["B0100000001"]
        assert ncfs(search_invoices(sample_invoices, "00000005")) == ["B0100000005"]
        assert len(search_invoices(sample_invoices, "")) == 5

    def test_pagination_thirty_per_page(self):
        invoices = [make_invoice(f"B01{i:08d}") for i in range(65)]
        assert total_pages(len(invoices)) == 3
        assert len(paginate(invoices, 1)) == 30
        assert len(paginate(invoices, 3)) == 5
        assert total_pages(0) == 0


# ===== TESTS DE ESTADÍSTICAS Y FORMATO =====

class TestStatsAndFormatting:
    """Tests para estadísticas mensuales, títulos y montos"""

    def test_monthly_stats(self, sample_invoices):
        stats = compute_monthly_stats(sample_invoices, TODAY)

        assert stats.month_start == date(2026, 10, 1)
        assert stats.issued.count == 2
        assert stats.paid.count == 1
        assert stats.pending.count == 1
        assert stats.voided.count == 1
        assert stats.draft.count == 1
        assert stats.issued.total == Decimal("200.00")

    def test_top_three_products(self):
        invoices = [
            make_invoice("A", items=[("Cloro", "500.00"), ("Jabón", "100.00")]),
            make_invoice("B", items=[("Desengrasante", "300.00"), ("Jabón", "150.00"), ("Cera", "50.00")]),
        ]
        stats = compute_monthly_stats(invoices, TODAY)
        assert [(p.name, p.total) for p in stats.top_products] == [
            ("Cloro", Decimal("500.00")),
            ("Desengrasante", Decimal("300.00")),
            ("Jabón", Decimal("250.00")),
        ]

    def test_describe_filter(self):
        assert describe_filter(None, None, TODAY) == "Facturas Emitidas"
        assert describe_filter(FilterCategory.MONTH, None, TODAY) == "Facturas Emitidas de octubre"
        assert describe_filter(FilterCategory.PAID, None, TODAY) == "Facturas Cobradas de octubre"
        assert describe_filter(FilterCategory.PENDING, None, TODAY) == "Facturas por Cobrar de octubre"
        assert describe_filter(FilterCategory.DRAFT, None, TODAY) == "Borradores de Facturas"
        assert describe_filter(FilterCategory.VOIDED, None, TODAY) == "Facturas Anuladas"
        assert describe_filter(FilterCategory.HISTORY, None, TODAY) == "Historial de Facturas"

    def test_describe_date_range_wins(self):
        date_range = DateRange(start_date=date(2026, 10, 1), end_date=date(2026, 10, 15))
        assert describe_filter(FilterCategory.HISTORY, date_range, TODAY) == "Facturas del 01/10/2026 al 15/10/2026"

    def test_format_currency(self):
        assert format_currency(Decimal("1234.56")) == "RD$1,234.56"
        assert format_currency(0) == "RD$0.00"
        assert format_currency(None) == "RD$0.00"
        assert format_currency("1234567.5") == "RD$1,234,567.50"


# ===== TESTS DEL ESTADO DEL LISTADO =====

class TestInvoiceListView:
    """Tests para InvoiceListView"""

    def make_view(self, invoices=()):
        view = InvoiceListView(today=lambda: TODAY)
        view.complete_load(view.begin_load(), invoices)
        return view

    def test_stale_load_discarded(self, sample_invoices):
        view = InvoiceListView(today=lambda: TODAY)
        first = view.begin_load()
        second = view.begin_load()

        assert view.complete_load(second, sample_invoices[:2]) is True
        assert view.complete_load(first, sample_invoices) is False
        assert len(view.invoices) == 2
        assert view.loading is False

    def test_failed_load_keeps_previous_data(self, sample_invoices):
        view = self.make_view(sample_invoices)
        token = view.begin_load()
        error = RuntimeError("sin conexión")

        assert view.fail_load(token, error) is True
        assert len(view.invoices) == 5
        assert view.last_error is error
        assert view.loading is False

    def test_toggle_filter_twice_clears_it(self, sample_invoices):
        view = self.make_view(sample_invoices)
        view.toggle_filter(FilterCategory.DRAFT)
        assert view.active_filter == FilterCategory.DRAFT
        view.toggle_filter(FilterCategory.DRAFT)
        assert view.active_filter is None

    def test_toggle_filter_resets_page_and_date_range(self, sample_invoices):
        view = self.make_view(sample_invoices)
        view.set_date_range(date(2026, 10, 1), date(2026, 10, 31))
        view.page = 2

        view.toggle_filter(FilterCategory.PAID)

        assert view.page == 1
        assert view.date_range is None

    def test_history_keeps_date_range(self, sample_invoices):
        view = self.make_view(sample_invoices)
        view.set_date_range(date(2026, 10, 1), date(2026, 10, 31))
        view.toggle_filter(FilterCategory.HISTORY)

        assert view.date_range is not None
        assert view.description == "Facturas del 01/10/2026 al 31/10/2026"

    def test_date_range_clears_category(self, sample_invoices):
        view = self.make_view(sample_invoices)
        view.toggle_filter(FilterCategory.VOIDED)
        view.set_date_range(date(2026, 10, 1), date(2026, 10, 31))
        assert view.active_filter is None

    def test_partial_date_range_is_ignored(self, sample_invoices):
        view = self.make_view(sample_invoices)
        view.set_date_range(date(2026, 10, 1), None)
        assert view.date_range is None
        assert len(view.rows) == 4

    def test_toggle_sort(self):
        view = self.make_view()
        view.toggle_sort(SortKey.STATUS)
        assert view.sort_direction == SortDirection.DESC
        view.toggle_sort(SortKey.STATUS)
        assert view.sort_direction == SortDirection.ASC
        view.toggle_sort(SortKey.NCF)
        assert (view.sort_key, view.sort_direction) == (SortKey.NCF, SortDirection.ASC)

    def test_search_resets_page_and_narrows_rows(self, sample_invoices):
        view = self.make_view(sample_invoices)
        view.page = 3
        view.set_search("supermercado")

        assert view.page == 1
        assert ncfs(view.visible_rows) == ["B0100000005"]
        assert len(view.rows) == 4

    def test_set_page_is_clamped(self, sample_invoices):
        view = self.make_view(sample_invoices)
        view.set_page(10)
        assert view.page == 1


# ===== TESTS DE LA API =====

@pytest.fixture
def billing(register_user, headers_for, reference_data):
    """Admin y usuario en quimicinter, con cliente y productos."""
    register_user("admin@quimicinter.do", metadata={"schema_name": "quimicinter", "full_name": "Admin"})
    register_user("ventas@quimicinter.do", metadata={"schema_name": "quimicinter", "full_name": "Ventas"})
    refs = reference_data("quimicinter")
    return SimpleNamespace(
        admin=headers_for("admin@quimicinter.do", "quimicinter"),
        user=headers_for("ventas@quimicinter.do", "quimicinter"),
        **refs
    )


def invoice_payload(billing, **overrides):
    payload = {
        "customer_id": billing.customer_id,
        "items": [
            {"product_id": billing.cleaner_id, "quantity": "2"},
            {"product_id": billing.soap_id, "quantity": "1"},
        ],
    }
    payload.update(overrides)
    return payload


def create_invoice(client, billing, headers=None, **overrides):
    response = client.post("/invoices", json=invoice_payload(billing, **overrides), headers=headers or billing.user)
    assert response.status_code == 201, response.text
    return response.json()


class TestInvoiceCreation:
    """Tests para creación y edición de facturas"""

    def test_create_assigns_ncf_and_totals(self, client, billing):
        data = create_invoice(client, billing)

        assert data["ncf"] == "B0100000001"
        assert data["status"] == "draft"
        assert data["payment_status"] == "pending"
        assert Decimal(data["subtotal"]) == Decimal("620.50")
        assert Decimal(data["tax_amount"]) == Decimal("111.69")
        assert Decimal(data["total_amount"]) == Decimal("732.19")
        assert [item["product"]["name"] for item in data["items"]] == ["Desengrasante Industrial", "Jabón Líquido"]

    def test_ncf_sequence_increments(self, client, billing):
        create_invoice(client, billing)
        second = create_invoice(client, billing)
        assert second["ncf"] == "B0100000002"

    def test_custom_unit_price(self, client, billing):
        data = create_invoice(client, billing, items=[
            {"product_id": billing.cleaner_id, "quantity": "1", "unit_price": "200.00"}
        ])
        assert Decimal(data["subtotal"]) == Decimal("200.00")
        assert Decimal(data["total_amount"]) == Decimal("236.00")

    def test_unknown_customer_rejected(self, client, billing):
        payload = invoice_payload(billing, customer_id=billing.cleaner_id)
        response = client.post("/invoices", json=payload, headers=billing.user)
        assert response.status_code == 400

    def test_empty_items_rejected(self, client, billing):
        response = client.post("/invoices", json=invoice_payload(billing, items=[]), headers=billing.user)
        assert response.status_code == 422

    def test_due_date_before_issue_date_rejected(self, client, billing):
        payload = invoice_payload(billing, issue_date="2026-10-10", due_date="2026-10-01")
        response = client.post("/invoices", json=payload, headers=billing.user)
        assert response.status_code == 422

    def test_update_draft_replaces_items(self, client, billing):
        invoice = create_invoice(client, billing)
        response = client.patch(
            f"/invoices/{invoice['id']}",
            json={"notes": "Entregar en almacén", "items": [{"product_id": billing.soap_id, "quantity": "4"}]},
            headers=billing.user
        )

        assert response.status_code == 200
        data = response.json()
        assert data["notes"] == "Entregar en almacén"
        assert len(data["items"]) == 1
        assert Decimal(data["subtotal"]) == Decimal("482.00")

    def test_update_rejects_null_issue_date(self, client, billing):
        with_due = create_invoice(client, billing, issue_date="2026-10-01", due_date="2026-10-30")
        without_due = create_invoice(client, billing, issue_date="2026-10-01")

        for invoice in (with_due, without_due):
            response = client.patch(f"/invoices/{invoice['id']}", json={"issue_date": None}, headers=billing.user)
            assert response.status_code == 422

            current = client.get(f"/invoices/{invoice['id']}", headers=billing.user).json()
            assert current["issue_date"] == "2026-10-01"

    def test_update_rejects_null_customer_and_items(self, client, billing):
        invoice = create_invoice(client, billing)

        for payload in ({"customer_id": None}, {"items": None}):
            response = client.patch(f"/invoices/{invoice['id']}", json=payload, headers=billing.user)
            assert response.status_code == 422

    def test_update_due_date_before_stored_issue_date(self, client, billing):
        invoice = create_invoice(client, billing, issue_date="2026-10-10")
        response = client.patch(f"/invoices/{invoice['id']}", json={"due_date": "2026-10-01"}, headers=billing.user)
        assert response.status_code == 400

    def test_update_issued_rejected(self, client, billing):
        invoice = create_invoice(client, billing)
        client.post(f"/invoices/{invoice['id']}/issue", headers=billing.user)

        response = client.patch(f"/invoices/{invoice['id']}", json={"notes": "x"}, headers=billing.user)
        assert response.status_code == 400

    def test_requires_authentication(self, client, billing):
        response = client.get("/invoices", headers={"x-schema-name": "quimicinter"})
        assert response.status_code in (401, 403)


class TestNcfSequence:
    """Tests para la secuencia de comprobantes fiscales"""

    def test_fresh_tenant_starts_at_one(self, tenant_session):
        service = InvoiceService(tenant_session("qalinkforce"))

        assert service.next_ncf() == "B0100000001"
        assert service.next_ncf() == "B0100000002"

    def test_existing_sequence_row_is_reused(self, tenant_session):
        seed = tenant_session("quimicinter")
        seed.add(NcfSequence(prefix="B01", current_number=41))
        seed.commit()

        db = tenant_session("quimicinter")
        assert InvoiceService(db).next_ncf() == "B0100000042"
        db.commit()

        assert tenant_session("quimicinter").query(NcfSequence).one().current_number == 42


class TestInvoiceLifecycle:
    """Tests para emisión, anulación, estado de pago y eliminación"""

    def test_issue_draft(self, client, billing):
        invoice = create_invoice(client, billing)
        response = client.post(f"/invoices/{invoice['id']}/issue", headers=billing.user)

        assert response.status_code == 200
        assert response.json()["status"] == "issued"
        assert client.post(f"/invoices/{invoice['id']}/issue", headers=billing.user).status_code == 400

    def test_void_requires_admin(self, client, billing):
        invoice = create_invoice(client, billing)

        assert client.post(f"/invoices/{invoice['id']}/void", headers=billing.user).status_code == 403

        response = client.post(f"/invoices/{invoice['id']}/void", headers=billing.admin)
        assert response.status_code == 200
        assert response.json()["status"] == "voided"

    def test_void_twice_rejected(self, client, billing):
        invoice = create_invoice(client, billing)
        client.post(f"/invoices/{invoice['id']}/issue", headers=billing.user)
        client.post(f"/invoices/{invoice['id']}/void", headers=billing.admin)

        assert client.post(f"/invoices/{invoice['id']}/void", headers=billing.admin).status_code == 400

    def test_payment_status_only_for_issued(self, client, billing):
        invoice = create_invoice(client, billing)
        url = f"/invoices/{invoice['id']}/payment-status"

        assert client.patch(url, json={"payment_status": "paid"}, headers=billing.user).status_code == 400

        client.post(f"/invoices/{invoice['id']}/issue", headers=billing.user)
        response = client.patch(url, json={"payment_status": "paid"}, headers=billing.user)
        assert response.status_code == 200
        assert response.json()["payment_status"] == "paid"

    def test_delete_requires_confirmation(self, client, billing):
        invoice = create_invoice(client, billing)

        assert client.delete(f"/invoices/{invoice['id']}", headers=billing.user).status_code == 400
        assert client.delete(f"/invoices/{invoice['id']}?confirm=true", headers=billing.user).status_code == 204
        assert client.get(f"/invoices/{invoice['id']}", headers=billing.user).status_code == 404

    def test_delete_issued_rejected(self, client, billing):
        invoice = create_invoice(client, billing)
        client.post(f"/invoices/{invoice['id']}/issue", headers=billing.user)

        response = client.delete(f"/invoices/{invoice['id']}?confirm=true", headers=billing.user)
        assert response.status_code == 400


class TestInvoiceListing:
    """Tests para el listado, estadísticas y exportación por API"""

    def test_default_list_excludes_voided(self, client, billing):
        kept = create_invoice(client, billing)
        voided = create_invoice(client, billing)
        client.post(f"/invoices/{voided['id']}/void", headers=billing.admin)

        data = client.get("/invoices", headers=billing.user).json()

        assert [inv["ncf"] for inv in data["invoices"]] == [kept["ncf"]]
        assert data["description"] == "Facturas Emitidas"
        assert data["page_size"] == 30

    def test_category_and_search(self, client, billing):
        first = create_invoice(client, billing)
        create_invoice(client, billing)
        client.post(f"/invoices/{first['id']}/issue", headers=billing.user)
        client.patch(f"/invoices/{first['id']}/payment-status", json={"payment_status": "paid"}, headers=billing.user)

        paid = client.get("/invoices?category=paid", headers=billing.user).json()
        assert [inv["ncf"] for inv in paid["invoices"]] == ["B0100000001"]

        found = client.get("/invoices?search=0000002", headers=billing.user).json()
        assert [inv["ncf"] for inv in found["invoices"]] == ["B0100000002"]

    def test_date_range_listing(self, client, billing):
        create_invoice(client, billing, issue_date="2026-09-01")
        create_invoice(client, billing, issue_date="2026-10-01")

        data = client.get(
            "/invoices?date_from=2026-10-01&date_to=2026-10-31&category=history",
            headers=billing.user
        ).json()

        assert [inv["ncf"] for inv in data["invoices"]] == ["B0100000002"]
        assert data["description"] == "Facturas del 01/10/2026 al 31/10/2026"

    def test_monthly_stats_endpoint(self, client, billing):
        invoice = create_invoice(client, billing, issue_date=date.today().isoformat())
        client.post(f"/invoices/{invoice['id']}/issue", headers=billing.user)

        data = client.get("/invoices/stats", headers=billing.user).json()

        assert data["issued"]["count"] == 1
        assert data["pending"]["count"] == 1
        assert data["top_products"][0]["name"] == "Desengrasante Industrial"

    def test_export_csv(self, client, billing):
        create_invoice(client, billing)
        create_invoice(client, billing)

        response = client.get("/invoices/export?sort_key=ncf&sort_direction=desc", headers=billing.user)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.strip().splitlines()
        assert lines[0] == "NCF,Cliente,Fecha,Estado,Estado de pago,Subtotal,ITBIS,Total"
        assert lines[1].startswith("B0100000002,Hotel Caribe S.A.")
        assert len(lines) == 3


class TestInvoiceDocuments:
    """Tests para PDF y envío por email"""

    def test_pdf_download(self, client, billing):
        invoice = create_invoice(client, billing)
        response = client.get(f"/invoices/{invoice['id']}/pdf", headers=billing.user)

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert "factura-B0100000001.pdf" in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")

    def test_send_email_to_customer(self, client, billing, celery_delay):
        invoice = create_invoice(client, billing)
        response = client.post(
            f"/invoices/{invoice['id']}/send-email",
            json={"message": "Gracias por su compra"},
            headers=billing.user
        )

        assert response.status_code == 200
        assert response.json()["status"] == "queued"
        assert response.json()["task_id"] == "task-123"

        celery_delay.assert_called_once()
        kwargs = celery_delay.call_args.kwargs
        assert kwargs["to_email"] == "compras@hotelcaribe.do"
        assert kwargs["pdf_filename"] == "factura-B0100000001.pdf"
        assert kwargs["custom_message"] == "Gracias por su compra"
        assert kwargs["invoice_data"]["total_amount"] == "RD$732.19"

    def test_send_email_explicit_recipient(self, client, billing, celery_delay):
        invoice = create_invoice(client, billing)
        client.post(
            f"/invoices/{invoice['id']}/send-email",
            json={"to_email": "contabilidad@hotelcaribe.do"},
            headers=billing.user
        )
        assert celery_delay.call_args.kwargs["to_email"] == "contabilidad@hotelcaribe.do"

    def test_send_email_without_recipient(self, client, billing, tenant_session, celery_delay):
        db = tenant_session("quimicinter")
        customer = Customer(full_name="Colmado Sin Correo")
        db.add(customer)
        db.commit()

        invoice = create_invoice(client, billing, customer_id=str(customer.id))
        response = client.post(f"/invoices/{invoice['id']}/send-email", json={}, headers=billing.user)

        assert response.status_code == 400
        celery_delay.assert_not_called()


class TestTenantIsolation:
    """Las facturas de un tenant no son visibles desde otro"""

    def test_invoices_scoped_to_tenant(self, client, billing, headers_for, reference_data):
        invoice = create_invoice(client, billing, headers=billing.admin)

        qalinkforce_refs = reference_data("qalinkforce")
        other = headers_for("admin@quimicinter.do", "qalinkforce")

        listed = client.get("/invoices?category=history", headers=other).json()
        assert listed["invoices"] == []
        assert client.get(f"/invoices/{invoice['id']}", headers=other).status_code == 404

        response = client.post(
            "/invoices",
            json={
                "customer_id": qalinkforce_refs["customer_id"],
                "items": [{"product_id": qalinkforce_refs["cleaner_id"], "quantity": "1"}],
            },
            headers=other
        )
        assert response.status_code == 201
        assert response.json()["ncf"] == "B0100000001"

    def test_user_cannot_reach_other_tenant(self, client, billing):
        headers = dict(billing.user)
        headers["x-schema-name"] = "qalinkforce"
        assert client.get("/invoices", headers=headers).status_code == 403
