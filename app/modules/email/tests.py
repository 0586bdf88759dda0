"""
Tests para el módulo de Email

Cubren el armado del mensaje con PDF adjunto, el template de factura y la
tarea de Celery ejecutada de forma directa (sin broker).
"""

import base64
import smtplib

import pytest

from app.core.config import settings
from app.modules.email.service import EmailService
from app.modules.email.tasks import EmailDeliveryError, send_invoice_email_task

INVOICE_DATA = {
    "ncf": "B0100000007",
    "issue_date": "18/10/2026",
    "due_date": "17/11/2026",
    "total_amount": "RD$732.19",
    "customer_name": "Hotel Caribe S.A.",
    "company_name": "Quimicinter S.R.L",
}


class TestEmailService:
    """Tests para EmailService"""

    def test_message_with_pdf_attachment(self):
        service = EmailService()
        msg = service.build_message(
            ["compras@hotelcaribe.do"],
            "Factura B0100000007",
            html_content="<p>Hola</p>",
            attachments=[("factura-B0100000007.pdf", b"%PDF-1.4 contenido")]
        )

        assert msg["To"] == "compras@hotelcaribe.do"
        attachments = [part for part in msg.walk() if part.get_filename()]
        assert [part.get_filename() for part in attachments] == ["factura-B0100000007.pdf"]
        assert attachments[0].get_payload(decode=True) == b"%PDF-1.4 contenido"

    def test_attachment_size_limit(self, monkeypatch):
        monkeypatch.setattr(settings, "MAX_EMAIL_ATTACHMENT_SIZE", 10)
        service = EmailService()

        with pytest.raises(ValueError):
            service.build_message(["a@b.do"], "x", attachments=[("grande.pdf", b"0" * 11)])

    def test_send_email_returns_false_on_smtp_error(self, monkeypatch):
        service = EmailService()

        def fail():
            raise smtplib.SMTPConnectError(421, "servicio no disponible")

        monkeypatch.setattr(service, "_create_smtp_connection", fail)
        assert service.send_email(["a@b.do"], "Prueba", text_content="hola") is False

    def test_invoice_template(self):
        html = EmailService().render_template("invoice_email.html", {
            "company_name": "Quimicinter S.R.L",
            "customer_name": "Hotel Caribe S.A.",
            "invoice_number": "B0100000007",
            "invoice_date": "18/10/2026",
            "due_date": None,
            "total_amount": "RD$732.19",
            "custom_message": "Gracias por su compra",
        })

        assert "B0100000007" in html
        assert "RD$732.19" in html
        assert "Gracias por su compra" in html


class TestSendInvoiceEmailTask:
    """Tests para send_invoice_email_task"""

    def test_sends_decoded_pdf(self, monkeypatch):
        sent = {}

        def fake_send(**kwargs):
            sent.update(kwargs)
            return True

        monkeypatch.setattr("app.modules.email.tasks.email_service.send_template_email", fake_send)

        result = send_invoice_email_task(
            to_email="compras@hotelcaribe.do",
            invoice_data=INVOICE_DATA,
            pdf_content_b64=base64.b64encode(b"%PDF-1.4").decode("utf-8"),
            pdf_filename="factura-B0100000007.pdf"
        )

        assert result["status"] == "success"
        assert sent["to_emails"] == ["compras@hotelcaribe.do"]
        assert sent["subject"] == "Factura B0100000007 - Quimicinter S.R.L"
        assert sent["attachments"] == [("factura-B0100000007.pdf", b"%PDF-1.4")]
        assert sent["context"]["total_amount"] == "RD$732.19"

    def test_delivery_failure_raises(self, monkeypatch):
        monkeypatch.setattr(
            "app.modules.email.tasks.email_service.send_template_email",
            lambda **kwargs: False
        )

        with pytest.raises(EmailDeliveryError):
            send_invoice_email_task(
                to_email="compras@hotelcaribe.do",
                invoice_data=INVOICE_DATA,
                pdf_content_b64=base64.b64encode(b"%PDF-1.4").decode("utf-8"),
                pdf_filename="factura-B0100000007.pdf",
                subject="Su factura"
            )
