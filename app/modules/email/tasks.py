"""
Tareas asíncronas de Celery para el envío de correos electrónicos.
"""
import base64
import logging
from typing import Dict, Any, Optional
from app.core.celery import celery_app
from app.modules.email.service import email_service

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """El servidor SMTP no aceptó el mensaje."""


@celery_app.task(bind=True, max_retries=3)
def send_invoice_email_task(
    self,
    to_email: str,
    invoice_data: Dict[str, Any],
    pdf_content_b64: str,
    pdf_filename: str,
    custom_message: Optional[str] = None,
    subject: Optional[str] = None
):
    """
    Enviar factura por correo electrónico con PDF adjunto.

    Args:
        to_email: Email del destinatario
        invoice_data: Datos ya formateados de la factura (ncf, fecha, cliente, total)
        pdf_content_b64: Contenido del PDF en base64
        pdf_filename: Nombre del archivo PDF
        custom_message: Mensaje personalizado opcional
        subject: Asunto personalizado opcional
    """
    try:
        pdf_content = base64.b64decode(pdf_content_b64)

        context = {
            "company_name": invoice_data.get("company_name"),
            "customer_name": invoice_data.get("customer_name") or "Cliente",
            "invoice_number": invoice_data.get("ncf", "N/A"),
            "invoice_date": invoice_data.get("issue_date", ""),
            "due_date": invoice_data.get("due_date"),
            "total_amount": invoice_data.get("total_amount", ""),
            "custom_message": custom_message,
        }

        if not subject:
            subject = f"Factura {context['invoice_number']} - {context['company_name']}"

        logger.info(f"Sending invoice email to {to_email} with PDF attachment ({len(pdf_content)} bytes)")

        success = email_service.send_template_email(
            to_emails=[to_email],
            subject=subject,
            template_name="invoice_email.html",
            context=context,
            attachments=[(pdf_filename, pdf_content)]
        )

        if not success:
            raise EmailDeliveryError("Failed to send invoice email")

        return {
            "status": "success",
            "recipient": to_email,
            "ncf": invoice_data.get("ncf")
        }

    except EmailDeliveryError as exc:
        logger.error(f"Invoice email sending failed to {to_email}: {str(exc)}")

        # Retry with exponential backoff
        if self.request.retries < self.max_retries:
            logger.info(f"Retrying invoice email task (attempt {self.request.retries + 1}/{self.max_retries})")
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

        logger.error(f"Invoice email task failed permanently after {self.max_retries} retries")
        return {
            "status": "failed",
            "error": str(exc),
            "recipient": to_email,
            "ncf": invoice_data.get("ncf")
        }
