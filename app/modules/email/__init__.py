"""
Módulo de email: envío de facturas por correo.
"""

from .service import email_service
from .tasks import send_invoice_email_task

__all__ = [
    'email_service',
    'send_invoice_email_task',
]
