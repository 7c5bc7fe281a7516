"""
Application services layered over the stock kernel: invoice finalization
and the payment webhook.
"""

from stock_services.invoice_finalization import InvoiceFinalizationHandler
from stock_services.payment_webhook import PaymentWebhookProcessor, WebhookResponse

__all__ = [
    "InvoiceFinalizationHandler",
    "PaymentWebhookProcessor",
    "WebhookResponse",
]
