"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

from core.settings import PaymentSettings, payment_settings
from application.ports.payment_gateway import PaymentGateway


def get_payment_gateway(provider: Optional[str] = None, settings: Optional[PaymentSettings] = None) -> PaymentGateway:
    name = (provider or "mercadopago").lower()
    if name in {"mercadopago", "mp"}:
        from .mercadopago_client import MercadoPagoClient
        return MercadoPagoClient(settings or payment_settings)
    raise ValueError(f"Unsupported payment provider: {name}")
