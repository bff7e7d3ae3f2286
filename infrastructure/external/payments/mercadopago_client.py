"""
Mercado Pago REST adapter over httpx.

- `GET /v1/payments/{id}` returns the canonical payment detail that every
  routing decision is based on.
- `POST /checkout/preferences` creates a checkout preference; the returned
  `init_point` is the payment link.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from application.dtos.payments import CreatePreference, PaymentDetail, PreferenceResult
from core.settings import PaymentSettings, payment_settings
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError


class MercadoPagoClient(BasePaymentClient):
    provider = "mercadopago"

    def __init__(
        self,
        settings: Optional[PaymentSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = settings or payment_settings
        mp = settings.mercadopago
        if not mp.access_token:
            raise RuntimeError("PAYMENT__MERCADOPAGO__ACCESS_TOKEN not configured")
        super().__init__(
            base_url=mp.base_url,
            timeouts=settings.timeouts.model_dump(),
            retry={"max": settings.retry.max, "base": settings.retry.base_backoff},
            headers={"Authorization": f"Bearer {mp.access_token}", "Accept": "application/json"},
            transport=transport,
        )
        self.default_currency = mp.default_currency

    async def fetch_payment_detail(self, payment_id: str) -> PaymentDetail:
        self._log("payment_detail_fetch", payment_id=payment_id)
        data = await self._request("GET", f"/v1/payments/{payment_id}")
        try:
            return PaymentDetail.model_validate(data)
        except ValueError as exc:
            raise PaymentProviderError(
                f"Unexpected payment detail payload: {exc}", provider=self.provider, details={"payment_id": payment_id}
            ) from exc

    async def create_preference(self, req: CreatePreference) -> PreferenceResult:
        body: dict[str, Any] = {
            "items": [
                {
                    "id": f"item_{req.external_reference}",
                    "title": req.title,
                    "description": req.description,
                    "quantity": req.quantity,
                    "unit_price": float(req.unit_price),
                    "currency_id": req.currency_id or self.default_currency,
                }
            ],
            "external_reference": req.external_reference,
            "auto_return": req.auto_return or "approved",
        }
        if req.payer is not None:
            body["payer"] = req.payer.model_dump(exclude_none=True)
        if req.notification_url:
            body["notification_url"] = req.notification_url
        if req.back_urls:
            body["back_urls"] = req.back_urls
        if req.payment_methods:
            body["payment_methods"] = req.payment_methods

        self._log("payment_preference_create", external_reference=req.external_reference)
        data = await self._request(
            "POST",
            "/checkout/preferences",
            json=body,
            headers={"X-Idempotency-Key": f"preference-{req.external_reference}"},
        )
        return PreferenceResult(
            id=str(data.get("id")),
            payment_link=data.get("init_point"),
            sandbox_payment_link=data.get("sandbox_init_point"),
            external_reference=data.get("external_reference") or req.external_reference,
            date_created=data.get("date_created"),
        )
