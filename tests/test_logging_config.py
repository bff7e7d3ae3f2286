import pytest

from core.logging_config import add_service_context, mask_email, redact_sensitive


@pytest.mark.parametrize(
    "value, expected",
    [
        ("buyer@example.com", "b***@example.com"),
        ("x@y.io", "x***@y.io"),
        ("not-an-email", "***"),
        ("@example.com", "***"),
    ],
)
def test_mask_email(value, expected):
    assert mask_email(value) == expected


def test_redact_sensitive_masks_payment_fields():
    event = {
        "event": "payment_confirmation_sent",
        "payer_email": "buyer@example.com",
        "access_token": "APP_USR-123",
        "x-signature": "ts=1,v1=abc",
        "download_link": "https://shop.example/download/PRODUCT_1?token=s3cret&lang=pt",
        "external_reference": "PRODUCT_1",
        "token": None,
    }
    out = redact_sensitive(None, "info", event)
    assert out["payer_email"] == "b***@example.com"
    assert out["access_token"] == "***"
    assert out["x-signature"] == "***"
    assert out["download_link"] == "https://shop.example/download/PRODUCT_1?token=***&lang=pt"
    assert out["external_reference"] == "PRODUCT_1"
    assert out["token"] is None


def test_service_context_does_not_override_bound_values():
    out = add_service_context(None, "info", {"event": "x", "service": "worker"})
    assert out["service"] == "worker"
    assert out["environment"]
