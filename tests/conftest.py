"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os
import tempfile

os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("PAYMENT__WEBHOOK__SECRET", "test-webhook-secret")
os.environ.setdefault("PAYMENT__MERCADOPAGO__ACCESS_TOKEN", "TEST-access-token")
os.environ.setdefault("PAYMENT__STORAGE__DATA_DIR", tempfile.mkdtemp(prefix="payments-"))
os.environ.setdefault("PAYMENT__RECONCILIATION__ENABLED", "false")

import pytest

from core.settings import (
    DownstreamSettings,
    PaymentSettings,
    ReconciliationSettings,
    StorageSettings,
    WebhookSettings,
)
from infrastructure.repositories.file_payment_repository import FilePaymentRecordStore
from tests.support import (
    WEBHOOK_SECRET,
    FakeGateway,
    RecordingActivation,
    RecordingNotifier,
    RecordingStatusSync,
)


@pytest.fixture
def payment_settings(tmp_path) -> PaymentSettings:
    return PaymentSettings(
        webhook=WebhookSettings(secret=WEBHOOK_SECRET, freshness_mode="warn"),
        storage=StorageSettings(data_dir=str(tmp_path / "payments")),
        downstream=DownstreamSettings(timeout_seconds=0.5),
        reconciliation=ReconciliationSettings(enabled=False, poll_interval=0.05, settle_delay=0.0, dedup_ttl=5.0),
    )


@pytest.fixture
def store(payment_settings) -> FilePaymentRecordStore:
    return FilePaymentRecordStore(payment_settings.storage.data_dir)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def status_sync() -> RecordingStatusSync:
    return RecordingStatusSync()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def activation() -> RecordingActivation:
    return RecordingActivation()
