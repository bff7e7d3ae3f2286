"""
API依赖项 - 服务装配与注入

应用启动时由 lifespan 构建 ServiceContainer 并挂到 app.state，
路由通过 Depends 取用其中的应用服务。
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from application.ports.collaborators import ConfirmationNotifier, StatusSyncPort
from application.ports.payment_gateway import PaymentGateway
from application.services.activation_service import BusinessActivationDispatcher
from application.services.audit_service import AuditService
from application.services.deduplicator import ProcessingDeduplicator
from application.services.payment_admin_service import PaymentAdminService
from application.services.payment_processor import ApprovedPaymentProcessor
from application.services.payment_service import PaymentService
from application.services.reconciliation import ReconciliationWatcher
from application.services.signature import SignatureVerifier
from application.services.status_router import StatusTransitionRouter
from application.services.webhook_service import WebhookService
from core.logging_config import get_logger
from core.settings import PaymentSettings
from infrastructure.external.api_clients import EventsApiStatusSyncClient
from infrastructure.external.notifications.log_notifier import LogConfirmationNotifier
from infrastructure.external.payments import get_payment_gateway
from infrastructure.repositories.file_change_feed import DirectoryChangeFeed
from infrastructure.repositories.file_payment_repository import FilePaymentRecordStore


logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    settings: PaymentSettings
    store: FilePaymentRecordStore
    gateway: PaymentGateway
    status_sync: StatusSyncPort
    notifier: ConfirmationNotifier
    deduplicator: ProcessingDeduplicator
    activation: BusinessActivationDispatcher
    processor: ApprovedPaymentProcessor
    router: StatusTransitionRouter
    webhooks: WebhookService
    watcher: ReconciliationWatcher
    payments: PaymentService
    admin: PaymentAdminService
    audit: AuditService

    async def aclose(self) -> None:
        await self.gateway.aclose()
        close = getattr(self.status_sync, "close", None)
        if callable(close):
            await close()


def _site_base_url(settings: PaymentSettings) -> Optional[str]:
    success = settings.mercadopago.success_url
    if success and success.endswith("/success"):
        return success[: -len("/success")]
    return success


def build_container(
    settings: PaymentSettings,
    *,
    gateway: Optional[PaymentGateway] = None,
    status_sync: Optional[StatusSyncPort] = None,
    notifier: Optional[ConfirmationNotifier] = None,
    activation: Optional[BusinessActivationDispatcher] = None,
) -> ServiceContainer:
    """组装全部应用服务；外部协作方可注入替身（测试/本地联调）"""
    store = FilePaymentRecordStore(settings.storage.data_dir)
    audit = AuditService(
        log_path=settings.storage.audit_log_path,
        high_value_threshold=settings.high_value_threshold,
    )
    gateway = gateway or get_payment_gateway(settings=settings)
    status_sync = status_sync or EventsApiStatusSyncClient(settings.downstream)
    notifier = notifier or LogConfirmationNotifier(_site_base_url(settings))
    activation = activation or BusinessActivationDispatcher()
    deduplicator = ProcessingDeduplicator(default_ttl=settings.reconciliation.dedup_ttl)

    processor = ApprovedPaymentProcessor(
        store,
        activation,
        status_sync,
        notifier,
        audit=audit,
        sync_timeout=settings.downstream.timeout_seconds,
        max_attempts=settings.reconciliation.max_processing_attempts,
    )
    router = StatusTransitionRouter(store, processor, deduplicator, audit=audit)
    webhooks = WebhookService(
        gateway,
        router,
        SignatureVerifier(),
        secret=settings.webhook.secret,
        tolerance_seconds=settings.webhook.tolerance_seconds,
        freshness_mode=settings.webhook.freshness_mode,
        audit=audit,
    )
    watcher = ReconciliationWatcher(
        store,
        DirectoryChangeFeed(settings.storage.data_dir),
        processor,
        deduplicator,
        poll_interval=settings.reconciliation.poll_interval,
        settle_delay=settings.reconciliation.settle_delay,
    )
    mp = settings.mercadopago
    payments = PaymentService(
        gateway,
        store,
        notification_url=mp.notification_url,
        back_urls={"success": mp.success_url, "failure": mp.failure_url, "pending": mp.pending_url},
        default_currency=mp.default_currency,
    )
    logger.info(
        "services_assembled",
        data_dir=str(store.base_path),
        provider=gateway.provider,
        reconciliation_enabled=settings.reconciliation.enabled,
    )
    return ServiceContainer(
        settings=settings,
        store=store,
        gateway=gateway,
        status_sync=status_sync,
        notifier=notifier,
        deduplicator=deduplicator,
        activation=activation,
        processor=processor,
        router=router,
        webhooks=webhooks,
        watcher=watcher,
        payments=payments,
        admin=PaymentAdminService(store),
        audit=audit,
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_webhook_service(request: Request) -> WebhookService:
    return get_container(request).webhooks


def get_payment_service(request: Request) -> PaymentService:
    return get_container(request).payments


def get_admin_service(request: Request) -> PaymentAdminService:
    return get_container(request).admin


def get_watcher(request: Request) -> ReconciliationWatcher:
    return get_container(request).watcher
