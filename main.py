"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import ServiceContainer, build_container
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from api.routes import payment_monitor as monitor_routes
from api.routes import payment_records as records_routes
from api.routes import payments as payments_routes
from api.routes import webhooks as webhook_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import get_logger, configure_logging
from core.response import success_response
from core.settings import payment_settings


# 初始化日志：在入口处显式配置
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理：装配服务、启动/停止对账监控"""
    container: Optional[ServiceContainer] = getattr(app.state, "container", None)
    if container is None:
        container = build_container(payment_settings)
        app.state.container = container

    if container.settings.reconciliation.enabled:
        await container.watcher.start()
    else:
        logger.info("reconciliation_disabled")

    yield

    await container.watcher.stop()
    await container.aclose()
    logger.info("application_shutdown", message="Application shutdown")


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        description="Idempotent payment notification and reconciliation service",
    )
    if container is not None:
        app.state.container = container

    # 中间件（从下往上执行）：RequestID 最先执行，日志依赖 request_id
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(webhook_routes.router, prefix="/api/v1")
    app.include_router(payments_routes.router, prefix="/api/v1")
    app.include_router(records_routes.router, prefix="/api/v1")
    app.include_router(monitor_routes.router, prefix="/api/v1")

    @app.get("/", tags=["Root"])
    async def root():
        """API根路径"""
        return success_response(
            data={"name": settings.PROJECT_NAME, "version": settings.VERSION, "docs": "/docs"},
            message="Welcome",
        )

    @app.get("/health", tags=["Health"])
    async def health_check():
        """健康检查端点"""
        container = getattr(app.state, "container", None)
        watcher = container.watcher.status() if container is not None else None
        return success_response(
            data={
                "status": "healthy",
                "reconciliation_active": bool(watcher and watcher["is_active"]),
            },
            message="OK",
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
