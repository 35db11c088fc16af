# backend/pestalert/main.py
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import router as api_router
from .clock import SYSTEM_CLOCK, Clock
from .config import Settings, load_settings
from .db_models import make_session_factory
from .dispatcher import AlertDispatcher
from .healthcheck import HealthState, router as health_router
from .history import PestHistoryLookup, StaticPestHistory
from .logging_setup import logger
from .pipeline import PestRiskEngine
from .providers import WeatherGateway
from .registry import SqlSubscriptionRepository, SubscriptionRepository
from .scheduler import JobRunner, register_dispatcher_jobs
from .transport import MessageTransport, OutboxTransport, WebhookTransport


@dataclass
class Services:
    settings: Settings
    health: HealthState
    gateway: WeatherGateway
    engine: PestRiskEngine
    registry: SubscriptionRepository
    transport: MessageTransport
    dispatcher: AlertDispatcher
    runner: JobRunner


def build_transport(settings: Settings) -> MessageTransport:
    if settings.webhook_url:
        logger.info(f"[main] dispatching through webhook {settings.webhook_url}")
        return WebhookTransport(settings.webhook_url, timeout_s=settings.webhook_timeout_s)
    logger.info(f"[main] no webhook configured, writing alerts to {settings.outbox_dir}")
    return OutboxTransport(settings.outbox_dir)


def build_services(
    settings: Optional[Settings] = None,
    clock: Clock = SYSTEM_CLOCK,
    gateway: Optional[WeatherGateway] = None,
    transport: Optional[MessageTransport] = None,
    history: Optional[PestHistoryLookup] = None,
    registry: Optional[SubscriptionRepository] = None,
) -> Services:
    settings = settings or load_settings()
    health = HealthState()
    gateway = gateway or WeatherGateway.from_settings(settings)
    history = history or StaticPestHistory(default_days=settings.default_history_days)
    engine = PestRiskEngine(gateway, history, settings, clock=clock)
    registry = registry or SqlSubscriptionRepository(make_session_factory(settings.database_url))
    transport = transport or build_transport(settings)
    dispatcher = AlertDispatcher(registry, engine, transport, settings, clock=clock, health=health)
    runner = JobRunner(clock=clock, health=health, run_on_start=settings.scheduler.run_on_start)
    register_dispatcher_jobs(runner, dispatcher, settings.scheduler)
    return Services(settings, health, gateway, engine, registry, transport, dispatcher, runner)


def create_app(services: Optional[Services] = None, start_scheduler: bool = True) -> FastAPI:
    services = services or build_services()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_scheduler:
            services.runner.start()
        logger.info("[main] PestAlert engine up")
        yield
        logger.info("[main] shutting down scheduler...")
        await services.runner.shutdown()
        services.gateway.close()

    app = FastAPI(title="PestAlert - Predictive Pest-Risk Alerts", version="1.0", lifespan=lifespan)
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # demo; restrict in prod
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    app.include_router(api_router)
    app.include_router(health_router)

    @app.get("/")
    def root():
        return {"status": "pestalert engine running"}

    return app
