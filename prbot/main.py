import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from prbot.api.routes.webhook import build_router
from prbot.config import VERSION, Settings, WebhookSettings, get_settings, get_webhook_settings
from prbot.webhook.middleware import install_middleware
from prbot.webhook.server import WebhookServer
from prbot.webhook.worker import ClientFactory


def configure_logging(settings: Settings) -> None:
    level = logging.DEBUG if settings.is_debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("prbot").setLevel(level)


def create_app(
    webhook_settings: Optional[WebhookSettings] = None,
    settings: Optional[Settings] = None,
    client_factory: Optional[ClientFactory] = None,
) -> FastAPI:
    webhook_settings = webhook_settings or get_webhook_settings()
    settings = settings or get_settings()
    configure_logging(settings)

    server = WebhookServer(webhook_settings, settings, client_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the worker pool; drain it on shutdown."""
        server.start()
        logging.getLogger("prbot").info(
            f"Webhook server ready on {webhook_settings.webhook_path} "
            f"(async={webhook_settings.async_processing}, workers={webhook_settings.worker_count})"
        )
        yield
        await asyncio.to_thread(server.stop)

    app = FastAPI(
        title="PR CLI Webhook Server",
        description="ChatOps slash commands for GitHub pull requests and GitLab merge requests",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.webhook_server = server
    app.state.rate_limiter = install_middleware(app, webhook_settings)
    app.include_router(build_router(webhook_settings))
    return app
