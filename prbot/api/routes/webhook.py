"""
Webhook API Routes

POST <webhook_path> accepts GitHub and GitLab deliveries; the health,
readiness and metrics endpoints serve probes and Prometheus.
"""

import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.concurrency import run_in_threadpool

from prbot.config import WebhookSettings
from prbot.webhook import metrics
from prbot.webhook.parser import (
    GITHUB_SIGNATURE_HEADER,
    GITLAB_TOKEN_HEADER,
    SkipEvent,
    detect_platform,
    extract_command,
    is_command_comment,
    parse_comment_event,
    parse_github_pull_request,
)
from prbot.webhook.server import QueueFullError, WebhookServer
from prbot.webhook.validator import (
    InvalidEventError,
    SignatureError,
    is_repository_allowed,
    validate_github_signature,
    validate_gitlab_token,
    validate_webhook_event,
)

logger = logging.getLogger(__name__)


def get_server(request: Request) -> WebhookServer:
    return request.app.state.webhook_server


def _text(body: str, status_code: int = 200) -> PlainTextResponse:
    return PlainTextResponse(body, status_code=status_code)


async def handle_webhook(request: Request):
    """Receive a webhook delivery and dispatch its command."""
    started = time.monotonic()
    server = get_server(request)
    settings = server.webhook_settings
    body = await request.body()

    source = detect_platform(request.headers)
    if source is None:
        logger.warning("Unknown webhook source (missing platform headers)")
        metrics.record_webhook_request("unknown", "unknown", "error")
        return _text("Unknown webhook source", 400)
    platform, event_type, event_id = source
    logger.info(f"Received webhook event {event_id} of type {event_type} from {platform}")

    if settings.require_signature:
        try:
            if platform == "github":
                validate_github_signature(body, request.headers.get(GITHUB_SIGNATURE_HEADER, ""), server.secret)
            else:
                validate_gitlab_token(request.headers.get(GITLAB_TOKEN_HEADER, ""), server.secret)
        except SignatureError as e:
            logger.warning(f"{platform} signature validation failed for {event_id}: {e}")
            metrics.record_webhook_request(platform, event_type, "unauthorized")
            if platform == "github":
                return _text("Signature validation failed", 401)
            return _text("Token validation failed", 401)

    if platform == "github" and event_type == "pull_request":
        return await handle_pull_request(server, body, event_id, event_type, started)

    try:
        event = parse_comment_event(platform, event_type, body)
    except SkipEvent as e:
        logger.debug(f"Webhook parsing skipped: {e}")
        metrics.record_webhook_request(platform, event_type, "skipped")
        return _text(f"OK (skipped: {e})")
    event.event_id = event_id

    try:
        validate_webhook_event(event)
    except InvalidEventError as e:
        logger.warning(f"Invalid webhook event {event_id}: {e}")
        metrics.record_webhook_request(platform, event_type, "invalid")
        return _text(f"Invalid webhook event: {e}", 400)

    if not is_command_comment(event):
        logger.debug(f"Comment does not contain a command: {event.comment.body!r}")
        metrics.record_webhook_request(platform, event_type, "not_command")
        return _text("OK (not a command)")

    repo = event.repository
    if not is_repository_allowed(repo.owner, repo.name, settings.allowed_repos):
        logger.warning(f"Repository not allowed: {repo.full_name}")
        metrics.record_webhook_request(platform, event_type, "forbidden")
        return _text("Repository not allowed", 403)

    logger.info(
        f"Webhook event {event_id}: {repo.full_name}#{event.pull_request.number} "
        f"command={event.comment.body!r} sender={event.sender}"
    )

    if settings.async_processing:
        try:
            server.enqueue(event)
        except QueueFullError:
            logger.error("Job queue is full")
            metrics.record_webhook_request(platform, event_type, "queue_full")
            return _text("Server busy, please try again later", 503)
    else:
        try:
            await run_in_threadpool(server.process_event, event)
        except Exception as e:
            logger.error(f"Failed to process webhook {event_id}: {e}")
            metrics.record_webhook_request(platform, event_type, "error")
            return _text("Failed to process webhook", 500)

    metrics.record_webhook_request(platform, event_type, "success")
    metrics.record_processing_duration(
        platform, extract_command(event.comment.body), time.monotonic() - started
    )
    return _text("OK")


async def handle_pull_request(
    server: WebhookServer, body: bytes, event_id: str, event_type: str, started: float
):
    settings = server.webhook_settings
    platform = "github"
    if not settings.pr_event_enabled:
        logger.debug("pull_request events disabled, skipping")
        metrics.record_webhook_request(platform, event_type, "disabled")
        return _text("OK (pull_request events disabled)")

    try:
        event = parse_github_pull_request(body, settings.pr_event_actions)
    except SkipEvent as e:
        logger.debug(f"PR webhook parsing skipped: {e}")
        metrics.record_webhook_request(platform, event_type, "skipped")
        return _text(f"OK (skipped: {e})")
    event.event_id = event_id

    repo = event.repository
    if not is_repository_allowed(repo.owner, repo.name, settings.allowed_repos):
        logger.warning(f"Repository not allowed: {repo.full_name}")
        metrics.record_webhook_request(platform, event_type, "forbidden")
        return _text("Repository not allowed", 403)

    logger.info(
        f"Received pull_request event {event_id}: {repo.full_name}#{event.pull_request.number} "
        f"action={event.action} sender={event.sender}"
    )
    try:
        await run_in_threadpool(server.handle_pull_request_event, event)
    except Exception as e:
        logger.error(f"Failed to process pull_request event {event_id}: {e}")
        metrics.record_pr_event(platform, event.action, "error")
        return _text("Failed to process pull_request event", 500)

    metrics.record_pr_event(platform, event.action, "success")
    metrics.record_webhook_request(platform, event_type, "success")
    metrics.record_processing_duration(platform, "pull_request", time.monotonic() - started)
    return _text("OK")


async def health(request: Request):
    return JSONResponse(get_server(request).health())


async def readiness(request: Request):
    if not get_server(request).is_ready():
        return _text("Queue nearly full", 503)
    return _text("OK")


async def prometheus_metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def build_router(settings: WebhookSettings) -> APIRouter:
    """Router with the webhook, health and metrics paths from settings."""
    router = APIRouter()
    health_path = settings.health_path.rstrip("/") or "/healthz"
    router.add_api_route(settings.webhook_path, handle_webhook, methods=["POST"], tags=["Webhook"])
    router.add_api_route(health_path, health, methods=["GET"], tags=["Health"])
    router.add_api_route(f"{health_path}/ready", readiness, methods=["GET"], tags=["Health"])
    router.add_api_route(settings.metrics_path, prometheus_metrics, methods=["GET"], tags=["Metrics"])
    return router
