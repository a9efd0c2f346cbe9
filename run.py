"""
Uvicorn server runner for the webhook service.

Usage:
    python run.py

Environment variables (set in .env file):
    PR_TOKEN=... - Platform API token (required)
    PR_PLATFORM=github - github or gitlab
    LISTEN_ADDR=:8080 - Listen address
    WEBHOOK_SECRET=... - Signature secret (or WEBHOOK_SECRET_FILE)
    TLS_ENABLED=true, TLS_CERT_FILE, TLS_KEY_FILE - Serve HTTPS
    PR_DEBUG=true - Enable debug logging
"""

import sys

import uvicorn

from prbot.config import ConfigurationError, get_settings, get_webhook_settings

if __name__ == "__main__":
    settings = get_settings()
    webhook_settings = get_webhook_settings()

    try:
        settings.validate_for_webhook()
        webhook_settings.validate_settings()
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    host, port = webhook_settings.listen_host_port()
    log_level = "debug" if settings.is_debug else "info"
    scheme = "https" if webhook_settings.tls_enabled else "http"

    print("Starting PR CLI webhook server...")
    print(f"Platform: {settings.platform}")
    print(f"Host: {host}")
    print(f"Port: {port}")
    print(f"Log Level: {log_level}")
    print(f"Async Processing: {webhook_settings.async_processing} ({webhook_settings.worker_count} workers)")
    print(f"Webhook endpoint: {scheme}://{host}:{port}{webhook_settings.webhook_path}")
    print(f"Health endpoint: {scheme}://{host}:{port}{webhook_settings.health_path}")

    tls_options = {}
    if webhook_settings.tls_enabled:
        tls_options = {
            "ssl_certfile": webhook_settings.tls_cert_file,
            "ssl_keyfile": webhook_settings.tls_key_file,
        }

    uvicorn.run(
        "prbot.main:create_app",
        factory=True,
        host=host,
        port=port,
        log_level=log_level,
        access_log=True,
        timeout_keep_alive=120,
        **tls_options,
    )
