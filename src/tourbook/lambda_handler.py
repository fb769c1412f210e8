"""
AWS Lambda entry points for tourbook.

booking_handler and availability_handler sit behind API Gateway,
health_handler backs the operational dashboard and replay_handler is
invoked by the EventBridge schedule from scheduler.py.

Booking event (API Gateway proxy format):
{
    "headers": {"Idempotency-Key": "draft_4f0c..."},
    "requestContext": {"identity": {"sourceIp": "203.0.113.7"}},
    "body": "{\"tourId\": \"old-town\", \"date\": \"2026-11-03\", ...}"
}

Provider credentials are read from Secrets Manager when the
TOURBOOK_SECRET_NAME environment variable is set; everything else comes
from config.json (see config.py).
"""

import json
import os
from dataclasses import replace
from typing import Optional

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from .api.base import BookingClientError
from .api.client_factory import create_client
from .config import AppConfig, ConfigError, load_config
from .monitoring import CRITICAL, AlertPolicy, BookingMonitor
from .offline.queue import OfflineQueue
from .offline.store import DraftStoreError, create_store
from .offline.submitter import BookingSubmitter
from .service import BookingService


LOGGER = structlog.get_logger(__name__)

SECRET_NAME_ENV_VAR = "TOURBOOK_SECRET_NAME"
SECRET_KEYS = ("api_key", "user_id")

# Kept across warm invocations so monitoring and idempotency survive
_config: Optional[AppConfig] = None
_service: Optional[BookingService] = None
_queue: Optional[OfflineQueue] = None


class SecretsError(Exception):
    """Raised when provider credentials cannot be read from Secrets Manager."""


def get_secrets(secret_name: str, region_name: str) -> dict:
    """Retrieve provider credentials from AWS Secrets Manager."""
    client = boto3.client("secretsmanager", region_name=region_name)

    try:
        response = client.get_secret_value(SecretId=secret_name)
        secret = json.loads(response["SecretString"])
    except (ClientError, BotoCoreError, KeyError, json.JSONDecodeError) as e:
        raise SecretsError(f"Failed to retrieve secret {secret_name}: {e}") from e

    return {key: secret[key] for key in SECRET_KEYS if key in secret}


def _load_config() -> AppConfig:
    global _config
    if _config is None:
        config = load_config()
        secret_name = os.environ.get(SECRET_NAME_ENV_VAR)
        if secret_name:
            credentials = get_secrets(secret_name, config.offline.region)
            config = replace(config, provider=replace(config.provider, **credentials))
        _config = config
    return _config


def get_service() -> BookingService:
    global _service
    if _service is None:
        config = _load_config()
        monitor = BookingMonitor(config.monitoring)
        _service = BookingService(
            create_client(config.provider),
            monitor,
            alerts=AlertPolicy(monitor),
        )
    return _service


def get_queue() -> OfflineQueue:
    global _queue
    if _queue is None:
        config = _load_config().offline
        _queue = OfflineQueue(
            create_store(config),
            BookingSubmitter(config.booking_endpoint, timeout=config.submit_timeout_seconds),
        )
    return _queue


def _response(status_code: int, body: dict) -> dict:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def _header(event: dict, name: str) -> Optional[str]:
    for key, value in (event.get("headers") or {}).items():
        if key.lower() == name.lower():
            return value
    return None


def _client_id(event: dict) -> str:
    identity = (event.get("requestContext") or {}).get("identity") or {}
    return identity.get("sourceIp") or "unknown"


def _setup_failure(e: Exception) -> dict:
    LOGGER.error("lambda.setup_failed", error=str(e))
    return _response(500, {"error": "Booking service is not configured"})


def booking_handler(event, context):
    """
    POST /booking.

    Returns:
        dict with statusCode and body
    """
    try:
        payload = json.loads(event.get("body") or "")
    except json.JSONDecodeError:
        return _response(400, {"error": "Request body must be JSON"})
    if not isinstance(payload, dict):
        return _response(400, {"error": "Request body must be a JSON object"})

    try:
        service = get_service()
    except (ConfigError, BookingClientError, SecretsError) as e:
        return _setup_failure(e)

    result = service.create_booking(
        payload,
        idempotency_key=_header(event, "Idempotency-Key"),
        client_id=_client_id(event),
    )
    LOGGER.info("lambda.booking", status_code=result.status_code)
    return _response(result.status_code, result.body)


def availability_handler(event, context):
    """GET /availability?tourId=...&date=YYYY-MM-DD"""
    params = event.get("queryStringParameters") or {}

    try:
        service = get_service()
    except (ConfigError, BookingClientError, SecretsError) as e:
        return _setup_failure(e)

    result = service.check_availability(params.get("tourId"), params.get("date"))
    return _response(result.status_code, result.body)


def health_handler(event, context):
    """Health report; 503 while the verdict is critical."""
    try:
        service = get_service()
    except (ConfigError, BookingClientError, SecretsError) as e:
        return _setup_failure(e)

    report = service.monitor.health_report()
    return _response(503 if report["status"] == CRITICAL else 200, report)


def replay_handler(event, context):
    """Scheduled replay of pending drafts."""
    try:
        queue = get_queue()
        report = queue.replay()
    except (ConfigError, DraftStoreError) as e:
        LOGGER.error("lambda.replay_failed", error=str(e))
        return _response(500, {"error": str(e)})

    return _response(200, {
        "submitted": report.submitted,
        "retained": report.retained,
    })
