"""
service_uptime.py

Status page for a single Kubernetes Service.

Features:
- Resolves a Kubernetes client once at startup (in-cluster config, then kubeconfig).
- On every GET / reads the target Service and its Endpoints.
- Reports how long the Service has existed and how many endpoint addresses are ready.
- Renders every failure as a normal HTML page (always HTTP 200).

Env vars:
- SERVICE_NAME             (default: service-uptime)
- POD_NAMESPACE            (default: service account namespace file, then "default")
- HOST                     (default: 0.0.0.0)
- PORT                     (default: 3000)
- REQUEST_TIMEOUT_SECONDS  (default: 10)
- JSON_LOGS                (default: false)
- LOG_LEVEL                (default: info; one of critical, error, warning, info, debug)
"""

import asyncio
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Union

import kubernetes
import uvicorn
from fastapi import FastAPI
from fastapi.responses import HTMLResponse
from jinja2 import Environment
from kubernetes.client import CoreV1Api, V1Endpoints, V1Service
from kubernetes.client.exceptions import ApiException
from pydantic import field_validator
from pydantic_settings import BaseSettings
from pythonjsonlogger import jsonlogger


logger = logging.getLogger("service_uptime")


# =========================
# Settings
# =========================

SERVICEACCOUNT_NAMESPACE_PATH = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")
DEFAULT_NAMESPACE = "default"

# names accepted by both logging.setLevel and uvicorn
LOG_LEVELS = {"critical", "error", "warning", "info", "debug"}
LOG_LEVEL_ALIASES = {"warn": "warning", "fatal": "critical"}


class UptimeSettings(BaseSettings):
    service_name: str = "service-uptime"
    pod_namespace: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 3000
    request_timeout_seconds: float = 10
    json_logs: bool = False
    log_level: str = "info"

    @field_validator("pod_namespace")
    @classmethod
    def blank_is_unset(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def must_be_known_level(cls, v: str) -> str:
        level = LOG_LEVEL_ALIASES.get(v.strip().lower(), v.strip().lower())
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(LOG_LEVELS)}, got {v!r}")
        return level

    @field_validator("service_name")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("service_name must not be empty")
        return v.strip()


def detect_namespace(
    settings: UptimeSettings,
    path: Path = SERVICEACCOUNT_NAMESPACE_PATH,
) -> str:
    """POD_NAMESPACE, else the mounted service account namespace, else "default"."""
    if settings.pod_namespace:
        return settings.pod_namespace
    try:
        namespace = path.read_text(encoding="utf-8").strip()
    except OSError:
        return DEFAULT_NAMESPACE
    return namespace or DEFAULT_NAMESPACE


# =========================
# Logging
# =========================

class _BelowWarning(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < logging.WARNING


def configure_logging(settings: UptimeSettings) -> None:
    """Info and below go to stdout; warnings and errors go to stderr."""
    if settings.json_logs:
        formatter: logging.Formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "ts", "levelname": "level", "name": "logger"},
        )
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    out = logging.StreamHandler(sys.stdout)
    out.addFilter(_BelowWarning())
    out.setFormatter(formatter)
    err = logging.StreamHandler(sys.stderr)
    err.setLevel(logging.WARNING)
    err.setFormatter(formatter)

    logger.handlers = [out, err]
    logger.setLevel(settings.log_level.upper())
    logger.propagate = False


# =========================
# Cluster client
# =========================

@dataclass(frozen=True)
class Target:
    namespace: str
    name: str


@dataclass(frozen=True)
class ClusterClient:
    """Kubernetes API handle built once at startup, or the reason it could not be built."""

    api: Optional[CoreV1Api] = None
    error: Optional[str] = None


def resolve_cluster_client() -> ClusterClient:
    """Load in-cluster config, falling back to the local kubeconfig. Never raises."""
    try:
        kubernetes.config.load_incluster_config()
    except kubernetes.config.ConfigException:
        try:
            kubernetes.config.load_kube_config()
        except Exception as e:  # noqa: BLE001 - any kubeconfig problem leaves us without a client
            logger.error(f"Failed to create Kubernetes client: {e}")
            return ClusterClient(error=str(e) or None)
    return ClusterClient(api=CoreV1Api())


# =========================
# Status outcomes
# =========================

@dataclass(frozen=True)
class Healthy:
    service_name: str
    uptime: timedelta
    replicas: Optional[int]
    created_at: str
    namespace: str


@dataclass(frozen=True)
class FutureTimestamp:
    created_at: str


@dataclass(frozen=True)
class MissingTimestamp:
    service_name: str


@dataclass(frozen=True)
class ServiceFetchFailed:
    service_name: str
    cause: str


@dataclass(frozen=True)
class ClientUnavailable:
    cause: Optional[str] = None


StatusOutcome = Union[Healthy, FutureTimestamp, MissingTimestamp, ServiceFetchFailed, ClientUnavailable]


# =========================
# Derivation
# =========================

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(ts: datetime) -> datetime:
    """Normalize to an aware UTC datetime; naive values are taken as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def count_ready_addresses(endpoints: V1Endpoints) -> int:
    """Sum ready addresses over all subsets. Missing subsets or addresses count as zero."""
    return sum(len(subset.addresses or []) for subset in endpoints.subsets or [])


async def fetch_replicas(
    api: CoreV1Api,
    target: Target,
    request_timeout: Optional[float] = None,
) -> Optional[int]:
    """
    Count live replicas behind the Service:
    - Endpoints object missing (404) means nothing is published yet: 0.
    - Any other failure means the count is unknown: None.
    """
    try:
        endpoints: V1Endpoints = await asyncio.to_thread(
            api.read_namespaced_endpoints,
            name=target.name,
            namespace=target.namespace,
            _request_timeout=request_timeout,
        )
    except ApiException as e:
        if e.status == 404:
            return 0
        logger.warning(f"Failed to fetch endpoints for service {target.name}: {e}")
        return None
    except Exception as e:  # noqa: BLE001 - transport errors degrade the count only
        logger.warning(f"Failed to fetch endpoints for service {target.name}: {e}")
        return None
    return count_ready_addresses(endpoints)


async def derive_status(
    client: ClusterClient,
    target: Target,
    *,
    now: Optional[datetime] = None,
    request_timeout: Optional[float] = None,
) -> StatusOutcome:
    """Read the Service and its Endpoints and turn them into exactly one outcome."""
    if client.api is None:
        return ClientUnavailable(client.error)

    try:
        svc: V1Service = await asyncio.to_thread(
            client.api.read_namespaced_service,
            name=target.name,
            namespace=target.namespace,
            _request_timeout=request_timeout,
        )
    except Exception as e:  # noqa: BLE001 - every read failure is reported on the page
        return ServiceFetchFailed(target.name, str(e))

    created = svc.metadata.creation_timestamp if svc.metadata else None
    if created is None:
        return MissingTimestamp(target.name)

    created = as_utc(created)
    current = as_utc(now) if now is not None else utc_now()
    if created > current:
        return FutureTimestamp(created.isoformat())

    replicas = await fetch_replicas(client.api, target, request_timeout)
    return Healthy(
        service_name=target.name,
        uptime=current - created,
        replicas=replicas,
        created_at=created.isoformat(),
        namespace=target.namespace,
    )


# =========================
# Rendering
# =========================

_templates = Environment(autoescape=True)

HEALTHY_PAGE = _templates.from_string(
    """<!DOCTYPE html>
<html lang="en">
    <head>
        <meta charset="utf-8" />
        <title>K8s Service Uptime</title>
    </head>
    <body style="font-family: sans-serif; font-size: 32px; margin: 2rem;">
        <div>Hello, Service <strong>{{ name }}</strong> has been up for {{ uptime }}</div>
        <div style="margin-top: 0.5rem;">Replicas alive: <strong>{{ replicas }}</strong></div>
        <div style="margin-top: 1rem; font-size: 18px;">
            Created at {{ created_at }} in namespace <code>{{ namespace }}</code>
        </div>
    </body>
</html>"""
)

ERROR_PAGE = _templates.from_string(
    """<!DOCTYPE html>
<html lang="en">
    <head>
        <meta charset="utf-8" />
        <title>Service Uptime Error</title>
    </head>
    <body style="font-family: sans-serif; font-size: 24px; margin: 2rem; color: #b91c1c;">
        <div>{{ message }}</div>
    </body>
</html>"""
)

CLIENT_UNAVAILABLE_MESSAGE = "Kubernetes client is not available in this environment."


def format_duration(delta: timedelta) -> str:
    """Format a non-negative duration as e.g. "1day 2h 3m 4s", leaving out zero units."""
    total = int(delta.total_seconds())
    if total <= 0:
        return "0s"
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, seconds = divmod(rem, 60)
    parts = [
        f"{value}{unit}"
        for value, unit in (
            (days, "day" if days == 1 else "days"),
            (hours, "h"),
            (minutes, "m"),
            (seconds, "s"),
        )
        if value
    ]
    return " ".join(parts)


def format_replicas(replicas: Optional[int]) -> str:
    return "Unavailable" if replicas is None else str(replicas)


def error_message(outcome: StatusOutcome) -> str:
    """Plain-text message for a failed outcome."""
    if isinstance(outcome, FutureTimestamp):
        return f"Creation timestamp {outcome.created_at} is in the future."
    if isinstance(outcome, MissingTimestamp):
        return f"Service {outcome.service_name} is missing a creationTimestamp."
    if isinstance(outcome, ServiceFetchFailed):
        return f"Unable to fetch Service {outcome.service_name}: {outcome.cause}"
    if isinstance(outcome, ClientUnavailable):
        details = f" Details: {outcome.cause}" if outcome.cause else ""
        return f"{CLIENT_UNAVAILABLE_MESSAGE}{details}"
    raise TypeError(f"not an error outcome: {outcome!r}")


def render_outcome(outcome: StatusOutcome) -> str:
    if isinstance(outcome, Healthy):
        return HEALTHY_PAGE.render(
            name=outcome.service_name,
            uptime=format_duration(outcome.uptime),
            replicas=format_replicas(outcome.replicas),
            created_at=outcome.created_at,
            namespace=outcome.namespace,
        )
    return ERROR_PAGE.render(message=error_message(outcome))


# =========================
# HTTP
# =========================

def create_app(
    client: ClusterClient,
    target: Target,
    request_timeout: Optional[float] = None,
) -> FastAPI:
    """Build the app around one shared, read-only client and target."""
    app = FastAPI(title="Service Uptime", docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/", response_class=HTMLResponse)
    async def service_uptime() -> str:
        outcome = await derive_status(client, target, request_timeout=request_timeout)
        return render_outcome(outcome)

    return app


def main() -> None:
    """Resolve settings and client once, then serve until stopped."""
    settings = UptimeSettings()
    configure_logging(settings)

    target = Target(namespace=detect_namespace(settings), name=settings.service_name)
    client = resolve_cluster_client()
    app = create_app(client, target, settings.request_timeout_seconds)

    logger.info(f"Listening on http://{settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level)


if __name__ == "__main__":
    main()
