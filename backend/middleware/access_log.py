"""
HTTP access logging.

Every request gets a request id and a response time header, and is then
offered to a set of category channels. A channel is an append-only log file
with its own line format and a predicate that decides which requests it
skips. Files are rotated by size and old backups are pruned by a daily task.
"""
import asyncio
import logging
import logging.handlers
import random
import resource
import string
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from config import settings

logger = logging.getLogger(__name__)

MAX_LOG_BYTES = 10 * 1024 * 1024
SLOW_REQUEST_MS = 1000
LARGE_RESPONSE_BYTES = 1024 * 1024

SENSITIVE_ENDPOINTS = (
    "/auth/login",
    "/auth/register",
    "/auth/forgot-password",
    "/auth/reset-password",
    "/auth/change-password",
)
BLOOD_BANK_ENDPOINTS = ("/inventory", "/donors", "/campaigns", "/blood-request", "/requests", "/recipients")

PRODUCTION_FORMAT = (
    '{remote_addr} - {user} [{date_clf}] "{method} {url} HTTP/{http_version}" {status} '
    '{content_length} "{referrer}" "{user_agent}" {response_time} {user_role}'
)
ERROR_FORMAT = (
    '{remote_addr} - {user} [{date_clf}] "{method} {url} HTTP/{http_version}" {status} '
    '{content_length} "{referrer}" "{user_agent}"'
)
AUTH_FORMAT = '{real_ip} - {user} [{date_clf}] "{method} {url}" {status} {user_role}'
ADMIN_FORMAT = '{real_ip} - {user} [{date_clf}] "{method} {url}" {status} {content_length} {response_time}'
API_FORMAT = "{date_iso} {real_ip} {method} {url} {status} {response_time} {user} {user_role} {memory_usage}"
SECURITY_FORMAT = '{date_iso} SECURITY {real_ip} {user} ({user_role}) {method} {url} {status} "{user_agent}"'
BLOOD_BANK_FORMAT = "{date_iso} BLOOD_BANK {user} ({user_role}) {method} {url} {status}"
PERFORMANCE_FORMAT = "{date_iso} PERF {method} {url} {status} {response_time} {memory_usage} {content_length}"
DEVELOPMENT_FORMAT = "{method} {url} {status} {content_length} - {response_time} ms {user} ({user_role})"

SkipPredicate = Callable[[dict], bool]


def setup_logging(level: str = settings.LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    for noisy in ("pymongo", "twilio.http_client", "aiosmtplib", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def generate_request_id() -> str:
    alphabet = string.digits + string.ascii_lowercase
    suffix = "".join(random.choices(alphabet, k=9))
    return f"{int(time.time() * 1000)}-{suffix}"


def memory_usage_mb() -> float:
    # ru_maxrss is reported in kilobytes on Linux
    return round(resource.getrusage(resource.RUSAGE_SELF).ru_maxrss / 1024, 2)


def _real_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else "-")


def collect_tokens(request: Request, status_code: int, headers, elapsed_ms: float) -> dict:
    """Values available to channel formats for one finished request."""
    user = getattr(request.state, "user", None)
    now = datetime.now(timezone.utc)
    url = request.url.path + (f"?{request.url.query}" if request.url.query else "")
    content_length = headers.get("content-length", "-") if headers is not None else "-"
    return {
        "remote_addr": request.client.host if request.client else "-",
        "real_ip": _real_ip(request),
        "user": user["id"] if user else "anonymous",
        "user_role": user["role"] if user else "unauthenticated",
        "request_id": getattr(request.state, "request_id", "no-id"),
        "response_time": f"{elapsed_ms:.3f}",
        "response_time_ms": f"{round(elapsed_ms)}ms",
        "memory_usage": f"{memory_usage_mb()}MB",
        "date_clf": now.strftime("%d/%b/%Y:%H:%M:%S +0000"),
        "date_iso": now.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "method": request.method,
        "path": request.url.path,
        "url": url,
        "http_version": request.scope.get("http_version", "1.1"),
        "status": status_code,
        "content_length": content_length,
        "referrer": request.headers.get("referer", "-"),
        "user_agent": request.headers.get("user-agent", "-"),
        "elapsed_ms": elapsed_ms,
    }


class LogChannel:
    def __init__(self, name: str, fmt: str, handler: logging.Handler,
                 skip: Optional[SkipPredicate] = None, filename: Optional[str] = None):
        self.name = name
        self.format = fmt
        self.skip = skip or (lambda tokens: False)
        self.filename = filename

        handler.setFormatter(logging.Formatter("%(message)s"))
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False
        for old in list(self.logger.handlers):
            self.logger.removeHandler(old)
            old.close()
        self.logger.addHandler(handler)

    def write(self, tokens: dict) -> bool:
        if self.skip(tokens):
            return False
        self.logger.info(self.format.format_map(tokens))
        return True

    def close(self):
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()


def _content_length(tokens: dict) -> int:
    try:
        return int(tokens["content_length"])
    except (TypeError, ValueError):
        return 0


class AccessLogger:
    """Factory and registry for the access-log channels under one directory."""

    def __init__(self, log_dir: str = settings.LOG_DIR, namespace: str = "access"):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.namespace = namespace
        self.channels: Dict[str, LogChannel] = {}

    def _file_channel(self, name: str, filename: str, fmt: str, skip: Optional[SkipPredicate] = None) -> LogChannel:
        handler = logging.handlers.WatchedFileHandler(self.log_dir / filename, encoding="utf-8")
        channel = LogChannel(f"{self.namespace}.{name}", fmt, handler, skip, filename)
        self.channels[name] = channel
        return channel

    def production(self) -> LogChannel:
        return self._file_channel("access", "access.log", PRODUCTION_FORMAT)

    def error(self) -> LogChannel:
        return self._file_channel("error", "error.log", ERROR_FORMAT, lambda t: t["status"] < 400)

    def auth(self) -> LogChannel:
        return self._file_channel("auth", "auth.log", AUTH_FORMAT, lambda t: "/auth" not in t["path"])

    def admin(self) -> LogChannel:
        return self._file_channel("admin", "admin.log", ADMIN_FORMAT, lambda t: t["user_role"] != "admin")

    def api(self) -> LogChannel:
        return self._file_channel("api", "api.log", API_FORMAT, lambda t: "/api" not in t["path"])

    def security(self) -> LogChannel:
        return self._file_channel(
            "security", "security.log", SECURITY_FORMAT,
            lambda t: not any(endpoint in t["path"] for endpoint in SENSITIVE_ENDPOINTS),
        )

    def blood_bank(self) -> LogChannel:
        return self._file_channel(
            "blood_bank", "blood-bank.log", BLOOD_BANK_FORMAT,
            lambda t: not any(endpoint in t["path"] for endpoint in BLOOD_BANK_ENDPOINTS),
        )

    def performance(self) -> LogChannel:
        return self._file_channel(
            "performance", "performance.log", PERFORMANCE_FORMAT,
            lambda t: t["elapsed_ms"] < SLOW_REQUEST_MS and _content_length(t) < LARGE_RESPONSE_BYTES,
        )

    def development(self) -> LogChannel:
        channel = LogChannel(
            f"{self.namespace}.development", DEVELOPMENT_FORMAT, logging.StreamHandler(sys.stdout)
        )
        self.channels["development"] = channel
        return channel

    def custom(self, filename: str = "custom.log", fmt: str = "{method} {url} {status} {response_time}",
               skip: Optional[SkipPredicate] = None) -> LogChannel:
        return self._file_channel(f"custom.{Path(filename).stem}", filename, fmt, skip)

    def combined(self) -> List[LogChannel]:
        return [self.production(), self.error(), self.auth(), self.security(), self.blood_bank()]

    def all_channels(self) -> List[LogChannel]:
        return self.combined() + [self.admin(), self.api(), self.performance()]

    def write(self, tokens: dict):
        for channel in list(self.channels.values()):
            channel.write(tokens)

    def channel_files(self) -> List[str]:
        return [channel.filename for channel in self.channels.values() if channel.filename]

    def rotate_log(self, filename: str, max_size: int = MAX_LOG_BYTES) -> Optional[Path]:
        """Rename ``filename`` to a timestamped backup when it exceeds ``max_size`` bytes."""
        path = self.log_dir / filename
        try:
            if path.stat().st_size <= max_size:
                return None
        except FileNotFoundError:
            return None

        stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        backup = self.log_dir / f"{filename}.{stamp.replace(':', '-').replace('.', '-')}.backup"
        path.rename(backup)
        logger.info("Log rotated: %s -> %s", filename, backup.name)
        return backup

    def rotate_all(self, max_size: int = MAX_LOG_BYTES) -> List[Path]:
        rotated = [self.rotate_log(filename, max_size) for filename in self.channel_files()]
        return [path for path in rotated if path]

    def clean_old_logs(self, days_to_keep: int = 30) -> List[str]:
        cutoff = time.time() - days_to_keep * 86400
        removed = []
        for path in self.log_dir.iterdir():
            if ".backup" in path.name and path.is_file() and path.stat().st_mtime < cutoff:
                path.unlink()
                removed.append(path.name)
                logger.info("Cleaned old log file: %s", path.name)
        return removed

    def close(self):
        for channel in self.channels.values():
            channel.close()
        self.channels.clear()


def seconds_until_midnight(now: Optional[datetime] = None) -> float:
    now = now or datetime.now()
    midnight = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return (midnight - now).total_seconds()


async def run_log_rotation(access_logger: AccessLogger,
                           max_size: int = settings.LOG_MAX_BYTES,
                           days_to_keep: int = settings.LOG_RETENTION_DAYS):
    """Rotate every channel file at local midnight, prune old backups, repeat."""
    while True:
        await asyncio.sleep(seconds_until_midnight())
        try:
            access_logger.rotate_all(max_size)
            access_logger.clean_old_logs(days_to_keep)
        except OSError as exc:
            logger.error("Log rotation failed: %s", exc)


class AccessLogMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, access_logger: Optional[AccessLogger] = None):
        super().__init__(app)
        self.access_logger = access_logger

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or generate_request_id()
        request.state.request_id = request_id
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            self._log(request, 500, None, (time.perf_counter() - started) * 1000)
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms:.3f}"
        self._log(request, response.status_code, response.headers, elapsed_ms)
        return response

    def _log(self, request: Request, status_code: int, headers, elapsed_ms: float):
        if self.access_logger is None:
            return
        self.access_logger.write(collect_tokens(request, status_code, headers, elapsed_ms))
