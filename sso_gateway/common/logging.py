"""
Logging middleware

Logs method, path, duration and status code for every request. Only the path is logged:
query strings carry authorization codes and state tokens.
"""
# mypy: ignore-errors

import os
import sys
import time
import uuid
from collections.abc import Callable
from urllib.parse import urlsplit

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | trace_id={extra[trace_id]} | "
    "{extra[method]} {extra[path]} | {name}:{function}:{line} | {message}"
)


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    One start and one completion line per request.

    Redirects log the target host only: provider URLs carry state tokens and
    encrypted logout payloads in their query strings.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        trace_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.trace_id = trace_id
        log = logger.bind(
            trace_id=trace_id,
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else "unknown",
        )
        log.debug("request.start")

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = time.perf_counter() - started
            log.opt(exception=True).error(f"request.failed duration={elapsed:.3f}s error={type(e).__name__}")
            raise

        elapsed = time.perf_counter() - started
        message = f"request.completed status={response.status_code} duration={elapsed:.3f}s"
        location = response.headers.get("location")
        if location:
            message += f" redirect={urlsplit(location).netloc or 'local'}"

        if response.status_code >= 500:
            log.error(message)
        elif response.status_code >= 400:
            log.warning(message)
        else:
            log.info(message)

        response.headers["X-Trace-Id"] = trace_id
        return response


def setup_logging(level: str = "INFO", log_dir: str | None = "logs"):
    """
    Configure loguru.

    Console output always; rotating files under `log_dir` when it is writable.
    """
    logger.configure(extra={"trace_id": "-", "method": "-", "path": "-", "client": "-"})
    logger.remove()

    logger.add(
        sink=sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "trace_id={extra[trace_id]} | "
            "{extra[method]} {extra[path]} | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        ),
        level=level,
        colorize=True,
    )

    if not log_dir:
        return

    try:
        os.makedirs(log_dir, exist_ok=True)
        logger.add(
            os.path.join(log_dir, "gateway.log"),
            rotation="100 MB",
            retention="30 days",
            compression="zip",
            format=LOG_FORMAT,
            level=level,
        )
        logger.add(
            os.path.join(log_dir, "error.log"),
            rotation="50 MB",
            retention="30 days",
            compression="zip",
            format=LOG_FORMAT,
            level="ERROR",
        )
    except (PermissionError, OSError):
        # read-only filesystem (e.g. container): console only
        pass

    logger.info("Logging configured")
