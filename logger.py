import json
import logging
import time
from typing import Callable

from fastapi import Request

logger = logging.getLogger("recaptcha")

# browser noise, not worth a log line
QUIET_ROUTES = {"/favicon.ico"}


def setup_logging(level: str = "INFO") -> logging.Logger:
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger


async def log_middleware(request: Request, call_next: Callable):
    """One JSON line per request: who asked for what, and how it went."""
    if request.url.path in QUIET_ROUTES:
        return await call_next(request)
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(json.dumps({
        "method": request.method,
        "route": request.url.path,
        "client": request.client.host if request.client else None,
        "status": response.status_code,
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
    }))
    return response
