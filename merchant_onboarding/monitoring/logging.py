"""
Structured logging configuration.

Log events are JSON documents. Request ids are bound by the API middleware;
service operations bind their name and merchant id with ``log_operation`` so
repository and cache failures deep in a call are attributed to the merchant.
"""
import functools
import inspect
import logging
import sys
from typing import Any, Awaitable, Callable, Dict, TypeVar

import structlog
from pythonjsonlogger import jsonlogger

from merchant_onboarding.config import Settings, get_settings

Processor = Callable[[Any, str, Dict[str, Any]], Dict[str, Any]]
F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def app_context_processor(settings: Settings) -> Processor:
    """Build a processor stamping every event with the application name and environment."""
    app_context = {"app_name": settings.app_name, "app_env": settings.app_env}

    def add_app_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        for key, value in app_context.items():
            event_dict.setdefault(key, value)
        return event_dict

    return add_app_context


def log_operation(func: F) -> F:
    """
    Bind the operation name, and the merchant id when the call has one, to
    every log event emitted while the wrapped coroutine runs.
    """
    signature = inspect.signature(func)

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        arguments = signature.bind_partial(*args, **kwargs).arguments
        context = {"operation": func.__name__}
        if arguments.get("merchant_id"):
            context["merchant_id"] = arguments["merchant_id"]

        with structlog.contextvars.bound_contextvars(**context):
            return await func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure structlog and the root logger for JSON output on stdout.
    """
    settings = settings or get_settings()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            app_context_processor(settings),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
        )
    )
    root_logger.addHandler(handler)

    # Reporter requests and SQL statements only at WARNING unless SQL echo is on
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.log_level,
        agreement_generation=settings.agreement_generation_enabled,
    )
