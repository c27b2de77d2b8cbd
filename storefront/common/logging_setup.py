import logging
import sys
import json
import re
from typing import Any, Dict, Optional
from logging.handlers import QueueHandler, QueueListener
from queue import Queue
from storefront.config.app_config import app_config
from storefront.common.constants import request_id_ctx

ENV = getattr(app_config, "ENV", "dev").lower()

SENSITIVE_PATTERNS = [
    r"secret", r"token", r"authorization", r"api_key", r"apikey",
    r"payment_session_id", r"paymentSessionId", r"x-client-secret",
]

# customer contact fields that are masked outside dev
MASKED_FIELDS = ("phone", "email", "customer_phone", "customer_email", "recipient_phone")

_STD_RECORD_ATTRS = {
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
    "created", "msecs", "relativeCreated", "thread", "threadName", "processName",
    "process", "taskName",
}


def sanitize_message_text(msg: str) -> str:
    """Sanitize secrets inside a text message (best-effort)."""
    out = msg
    for p in SENSITIVE_PATTERNS:
        # "secret": "abc" and secret=abc
        out = re.sub(rf'("{p}"\s*:\s*")[^"]+(")', rf'\1[REDACTED]\2', out, flags=re.IGNORECASE)
        out = re.sub(rf'({p}\s*[=:\s]\s*)[\w\-\./]+', rf'\1[REDACTED]', out, flags=re.IGNORECASE)
    return out


def mask_contact(value: Any) -> str:
    val = str(value)
    if "@" in val:
        local, _, domain = val.partition("@")
        return f"{local[:2]}***@{domain}"
    if len(val) > 4:
        return "*" * (len(val) - 4) + val[-4:]
    return "****"


class JSONFormatter(logging.Formatter):
    """Structured JSON formatter for staging / prod"""
    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "env": ENV,
            "service": getattr(app_config, "SERVICE_NAME", "storefront-checkout"),
        }

        rid = request_id_ctx.get()
        if rid:
            log_data["request_id"] = rid

        extra_fields = {}
        for k, v in record.__dict__.items():
            if k in _STD_RECORD_ATTRS or k.startswith("_"):
                continue
            extra_fields[k] = v

        if ENV != "dev":
            for field in MASKED_FIELDS:
                if extra_fields.get(field):
                    extra_fields[field] = mask_contact(extra_fields[field])
        log_data.update(extra_fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if ENV != "dev":
            log_data["message"] = sanitize_message_text(log_data.get("message", ""))

        return json.dumps(log_data, default=str)


class SecurityFilter(logging.Filter):
    """Redact secrets from message text in non-dev environments"""

    def filter(self, record: logging.LogRecord) -> bool:
        if ENV == "dev":
            return True
        try:
            record.msg = sanitize_message_text(record.getMessage())
            record.args = ()
        except Exception:
            pass
        return True


# non-blocking queue based logging, set up once at app startup
_queue_listener: Optional[QueueListener] = None


def setup_logging():

    global _queue_listener

    if ENV in ("prod", "staging"):
        log_level = logging.INFO
    else:
        log_level = logging.DEBUG

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    if _queue_listener is not None:
        _queue_listener.stop()

    q: Queue = Queue(-1)
    qh = QueueHandler(q)

    console_handler = logging.StreamHandler(sys.stdout)
    if ENV != "dev":
        console_handler.setFormatter(JSONFormatter())
        console_handler.addFilter(SecurityFilter())
    else:
        console_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)8s] %(name)s:%(funcName)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

    root.setLevel(log_level)
    root.addHandler(qh)

    _queue_listener = QueueListener(q, console_handler, respect_handler_level=True)
    _queue_listener.start()

    # silence noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING if ENV != "dev" else logging.INFO)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logging.getLogger("storefront.app")


def teardown_logging():
    global _queue_listener
    if _queue_listener is not None:
        _queue_listener.stop()
        _queue_listener = None


class ContextLogger:
    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _with_ctx(self, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        extra = dict(extra or {})
        rid = request_id_ctx.get()
        if rid:
            extra.setdefault("request_id", rid)
        return extra

    def _log(self, level: int, msg: str, *args, **kwargs):
        extra = kwargs.pop("extra", {})
        kwargs["extra"] = {**self._with_ctx(), **(extra or {})}
        kwargs.setdefault("stacklevel", 3)
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, msg, *args, **kwargs)


def get_logger(name: str = "storefront.app") -> ContextLogger:
    return ContextLogger(name)
