import contextvars
from typing import Optional

# Context variable for request id, set by RequestIdMiddleware
request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)

CURRENCY = "INR"
USER_ID_HEADER = "X-User-Id"
