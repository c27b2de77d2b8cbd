import math
import re
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Optional, Union

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

_PRICE_NOISE = re.compile(r"[^\d.\-]")


def now() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    return int(now().timestamp() * 1000)


def build_success(data: Any,
                  trace_id: Optional[str] = None,request_id: Optional[str] = None,) -> Dict[str, Any]:
    return {
        "status": "ok",
        "data": data,
        "error": None,
        "trace_id": trace_id,
        "request_id": request_id,
    }

def build_error(code: Union[str, int] = "UNKNOWN_ERROR",
                details: Optional[Any] = None,
                request_id: Optional[str] = None,
                trace_id: Optional[str] = None) -> Dict[str, Any]:

    return {
        "status": "error",
        "data": None,
        "error": {"code": code, "details": details},
        "trace_id": trace_id,
        "request_id": request_id,
    }

def json_ok(content: Dict[str, Any], status_code: int = 200,headers = None) -> JSONResponse:
    return JSONResponse(jsonable_encoder(content), status_code=status_code,headers=headers)

def json_error(content: Dict[str, Any], status_code: int = 500, headers=None) -> JSONResponse:
    return JSONResponse(jsonable_encoder(content), status_code=status_code, headers=headers)

def success_response(data: Any, status_code: int = 200,headers: Optional[Dict[str, Any]] = None ,
                     trace_id: Optional[str] = None , request_id: Optional[str] = None) -> JSONResponse:
    content = build_success(data, request_id=request_id, trace_id=trace_id)
    return json_ok(content, status_code=status_code,headers=headers)


def finite_or_zero(value: Any) -> float:
    """Coerce to a finite float; None, NaN, inf and junk all become 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        num = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(num) or math.isinf(num):
        return 0.0
    return num


def parse_price(value: Any) -> float:
    """Parse a currency formatted price such as "₹1,299.00" into a number."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return finite_or_zero(value)
    cleaned = _PRICE_NOISE.sub("", str(value))
    if not cleaned or cleaned in ("-", ".", "-."):
        return 0.0
    return finite_or_zero(cleaned)


def round_currency(value: Any) -> int:
    """Round half up to whole currency units (Math.round semantics for positives)."""
    try:
        return int(Decimal(str(finite_or_zero(value))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return 0


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept ISO-8601 strings or epoch milliseconds, return an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(float(value) / 1000, tz=timezone.utc)
    text = str(value).strip()
    if text.isdigit():
        return datetime.fromtimestamp(int(text) / 1000, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
