import re
from typing import Any, Dict, List, Optional
from storefront.clients.collaborator import StorefrontApiClient
from storefront.common.custom_exceptions import CollaboratorError
from storefront.common.logging_setup import get_logger
from storefront.location.constants import PINCODE_RE, PincodeStatus
from storefront.location.data import CITY_ALIASES, CITY_DIRECTORY

logger = get_logger("storefront.location")

_KEY_NOISE = re.compile(r"[^a-z0-9]+")


def normalize_city_key(token: Any) -> str:
    key = _KEY_NOISE.sub("_", str(token or "").strip().lower()).strip("_")
    return CITY_ALIASES.get(key, key)


def resolve_city(token: Any) -> Optional[Dict[str, Any]]:
    key = normalize_city_key(token)
    entry = CITY_DIRECTORY.get(key)
    if entry is None:
        return None
    return {"key": key, "label": entry["label"], "state": entry["state"], "pincodes": list(entry["pincodes"])}


def cities_for_state(state: Any) -> List[Dict[str, Any]]:
    wanted = str(state or "").strip().lower()
    cities = [
        {"key": key, "label": entry["label"], "state": entry["state"]}
        for key, entry in CITY_DIRECTORY.items()
        if entry["state"].lower() == wanted
    ]
    return sorted(cities, key=lambda c: c["label"])


def is_valid_pincode_format(pincode: Any) -> bool:
    if pincode is None:
        return False
    return bool(PINCODE_RE.match(str(pincode).strip()))


async def check_pincode(client: StorefrontApiClient, pincode: str) -> PincodeStatus:
    """
    Ask the storefront whether a pincode exists.

    Malformed input is INVALID without a lookup. A failed lookup is INDETERMINATE so the
    caller can offer a retry instead of rejecting the address.
    """
    pincode = str(pincode or "").strip()
    if not is_valid_pincode_format(pincode):
        return PincodeStatus.INVALID

    try:
        body = await client.validate_pincode(pincode)
    except CollaboratorError as exc:
        logger.warning("pincode.lookup_failed", extra={"pincode": pincode, "upstream_status": exc.upstream_status})
        return PincodeStatus.INDETERMINATE

    if not isinstance(body, dict):
        return PincodeStatus.INDETERMINATE
    if body.get("status") == "invalid" or body.get("pincode_valid") is False:
        return PincodeStatus.INVALID
    if body.get("status") == "success":
        return PincodeStatus.VALID
    return PincodeStatus.INDETERMINATE
