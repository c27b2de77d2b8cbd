import re
from typing import Any, Dict, Iterable, List, Mapping, Optional
from pydantic import ValidationError
from storefront.checkout.models import DeliveryAddress, UserProfile
from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.addresses")

PROFILE_ADDRESS_ID = -1

_TRAILING_PINCODE = re.compile(r"(\d{6})\s*$")


def normalize_address(raw: Mapping[str, Any]) -> DeliveryAddress:
    """Build a DeliveryAddress from a storefront record in either camelCase or snake_case."""
    return DeliveryAddress.model_validate(dict(raw))


def normalize_addresses(records: Iterable[Any]) -> List[DeliveryAddress]:
    addresses = []
    for raw in records or []:
        if not isinstance(raw, Mapping):
            continue
        try:
            addresses.append(normalize_address(raw))
        except ValidationError:
            logger.warning("address.unreadable_record", extra={"address_id": raw.get("id")})
    return addresses


def split_profile_address(text: str) -> Dict[str, str]:
    """
    Split a free text profile address such as "12 MG Road, Indiranagar, Bengaluru, Karnataka 560038".

    The last part carries the state and a trailing 6 digit pincode, the part before it is
    the city, everything earlier is the street line.
    """
    parts = [p.strip() for p in str(text or "").split(",") if p.strip()]
    out = {"address_line1": "", "city": "", "state": "", "pincode": ""}
    if not parts:
        return out

    last = parts[-1]
    match = _TRAILING_PINCODE.search(last)
    if match:
        out["pincode"] = match.group(1)
        last = last[:match.start()].strip(" -")
    if len(parts) == 1:
        out["address_line1"] = last
        return out

    out["state"] = last
    if len(parts) >= 3:
        out["city"] = parts[-2]
        out["address_line1"] = ", ".join(parts[:-2])
    else:
        out["address_line1"] = parts[0]
    return out


def profile_address(profile: Optional[UserProfile]) -> Optional[DeliveryAddress]:
    if profile is None or not profile.address.strip():
        return None
    parts = split_profile_address(profile.address)
    return DeliveryAddress(
        id=PROFILE_ADDRESS_ID,
        recipient_name=profile.display_name,
        phone_number=profile.phone,
        **parts,
    )
