import re
from typing import Dict, List, Optional
from email_validator import EmailNotValidError, validate_email
from storefront.location.resolver import is_valid_pincode_format

PHONE_RE = re.compile(r"^(\+91|91)?[6-9]\d{9}$")
_PHONE_NOISE = re.compile(r"[\s\-()]")

MIN_ADDRESS_LENGTH = 10


def clean_phone(phone: Optional[str]) -> str:
    return _PHONE_NOISE.sub("", phone or "")


def is_valid_phone(phone: Optional[str]) -> bool:
    return bool(PHONE_RE.match(clean_phone(phone)))


def is_valid_email(email: Optional[str]) -> bool:
    if not email or not email.strip():
        return False
    try:
        validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def advisory_warnings(phone: Optional[str], email: Optional[str], address: Optional[str],
                      pincode: Optional[str]) -> List[Dict[str, str]]:
    """
    Contact and address problems worth telling the customer about. These never stop an
    order from being placed.
    """
    warnings = []
    if phone and phone.strip() and not is_valid_phone(phone):
        warnings.append({"field": "phone",
                         "message": "Please enter a valid 10-digit Indian mobile number starting with 6-9"})
    if not is_valid_email(email):
        warnings.append({"field": "email", "message": "Please enter a valid email address"})
    if len((address or "").strip()) < MIN_ADDRESS_LENGTH:
        warnings.append({"field": "address", "message": "Address looks too short"})
    if not is_valid_pincode_format(pincode):
        warnings.append({"field": "pincode", "message": "Pincode must be 6 digits"})
    return warnings
