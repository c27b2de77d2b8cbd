import enum
import re

PINCODE_RE = re.compile(r"^\d{6}$")


class PincodeStatus(str, enum.Enum):
    VALID = "valid"
    INVALID = "invalid"
    # lookup failed, the user may retry; never treated as invalid
    INDETERMINATE = "indeterminate"
