"""
Indian state names, GST state codes and the special-region set.

State names arrive from the pincode master in many spellings
("Jammu & Kashmir", "JAMMU AND KASHMIR", "Orissa"). Everything is reduced
to the GST state code before two states are compared.
"""
import re
from typing import Optional

from rate_engine.core.exceptions import ValidationError


# GST State Code mapping
GST_STATE_CODES = {
    "01": "Jammu & Kashmir", "02": "Himachal Pradesh", "03": "Punjab",
    "04": "Chandigarh", "05": "Uttarakhand", "06": "Haryana",
    "07": "Delhi", "08": "Rajasthan", "09": "Uttar Pradesh",
    "10": "Bihar", "11": "Sikkim", "12": "Arunachal Pradesh",
    "13": "Nagaland", "14": "Manipur", "15": "Mizoram",
    "16": "Tripura", "17": "Meghalaya", "18": "Assam",
    "19": "West Bengal", "20": "Jharkhand", "21": "Odisha",
    "22": "Chhattisgarh", "23": "Madhya Pradesh", "24": "Gujarat",
    "26": "Dadra & Nagar Haveli and Daman & Diu", "27": "Maharashtra",
    "28": "Andhra Pradesh (Old)", "29": "Karnataka", "30": "Goa",
    "31": "Lakshadweep", "32": "Kerala", "33": "Tamil Nadu",
    "34": "Puducherry", "35": "Andaman & Nicobar Islands",
    "36": "Telangana", "37": "Andhra Pradesh",
    "38": "Ladakh", "97": "Other Territory"
}

# Common spellings not covered by the official names
_STATE_ALIASES = {
    "NEW DELHI": "07",
    "NCT OF DELHI": "07",
    "J AND K": "01",
    "JAMMU KASHMIR": "01",
    "ORISSA": "21",
    "PONDICHERRY": "34",
    "ANDAMAN AND NICOBAR": "35",
    "DAMAN AND DIU": "26",
    "DADRA AND NAGAR HAVELI": "26",
    "UTTARANCHAL": "05",
    "CHATTISGARH": "22",
}

# North-east states, Sikkim, island territories, J&K and Ladakh
SPECIAL_REGION_STATE_CODES = frozenset({
    "01", "11", "12", "13", "14", "15", "16", "17", "18", "31", "35", "38",
})


def normalize_state_name(state: str) -> str:
    """'Jammu & Kashmir ' -> 'JAMMU AND KASHMIR'."""
    value = state.upper().replace("&", " AND ")
    value = re.sub(r"[^A-Z0-9() ]", " ", value)
    return re.sub(r"\s+", " ", value).strip()


# Reverse mapping: normalized state name to code
STATE_TO_CODE = {normalize_state_name(v): k for k, v in GST_STATE_CODES.items()}
STATE_TO_CODE.update(_STATE_ALIASES)


def find_state_code(state: Optional[str]) -> Optional[str]:
    """GST state code for a state name (or code), None if unknown."""
    if not state:
        return None
    raw = state.strip()
    if raw.isdigit():
        code = raw.zfill(2)
        return code if code in GST_STATE_CODES else None
    return STATE_TO_CODE.get(normalize_state_name(raw))


def get_state_code(state: Optional[str]) -> str:
    """GST state code for a state name; raises ValidationError if unknown."""
    code = find_state_code(state)
    if code is None:
        raise ValidationError(
            f"Unknown state '{state}'",
            details={"state": state},
        )
    return code


def is_special_region_state(state: Optional[str]) -> bool:
    return find_state_code(state) in SPECIAL_REGION_STATE_CODES
