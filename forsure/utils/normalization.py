"""
Canonical forms for phone numbers, emails and street addresses.

The ``normalize_*`` functions feed the hashing layer: two raw values that
mean the same thing must normalize to byte-identical strings, and every
function is idempotent.

``parse_address`` is the richer, uppercase decomposition used for substring
searches against public property records.
"""

import re
from dataclasses import dataclass
from typing import Optional

# Abbreviations applied before hashing (lowercase, whole words)
HASH_ADDRESS_ABBREVIATIONS = {
    "street": "st",
    "avenue": "ave",
    "boulevard": "blvd",
    "drive": "dr",
    "road": "rd",
    "lane": "ln",
    "court": "ct",
    "place": "pl",
    "apartment": "apt",
    "suite": "ste",
}

# USPS-style street suffixes used when searching property records
STREET_ABBREVIATIONS = {
    "STREET": "ST",
    "AVENUE": "AVE",
    "BOULEVARD": "BLVD",
    "DRIVE": "DR",
    "LANE": "LN",
    "ROAD": "RD",
    "COURT": "CT",
    "CIRCLE": "CIR",
    "PLACE": "PL",
    "TERRACE": "TER",
    "HIGHWAY": "HWY",
    "PARKWAY": "PKWY",
    "EXPRESSWAY": "EXPY",
    "FREEWAY": "FWY",
    "TRAIL": "TRL",
    "ALLEY": "ALY",
    "CROSSING": "XING",
    "POINT": "PT",
    "SQUARE": "SQ",
    "RIDGE": "RDG",
    "HOLLOW": "HOLW",
    "HEIGHTS": "HTS",
    "HILL": "HL",
    "HILLS": "HLS",
    "VALLEY": "VLY",
    "VIEW": "VW",
    "VILLAGE": "VLG",
    "ESTATES": "EST",
    "EXTENSION": "EXT",
    "GARDENS": "GDNS",
    "GROVE": "GRV",
    "MANOR": "MNR",
    "MEADOWS": "MDWS",
    "SPRINGS": "SPGS",
    "STATION": "STA",
}

DIRECTION_ABBREVIATIONS = {
    "NORTHEAST": "NE",
    "NORTHWEST": "NW",
    "SOUTHEAST": "SE",
    "SOUTHWEST": "SW",
    "NORTH": "N",
    "SOUTH": "S",
    "EAST": "E",
    "WEST": "W",
}

UNIT_PATTERNS = [
    re.compile(r"\s+(APT|APARTMENT|UNIT|STE|SUITE|FL|FLOOR|RM|ROOM|#)\s*\.?\s*[\w-]+$", re.IGNORECASE),
    re.compile(r"\s+#\s*[\w-]+$", re.IGNORECASE),
]

_HASH_ABBREVIATION_RE = re.compile(
    r"\b(" + "|".join(HASH_ADDRESS_ABBREVIATIONS) + r")\b"
)
_STREET_TYPE_RE = re.compile(
    r"\b(" + "|".join(list(STREET_ABBREVIATIONS) + list(STREET_ABBREVIATIONS.values())) + r")\b",
    re.IGNORECASE,
)
_ZIP_RE = re.compile(r"\b\d{5}(-\d{4})?\b")
US_STATE_CODES = (
    "AL AK AZ AR CA CO CT DE FL GA HI ID IL IN IA KS KY LA ME MD MA MI MN MS MO "
    "MT NE NV NH NJ NM NY NC ND OH OK OR PA RI SC SD TN TX UT VT VA WA WV WI WY DC"
).split()
_STATE_SUFFIX_RE = re.compile(r",\s*(" + "|".join(US_STATE_CODES) + r")\s*(\d{5})?$")


def normalize_phone(phone: str) -> str:
    """Keep digits only."""
    return re.sub(r"\D", "", phone or "")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def normalize_address(address: str) -> str:
    """
    Canonical lowercase address used for hashing.

    Punctuation (``.``, ``,``, ``#``) is stripped and whitespace collapsed
    before the abbreviation table is applied, so a second pass is a no-op.
    """
    normalized = (address or "").lower()
    normalized = re.sub(r"[.,#]", "", normalized)
    normalized = re.sub(r"\s+", " ", normalized).strip()
    return _HASH_ABBREVIATION_RE.sub(
        lambda m: HASH_ADDRESS_ABBREVIATIONS[m.group(1)], normalized
    )


@dataclass
class ParsedAddress:
    """Uppercase decomposition of a free-text address."""

    original: str
    normalized: str
    street: str
    unit: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    street_number: Optional[str] = None
    street_name: Optional[str] = None


def _abbreviate(street: str, table: dict[str, str]) -> str:
    for full, abbr in table.items():
        street = re.sub(rf"\b{full}\b", abbr, street)
    return street


def parse_address(address: str) -> ParsedAddress:
    """
    Split an address into street / unit / city / state / zip.

    Examples:
    - "123 Main Street, Springfield, PA 18901" -> street "123 MAIN ST"
    - "45 North Oak Avenue Apt 2" -> street "45 N OAK AVE", unit "APT 2"
    """
    original = address or ""
    working = original.upper().strip()

    parts = [p.strip() for p in working.split(",")]
    street = parts[0] if parts else ""

    # Only the street segment can carry a unit ("FL 33601" is a state, not a floor)
    unit = None
    for pattern in UNIT_PATTERNS:
        match = pattern.search(street)
        if match:
            unit = match.group(0).strip()
            street = pattern.sub("", street)

    city = parts[1] if len(parts) >= 2 and parts[1] else None
    state = None
    zip_code = None

    if len(parts) >= 3:
        state_zip = re.match(r"^([A-Z]{2})\s*(\d{5}(?:-\d{4})?)?$", parts[2])
        if state_zip:
            state = state_zip.group(1)
            zip_code = state_zip.group(2)
        else:
            state = parts[2] or None

    if city:
        city_zip = re.match(r"^(.+?)\s+([A-Z]{2})\s+(\d{5}(?:-\d{4})?)$", city)
        if city_zip:
            city, state, zip_code = city_zip.group(1), city_zip.group(2), city_zip.group(3)

    street = _abbreviate(street, STREET_ABBREVIATIONS)
    street = _abbreviate(street, DIRECTION_ABBREVIATIONS)
    street = re.sub(r"\s+", " ", street.replace(".", "")).strip()

    number_match = re.match(r"^(\d+(?:-\d+)?(?:\s*[A-Z])?)\s+(.+)$", street)
    street_number = number_match.group(1) if number_match else None
    street_name = number_match.group(2) if number_match else street

    normalized_parts = [street]
    if city:
        normalized_parts.append(city)
    if state:
        normalized_parts.append(f"{state} {zip_code}" if zip_code else state)

    return ParsedAddress(
        original=original,
        normalized=", ".join(normalized_parts),
        street=street,
        unit=unit,
        city=city,
        state=state,
        zip=zip_code,
        street_number=street_number,
        street_name=street_name,
    )


def looks_like_address(query: str) -> bool:
    """Heuristic: leading digit, street-type token, ZIP or trailing state code."""
    trimmed = (query or "").strip()
    if not trimmed:
        return False
    if trimmed[0].isdigit():
        return True
    if _STREET_TYPE_RE.search(trimmed):
        return True
    if _ZIP_RE.search(trimmed):
        return True
    return bool(_STATE_SUFFIX_RE.search(trimmed.upper()))
