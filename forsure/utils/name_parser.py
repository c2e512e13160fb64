"""
Owner / customer name parsing for property record linkage.

Public property rolls list owners as "LAST FIRST MIDDLE" (no comma),
"LAST, FIRST" or with a co-owner joined by "&" ("SMITH JOHN & JANE").
Business owners (LLCs, trusts, estates...) are tagged and never compared
against individuals.
"""

import re
from dataclasses import dataclass
from typing import Optional

NAME_SUFFIXES = ["JR", "SR", "II", "III", "IV", "V", "ESQ", "MD", "PHD", "DDS"]

BUSINESS_INDICATORS = [
    "LLC",
    "L.L.C.",
    "INC",
    "INCORPORATED",
    "CORP",
    "CORPORATION",
    "LP",
    "L.P.",
    "LLP",
    "L.L.P.",
    "TRUST",
    "ESTATE",
    "PARTNERSHIP",
    "ASSOCIATES",
    "HOLDINGS",
    "PROPERTIES",
    "INVESTMENTS",
    "VENTURES",
    "ENTERPRISES",
    "COMPANY",
    "CO",
    "GROUP",
    "FUND",
    "FOUNDATION",
    "ASSOCIATION",
    "BANK",
    "SAVINGS",
    "CREDIT UNION",
    "MORTGAGE",
    "REALTY",
    "REAL ESTATE",
    "DEVELOPMENT",
    "BUILDERS",
    "CONSTRUCTION",
    "MANAGEMENT",
    "SERVICES",
]

# Indicators ending in "." cannot use a trailing \b
_BUSINESS_PATTERNS = [
    re.compile(rf"(?<![\w.]){re.escape(ind)}(?![\w])" if ind.endswith(".") else rf"\b{re.escape(ind)}\b")
    for ind in BUSINESS_INDICATORS
]

NAME_STREET_TYPES = ["ST", "AVE", "BLVD", "DR", "LN", "RD", "CT", "STREET", "AVENUE"]
_NAME_STREET_RE = re.compile(r"\b(" + "|".join(NAME_STREET_TYPES) + r")\b", re.IGNORECASE)
_PHONE_LIKE_RE = re.compile(r"^[\d\s\-().+]+$")
_ZIP_RE = re.compile(r"\b\d{5}(-\d{4})?\b")
_NAME_TOKEN_RE = re.compile(r"^[A-Za-z.,'-]+$")


@dataclass
class ParsedName:
    original: str
    normalized: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    middle_initial: Optional[str] = None
    suffix: Optional[str] = None
    is_business_entity: bool = False
    secondary_name: Optional[str] = None  # co-owner, e.g. "JANE SMITH"


def is_business_entity(name: str) -> bool:
    upper = (name or "").upper()
    return any(pattern.search(upper) for pattern in _BUSINESS_PATTERNS)


def _middle_initial(token: str) -> Optional[str]:
    if len(token) == 1 or (len(token) == 2 and token.endswith(".")):
        return token.replace(".", "")
    return None


def _parse_simple_name(name: str) -> ParsedName:
    """Parse one individual (no "&" co-owner)."""
    working = name.upper().strip()

    suffix = None
    for candidate in NAME_SUFFIXES:
        pattern = re.compile(rf"\b{candidate}\b\.?")
        if pattern.search(working):
            suffix = candidate
            working = pattern.sub("", working).strip()

    first_name = None
    last_name = None
    middle_initial = None

    comma = re.match(r"^([^,]+),\s*(.+)$", working)
    if comma:
        last_part = re.sub(r"\s+", " ", comma.group(1).replace(".", " ")).strip()
        first_part = re.sub(r"\s+", " ", comma.group(2).replace(",", " ")).strip()

        last_words = last_part.split(" ")
        if len(last_words) > 1 and last_words[-1] in NAME_SUFFIXES:
            suffix = last_words.pop()
        last_name = " ".join(last_words) or None

        first_words = first_part.split(" ")
        first_name = first_words[0] or None
        if len(first_words) > 1:
            middle_initial = _middle_initial(first_words[1])
    else:
        working = re.sub(r"\s+", " ", working.replace(".", " ")).strip()
        words = working.split(" ") if working else []
        # Property rolls use "LAST FIRST MIDDLE"
        if len(words) == 1:
            last_name = words[0]
        elif len(words) >= 2:
            last_name = words[0]
            first_name = words[1]
            if len(words) >= 3:
                middle_initial = _middle_initial(words[2])

    normalized = " ".join(p for p in (first_name, last_name, suffix) if p)
    return ParsedName(
        original=name,
        normalized=normalized,
        first_name=first_name,
        last_name=last_name,
        middle_initial=middle_initial,
        suffix=suffix,
    )


def parse_name(name: str) -> ParsedName:
    """
    Parse a property-record style name.

    Examples:
    - "SMITH, JOHN E"      -> first JOHN, last SMITH, middle E
    - "SMITH JOHN"         -> first JOHN, last SMITH
    - "SMITH JR, JOHN"     -> suffix JR
    - "SMITH JOHN & JANE"  -> secondary "JANE SMITH"
    - "SMITH FAMILY TRUST" -> business entity
    """
    original = name or ""
    normalized = original.upper().strip()

    if is_business_entity(normalized):
        return ParsedName(original=original, normalized=normalized, is_business_entity=True)

    secondary_name = None
    co_owner = re.match(r"^(.+?)\s*&\s*(.+)$", normalized)
    if co_owner:
        normalized = co_owner.group(1).strip()
        second = co_owner.group(2).strip()
        if "," not in second and " " not in second:
            primary = _parse_simple_name(normalized)
            secondary_name = f"{second} {primary.last_name}" if primary.last_name else second
        else:
            secondary_name = second

    parsed = _parse_simple_name(normalized)
    parsed.original = original
    parsed.secondary_name = secondary_name
    return parsed


def looks_like_name(query: str) -> bool:
    """Conservative check used to route free-text search to name search."""
    trimmed = (query or "").strip()
    if not trimmed:
        return False
    if trimmed[0].isdigit():
        return False
    if "@" in trimmed:
        return False
    if _PHONE_LIKE_RE.match(trimmed):
        return False
    if _NAME_STREET_RE.search(trimmed):
        return False
    if _ZIP_RE.search(trimmed):
        return False

    words = trimmed.split()
    if 1 <= len(words) <= 4:
        return all(_NAME_TOKEN_RE.match(w) for w in words)
    return False


def calculate_name_similarity(name1: str, name2: str) -> float:
    """
    Heuristic name agreement score in [0, 1].

    Weighted toward surname agreement; this is not a probability.
    """
    p1 = parse_name(name1)
    p2 = parse_name(name2)

    if p1.is_business_entity != p2.is_business_entity:
        return 0.0

    if p1.is_business_entity:
        return 1.0 if p1.normalized == p2.normalized else 0.0

    score = 0.0

    if p1.last_name and p2.last_name:
        if p1.last_name == p2.last_name:
            score += 0.5
        elif p1.last_name.startswith(p2.last_name) or p2.last_name.startswith(p1.last_name):
            score += 0.3

    if p1.first_name and p2.first_name:
        if p1.first_name == p2.first_name:
            score += 0.4
        elif p1.first_name.startswith(p2.first_name) or p2.first_name.startswith(p1.first_name):
            score += 0.2
        elif p1.first_name[0] == p2.first_name[0]:
            score += 0.1

    if p1.suffix and p2.suffix and p1.suffix == p2.suffix:
        score += 0.1

    return round(min(score, 1.0), 2)


def format_name_for_display(name: Optional[str]) -> str:
    if not name:
        return "Unknown"
    words = []
    for word in name.split(" "):
        if word.upper() in NAME_SUFFIXES:
            words.append(word.upper())
        else:
            words.append(word[:1].upper() + word[1:].lower())
    return " ".join(words)
