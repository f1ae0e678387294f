"""Patient identifier and name normalization shared across systems."""

import re
from typing import Any, Iterable, Optional

NRIC_PATTERN = re.compile(r"^[STFGM]\d{7}[A-Z]$")
_NRIC_SEPARATORS = re.compile(r"[\s/\-]+")

# Contract/insurer tags Clinic Assist prefixes onto patient names,
# e.g. "TAG AVIVA - TAN AH KOW".
NAME_TAG_TOKENS = (
    "TAG",
    "AVIVA",
    "SINGLIFE",
    "MHC",
    "AIA",
    "AIACLIENT",
    "GE",
    "ALLIANZ",
    "FULLERT",
    "IHP",
    "TOKIOM",
    "ALLIANC",
    "ALLSING",
    "AXAMED",
    "PRUDEN",
)
_TAG_WORD = re.compile(r"\b(?:%s)\b" % "|".join(NAME_TAG_TOKENS))
_LEADING_TAGS = re.compile(
    r"^(?:\s*(?:TAG\s+)?(?:%s)\b\s*)+(?:[|:/-]+\s*)*"
    % "|".join(sorted(NAME_TAG_TOKENS[1:], key=len, reverse=True)),
    re.IGNORECASE,
)


def normalize_nric(value: Any) -> Optional[str]:
    """Collapse separators and upper-case; ``None`` unless it is a valid NRIC/FIN."""
    if value is None:
        return None
    compact = _NRIC_SEPARATORS.sub("", str(value).strip()).upper()
    if not compact or not NRIC_PATTERN.match(compact):
        return None
    return compact


def is_valid_nric(value: Any) -> bool:
    return isinstance(value, str) and bool(NRIC_PATTERN.match(value.strip().upper()))


def normalize_pcno(value: Any) -> Optional[str]:
    """Clinic Assist patient number: digits only, at least four of them."""
    if value is None:
        return None
    digits = re.sub(r"\D", "", str(value).strip())
    if len(digits) < 4:
        return None
    return digits


def normalize_patient_name(value: Any) -> str:
    """Strip pay-type tag prefixes so the name can be used as a search term."""
    name = re.sub(r"\s+", " ", str(value or "")).strip()
    if not name:
        return ""

    upper = name.upper()
    if not any(token in upper for token in NAME_TAG_TOKENS):
        return name

    if "-" in name:
        parts = [p.strip() for p in name.split("-") if p.strip()]
        if len(parts) >= 2:
            prefix = " ".join(parts[:-1]).upper()
            if _TAG_WORD.search(prefix):
                name = parts[-1]

    return _LEADING_TAGS.sub("", name).strip()


def find_identifier(values: Iterable[Any]) -> Optional[str]:
    """Return the first value that normalizes to a valid NRIC/FIN."""
    for value in values:
        if isinstance(value, str):
            nric = normalize_nric(value)
            if nric:
                return nric
    return None
