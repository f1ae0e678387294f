"""Medicine line-item cleanup.

Scraped medicine tables mix real drug names with dosage instructions, MC
remarks and table headers. ``is_junk_medicine`` is the single predicate
used both when writing medicines during enhancement and when the
validation gate audits what was written.
"""

import re
from typing import Any, Dict, Iterable, List, Optional, Pattern, Tuple

# (name, pattern) pairs; a medicine name matching any of them is junk.
JUNK_MEDICINE_PATTERNS: Tuple[Tuple[str, Pattern], ...] = (
    ("bare_word_medicine", re.compile(r"^medicines?$", re.IGNORECASE)),
    ("mc_remark", re.compile(r"^unfit\s+for\b", re.IGNORECASE)),
    ("instruction", re.compile(r"^(?:take|apply|use)\s", re.IGNORECASE)),
    ("to_be_taken", re.compile(r"\bto\s+be\s+taken\b", re.IGNORECASE)),
    ("column_header", re.compile(
        r"^(?:item|drug|medicine|description|qty|quantity|price|amount|total)$", re.IGNORECASE)),
    ("numbers_only", re.compile(r"^\d+$")),
    ("currency_only", re.compile(r"^\$?[\d,]+\.?\d*$")),
)

_DOSE_FORM = re.compile(r"(?:tab/s|tablets?|capsules?|cap/s)\b", re.IGNORECASE)
_FREQUENCY = re.compile(r"\b(?:daily|once|twice|bd|tds|after\s+food|before\s+food)\b", re.IGNORECASE)

PROCEDURE_PATTERN = re.compile(
    r"(xray|x-ray|scan|ultrasound|procedure|physio|ecg|injection|dressing|suturing|vaccine)",
    re.IGNORECASE,
)


def junk_reason(name: Any) -> Optional[str]:
    """Name of the first junk heuristic ``name`` trips, or ``None``."""
    text = re.sub(r"\s+", " ", str(name or "")).strip()
    if len(text) < 2:
        return "too_short"
    for reason, pattern in JUNK_MEDICINE_PATTERNS:
        if pattern.search(text):
            return reason
    if _DOSE_FORM.search(text) and _FREQUENCY.search(text):
        return "dosage_instruction"
    return None


def is_junk_medicine(name: Any) -> bool:
    return junk_reason(name) is not None


def is_procedure_item(name: Any) -> bool:
    return bool(PROCEDURE_PATTERN.search(str(name or "")))


def _quantity(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def clean_medicines(items: Iterable[Any]) -> List[Dict[str, Any]]:
    """Drop junk lines and case-insensitive duplicates, keeping first-seen order.

    Items may be ``{"name", "quantity"}`` dicts, objects with ``name`` and
    ``quantity`` attributes, or bare strings.
    """
    cleaned: List[Dict[str, Any]] = []
    seen = set()
    for item in items or []:
        if isinstance(item, dict):
            name, quantity = item.get("name"), item.get("quantity")
        elif isinstance(item, str):
            name, quantity = item, None
        else:
            name, quantity = getattr(item, "name", None), getattr(item, "quantity", None)

        name = re.sub(r"\s+", " ", str(name or "")).strip()
        if is_junk_medicine(name):
            continue
        key = name.lower()
        if key in seen:
            continue
        seen.add(key)
        cleaned.append({"name": name, "quantity": _quantity(quantity)})
    return cleaned


def junk_names(medicines: Iterable[Dict[str, Any]]) -> List[str]:
    names = (str((m or {}).get("name") or "").strip() for m in medicines or [])
    return [n for n in names if n and is_junk_medicine(n)]
