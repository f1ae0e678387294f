"""Pay type to claim portal routing table."""

import enum
import re
from dataclasses import dataclass
from typing import Optional, Pattern, Tuple


class DestinationGroup(str, enum.Enum):
    MHC_ASIA = "MHC_ASIA"
    IHP = "IHP"
    GE = "GE"
    FULLERT = "FULLERT"
    ALLIANCE_MEDINET = "ALLIANCE_MEDINET"


# Sub-systems inside the MHC Asia portal
MHC_NORMAL = "mhc_normal"
AIA_CLINIC = "aia_clinic"

AUTOMATED_GROUPS = frozenset({DestinationGroup.MHC_ASIA})


@dataclass(frozen=True)
class Route:
    pattern: Pattern
    group: DestinationGroup
    portal_label: str
    initial_context: Optional[str] = None

    @property
    def automated(self) -> bool:
        return self.group in AUTOMATED_GROUPS


def _route(pattern: str, group: DestinationGroup, label: str, context: Optional[str] = None) -> Route:
    return Route(re.compile(pattern, re.IGNORECASE), group, label, context)


# Evaluated in order; first match wins.
ROUTING_TABLE: Tuple[Route, ...] = (
    _route(r"^AIA\s*CLIENT\b", DestinationGroup.MHC_ASIA, "AIACLIENT", AIA_CLINIC),
    _route(r"^AIA\b", DestinationGroup.MHC_ASIA, "AIA", AIA_CLINIC),
    _route(r"^MHC\b", DestinationGroup.MHC_ASIA, "MHC", MHC_NORMAL),
    _route(r"^AVIVA\b", DestinationGroup.MHC_ASIA, "AVIVA", MHC_NORMAL),
    _route(r"^SINGLIFE\b", DestinationGroup.MHC_ASIA, "SINGLIFE", MHC_NORMAL),
    _route(r"^IHP\b", DestinationGroup.IHP, "IHP"),
    _route(r"^GE\b", DestinationGroup.GE, "GE"),
    _route(r"^FULLERT(?:ON)?\b", DestinationGroup.FULLERT, "FULLERT"),
    _route(r"^(?:ALLIMED|ALLIANZ|ALLIANCE|ALL)\b", DestinationGroup.ALLIANCE_MEDINET, "ALLIANCE_MEDINET"),
)


def classify(pay_type: Optional[str]) -> Optional[Route]:
    """Return the route for ``pay_type``, or ``None`` if it is not recognized."""
    text = (pay_type or "").strip()
    if not text:
        return None
    for route in ROUTING_TABLE:
        if route.pattern.search(text):
            return route
    return None
