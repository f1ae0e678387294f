from .routing import AIA_CLINIC, MHC_NORMAL, ROUTING_TABLE, DestinationGroup, Route, classify
from .submitter import (
    ClaimSubmitter,
    SubmissionPolicy,
    SubmissionResult,
    apply_submission_policy,
    resolve_identifier,
)

__all__ = [
    "AIA_CLINIC",
    "ClaimSubmitter",
    "DestinationGroup",
    "MHC_NORMAL",
    "ROUTING_TABLE",
    "Route",
    "SubmissionPolicy",
    "SubmissionResult",
    "apply_submission_policy",
    "classify",
    "resolve_identifier",
]
