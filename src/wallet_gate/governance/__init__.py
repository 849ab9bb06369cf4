"""Group grant decisions, coverage, and the group gate."""

from .coverage import covers
from .decision import (
    ALLOW_ALL,
    ALLOW_ALL_FIELDS,
    CertificateRule,
    GrantDecision,
    project,
)
from .group_gate import (
    DeferredBuffer,
    GatePhase,
    GraceTimer,
    GroupGate,
    ReleaseOutcome,
)

__all__ = [
    "covers",
    "project",
    "ALLOW_ALL",
    "ALLOW_ALL_FIELDS",
    "CertificateRule",
    "GrantDecision",
    "DeferredBuffer",
    "GatePhase",
    "GraceTimer",
    "GroupGate",
    "ReleaseOutcome",
]
