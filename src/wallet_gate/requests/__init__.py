"""Permission request records and per-kind queues."""

from .models import (
    LIVE_KINDS,
    REQUEST_TYPES,
    BasketAccessRequest,
    CertificateAccessRequest,
    GroupRequest,
    LineItem,
    LiveRequest,
    PermissionType,
    ProtocolAccessRequest,
    Request,
    RequestKind,
    SpendingRequest,
    classify_protocol,
)
from .queue import AdvanceEffect, EnqueueEffect, RequestQueue

__all__ = [
    "LIVE_KINDS",
    "REQUEST_TYPES",
    "BasketAccessRequest",
    "CertificateAccessRequest",
    "GroupRequest",
    "LineItem",
    "LiveRequest",
    "PermissionType",
    "ProtocolAccessRequest",
    "Request",
    "RequestKind",
    "SpendingRequest",
    "classify_protocol",
    "AdvanceEffect",
    "EnqueueEffect",
    "RequestQueue",
]
