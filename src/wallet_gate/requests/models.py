"""Permission request records and payload normalizers.

The wallet engine invokes its bound callbacks with camelCase payloads
(``requestID``, ``protocolID``...). Each request variant converts such a
payload into an immutable record with ``from_payload``; a payload that is
missing its correlation id or its required discriminant yields ``None`` and
is dropped by the engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Mapping, Optional, Tuple, Union


class RequestKind(str, Enum):
    """Capability stream a request belongs to."""

    BASKET = "basket"
    CERTIFICATE = "certificate"
    PROTOCOL = "protocol"
    SPENDING = "spending"
    GROUP = "group"


# Canonical kind order used when vacuuming and releasing deferred requests.
LIVE_KINDS: Tuple[RequestKind, ...] = (
    RequestKind.BASKET,
    RequestKind.CERTIFICATE,
    RequestKind.PROTOCOL,
    RequestKind.SPENDING,
)


class PermissionType(str, Enum):
    """How a protocol permission request is presented to the user."""

    IDENTITY = "identity"
    PROTOCOL = "protocol"
    RENEWAL = "renewal"
    BASKET = "basket"


def _request_id(payload: Any) -> Optional[str]:
    if not isinstance(payload, Mapping):
        return None
    request_id = payload.get("requestID")
    if request_id is None:
        return None
    request_id = str(request_id).strip()
    return request_id or None


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text else None


@dataclass(frozen=True)
class BasketAccessRequest:
    request_id: str
    originator: str
    basket: Optional[str] = None
    reason: Optional[str] = None
    renewal: bool = False

    kind = RequestKind.BASKET

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["BasketAccessRequest"]:
        request_id = _request_id(payload)
        if request_id is None:
            return None
        return cls(
            request_id=request_id,
            originator=str(payload.get("originator") or ""),
            basket=_optional_str(payload.get("basket")),
            reason=_optional_str(payload.get("reason")),
            renewal=bool(payload.get("renewal", False)),
        )


@dataclass(frozen=True)
class CertificateAccessRequest:
    """
    Request to disclose or use a certificate.

    ``fields`` holds the field names requested; the callback payload carries
    them as the keys of ``certificate.fields``.
    """

    request_id: str
    originator: str
    certificate_type: Optional[str] = None
    fields: FrozenSet[str] = field(default_factory=frozenset)
    verifier: Optional[str] = None
    reason: Optional[str] = None
    renewal: bool = False

    kind = RequestKind.CERTIFICATE

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["CertificateAccessRequest"]:
        request_id = _request_id(payload)
        if request_id is None:
            return None

        certificate = payload.get("certificate")
        if not isinstance(certificate, Mapping):
            certificate = {}

        cert_type = certificate.get("certType", payload.get("certificateType"))
        raw_fields = certificate.get("fields", payload.get("fields"))
        verifier = certificate.get("verifier", payload.get("verifier"))

        if isinstance(raw_fields, Mapping):
            field_names = frozenset(str(name) for name in raw_fields.keys())
        elif isinstance(raw_fields, (list, tuple, set, frozenset)):
            field_names = frozenset(str(name) for name in raw_fields)
        else:
            field_names = frozenset()

        return cls(
            request_id=request_id,
            originator=str(payload.get("originator") or ""),
            certificate_type=_optional_str(cert_type),
            fields=field_names,
            verifier=_optional_str(verifier),
            reason=_optional_str(payload.get("reason")),
            renewal=bool(payload.get("renewal", False)),
        )


def classify_protocol(protocol_name: str, renewal: bool) -> PermissionType:
    """Pick the presentation type for a protocol permission request."""
    if protocol_name == "identity resolution":
        return PermissionType.IDENTITY
    if renewal:
        return PermissionType.RENEWAL
    if "basket" in protocol_name:
        return PermissionType.BASKET
    return PermissionType.PROTOCOL


@dataclass(frozen=True)
class ProtocolAccessRequest:
    request_id: str
    security_level: int
    protocol_id: str
    originator: Optional[str] = None
    counterparty: Optional[str] = None
    reason: Optional[str] = None
    renewal: bool = False
    permission_type: PermissionType = PermissionType.PROTOCOL

    kind = RequestKind.PROTOCOL

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["ProtocolAccessRequest"]:
        request_id = _request_id(payload)
        if request_id is None:
            return None

        protocol_id = payload.get("protocolID")
        if isinstance(protocol_id, (list, tuple)) and len(protocol_id) == 2:
            level, name = protocol_id
        elif isinstance(protocol_id, str):
            level, name = 0, protocol_id
        else:
            return None

        if not isinstance(name, str) or not name:
            return None
        try:
            security_level = int(level)
        except (TypeError, ValueError):
            return None

        renewal = bool(payload.get("renewal", False))
        return cls(
            request_id=request_id,
            security_level=security_level,
            protocol_id=name,
            originator=_optional_str(payload.get("originator")),
            counterparty=_optional_str(payload.get("counterparty")),
            reason=_optional_str(payload.get("reason")),
            renewal=renewal,
            permission_type=classify_protocol(name, renewal),
        )


@dataclass(frozen=True)
class LineItem:
    description: str
    satoshis: int


@dataclass(frozen=True)
class SpendingRequest:
    """Request to authorize spending up to ``authorization_amount`` satoshis."""

    request_id: str
    originator: str
    authorization_amount: int
    line_items: Tuple[LineItem, ...] = ()
    reason: Optional[str] = None
    renewal: bool = False

    kind = RequestKind.SPENDING

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["SpendingRequest"]:
        request_id = _request_id(payload)
        if request_id is None:
            return None

        spending = payload.get("spending")
        if not isinstance(spending, Mapping):
            return None

        satoshis = spending.get("satoshis")
        if isinstance(satoshis, bool) or not isinstance(satoshis, int) or satoshis < 0:
            return None

        line_items = []
        for item in spending.get("lineItems") or []:
            if not isinstance(item, Mapping):
                continue
            amount = item.get("satoshis", 0)
            if isinstance(amount, bool) or not isinstance(amount, int):
                amount = 0
            line_items.append(
                LineItem(description=str(item.get("description") or ""), satoshis=amount)
            )

        return cls(
            request_id=request_id,
            originator=str(payload.get("originator") or ""),
            authorization_amount=satoshis,
            line_items=tuple(line_items),
            reason=_optional_str(payload.get("reason")),
            renewal=bool(payload.get("renewal", False)),
        )


@dataclass(frozen=True)
class GroupRequest:
    """Bundled permission request; ``permissions`` is kept verbatim for the UI."""

    request_id: str
    originator: str
    permissions: Mapping[str, Any] = field(default_factory=dict)
    reason: Optional[str] = None

    kind = RequestKind.GROUP

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["GroupRequest"]:
        request_id = _request_id(payload)
        if request_id is None:
            return None

        permissions = payload.get("permissions")
        if not isinstance(permissions, Mapping):
            return None

        return cls(
            request_id=request_id,
            originator=str(payload.get("originator") or ""),
            permissions=dict(permissions),
            reason=_optional_str(payload.get("reason")),
        )


LiveRequest = Union[
    BasketAccessRequest,
    CertificateAccessRequest,
    ProtocolAccessRequest,
    SpendingRequest,
]
Request = Union[LiveRequest, GroupRequest]

REQUEST_TYPES = {
    RequestKind.BASKET: BasketAccessRequest,
    RequestKind.CERTIFICATE: CertificateAccessRequest,
    RequestKind.PROTOCOL: ProtocolAccessRequest,
    RequestKind.SPENDING: SpendingRequest,
    RequestKind.GROUP: GroupRequest,
}
