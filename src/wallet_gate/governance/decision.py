"""Grant decisions materialized from grouped-permission grants.

A ``GrantDecision`` is the normalized form of whatever payload the user
approved in the group permission dialog. Projection is total: a malformed
or partial payload never raises and never widens the decision. The only way
to grant every protocol or every certificate field is an explicit sentinel.
"""

import math
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable, Mapping, Optional, Tuple, Union


class _Sentinel:
    __slots__ = ("_name",)

    def __init__(self, name: str):
        self._name = name

    def __repr__(self) -> str:
        return self._name

    def __reduce__(self):
        return self._name


ALLOW_ALL = _Sentinel("ALLOW_ALL")
ALLOW_ALL_FIELDS = _Sentinel("ALLOW_ALL_FIELDS")

ProtocolGrant = Union[_Sentinel, FrozenSet[str]]
FieldGrant = Union[_Sentinel, FrozenSet[str]]


@dataclass(frozen=True)
class CertificateRule:
    """Granted access to one certificate type."""

    type: str
    fields: FieldGrant = ALLOW_ALL_FIELDS

    def allows_any_field(self) -> bool:
        return self.fields is ALLOW_ALL_FIELDS


@dataclass(frozen=True)
class GrantDecision:
    """
    Normalized group grant.

    Attributes:
        protocols: ALLOW_ALL or the set of granted protocol names
        baskets: Granted basket names
        certificates: One rule per granted certificate type
        spending_ceiling: Inclusive satoshi ceiling (None = no spending granted)
    """

    protocols: ProtocolGrant = field(default_factory=frozenset)
    baskets: FrozenSet[str] = field(default_factory=frozenset)
    certificates: Tuple[CertificateRule, ...] = ()
    spending_ceiling: Optional[int] = None

    @classmethod
    def empty(cls) -> "GrantDecision":
        return cls()

    def allows_all_protocols(self) -> bool:
        return self.protocols is ALLOW_ALL

    def certificate_rule(self, certificate_type: str) -> Optional[CertificateRule]:
        for rule in self.certificates:
            if rule.type == certificate_type:
                return rule
        return None

    def summary(self) -> dict:
        """JSON-friendly view for logs and the audit trail."""
        return {
            "protocols": "all"
            if self.allows_all_protocols()
            else sorted(self.protocols),
            "baskets": sorted(self.baskets),
            "certificates": [
                {
                    "type": rule.type,
                    "fields": "all" if rule.allows_any_field() else sorted(rule.fields),
                }
                for rule in self.certificates
            ],
            "spending_ceiling": self.spending_ceiling,
        }


def _first_present(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def _as_list(value: Any) -> Iterable[Any]:
    if isinstance(value, (list, tuple)):
        return value
    return ()


def _protocol_name(entry: Any) -> Optional[str]:
    if isinstance(entry, str):
        return entry or None
    if isinstance(entry, (list, tuple)):
        if len(entry) > 1 and isinstance(entry[1], str):
            return entry[1] or None
        return None
    if isinstance(entry, Mapping):
        protocol_id = entry.get("protocolID")
        if protocol_id is not None:
            return _protocol_name(protocol_id)
        name = entry.get("name")
        if isinstance(name, str):
            return name or None
    return None


def _project_protocols(granted: Mapping[str, Any]) -> ProtocolGrant:
    if granted.get("allProtocols") is True:
        return ALLOW_ALL
    raw = _first_present(granted, "protocolPermissions", "protocols")
    if isinstance(raw, str) and raw.strip().lower() == "all":
        return ALLOW_ALL
    names = set()
    for entry in _as_list(raw):
        name = _protocol_name(entry)
        if name is not None:
            names.add(name)
    return frozenset(names)


def _project_baskets(granted: Mapping[str, Any]) -> FrozenSet[str]:
    raw = _first_present(granted, "basketAccess", "baskets")
    names = set()
    for entry in _as_list(raw):
        if isinstance(entry, str):
            if entry:
                names.add(entry)
        elif isinstance(entry, Mapping) and isinstance(entry.get("basket"), str):
            if entry["basket"]:
                names.add(entry["basket"])
    return frozenset(names)


def _certificate_fields(raw_fields: Any) -> Optional[FieldGrant]:
    # Absent or empty fields grant any field of this certificate type.
    if raw_fields is None:
        return ALLOW_ALL_FIELDS
    if not isinstance(raw_fields, (list, tuple)):
        return None
    if not raw_fields:
        return ALLOW_ALL_FIELDS
    field_names = frozenset(name for name in raw_fields if isinstance(name, str) and name)
    return field_names or None


def _project_certificates(granted: Mapping[str, Any]) -> Tuple[CertificateRule, ...]:
    raw = _first_present(granted, "certificateAccess", "certificates")
    rules = []
    for entry in _as_list(raw):
        if not isinstance(entry, Mapping):
            continue
        cert_type = _first_present(entry, "type", "certificateType")
        if not isinstance(cert_type, str) or not cert_type:
            continue
        fields = _certificate_fields(entry.get("fields"))
        if fields is None:
            continue
        rules.append(CertificateRule(type=cert_type, fields=fields))
    return tuple(rules)


def _satoshis(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        if not math.isfinite(value) or value < 0:
            return None
        return int(value)
    return None


def _project_spending(granted: Mapping[str, Any]) -> Optional[int]:
    raw = _first_present(granted, "spendingAuthorization", "spending")
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        return _satoshis(raw.get("satoshis"))
    return _satoshis(raw)


def project(granted: Any) -> GrantDecision:
    """
    Project an arbitrary group-grant payload into a GrantDecision.

    Accepted shapes:
        protocols: ``protocolPermissions`` or ``protocols``; entries may be
            ``{protocolID: [level, name]}``, ``{protocolID: name}``,
            ``{name: name}``, ``[level, name]`` or a bare name. ``"all"`` or
            ``allProtocols: true`` grants every protocol.
        baskets: ``basketAccess`` or ``baskets``; bare names or ``{basket: name}``.
        certificates: ``certificateAccess`` or ``certificates``;
            ``{type | certificateType, fields?}``. Absent or empty ``fields``
            grants any field; a non-list ``fields`` drops the entry.
        spending: ``spendingAuthorization`` or ``spending``; a number or
            ``{satoshis: number}``.

    Args:
        granted: Payload passed to grant_grouped_permission

    Returns:
        GrantDecision; anything unrecognized contributes nothing
    """
    if not isinstance(granted, Mapping):
        return GrantDecision.empty()

    return GrantDecision(
        protocols=_project_protocols(granted),
        baskets=_project_baskets(granted),
        certificates=_project_certificates(granted),
        spending_ceiling=_project_spending(granted),
    )
