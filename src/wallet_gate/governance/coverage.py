"""Coverage of pending requests by a group grant decision."""

from typing import Any, Optional

from ..requests.models import (
    BasketAccessRequest,
    CertificateAccessRequest,
    ProtocolAccessRequest,
    SpendingRequest,
)
from .decision import GrantDecision


def covers(decision: Optional[GrantDecision], request: Any) -> bool:
    """
    Decide whether a grant decision already authorizes a pending request.

    Rules:
    ┌─────────────┬──────────────────────────────────────────────────────┐
    │ Basket      │ basket named and in decision.baskets                 │
    │ Certificate │ rule for the type; any-fields rule or fields ⊆ rule  │
    │ Protocol    │ ALLOW_ALL or protocol name in decision.protocols     │
    │ Spending    │ ceiling present and amount <= ceiling                │
    │ Other       │ never covered                                        │
    └─────────────┴──────────────────────────────────────────────────────┘

    Args:
        decision: Projected grant, or None when the group was denied or
            timed out
        request: Deferred request

    Returns:
        True if the request needs no further prompting
    """
    if decision is None:
        return False

    if isinstance(request, BasketAccessRequest):
        return request.basket is not None and request.basket in decision.baskets

    if isinstance(request, CertificateAccessRequest):
        if not request.certificate_type:
            return False
        rule = decision.certificate_rule(request.certificate_type)
        if rule is None:
            return False
        if rule.allows_any_field():
            return True
        return request.fields <= rule.fields

    if isinstance(request, ProtocolAccessRequest):
        if decision.allows_all_protocols():
            return True
        return request.protocol_id in decision.protocols

    if isinstance(request, SpendingRequest):
        ceiling = decision.spending_ceiling
        return ceiling is not None and request.authorization_amount <= ceiling

    return False
