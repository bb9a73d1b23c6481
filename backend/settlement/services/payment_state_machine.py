"""Escrow payment state machine — pure logic, no DB dependency.

Defines the payment lifecycle, allowed transitions, the roles allowed to
trigger each one, and helpers for validation and action discovery.
"""

from enum import StrEnum

from settlement.core.errors import InvalidState, NotAuthorized


class PaymentStatus(StrEnum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    DISPUTED = "DISPUTED"
    RESOLVED = "RESOLVED"
    REFUNDED = "REFUNDED"


class PaymentAction(StrEnum):
    CONFIRM_DELIVERY = "confirm_delivery"
    RAISE_DISPUTE = "raise_dispute"
    RESOLVE_DISPUTE = "resolve_dispute"
    EXPIRE_REFUND = "expire_refund"


class Role(StrEnum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"
    ANY = "any"


# Mapping: (current_status, action) → (new_status, frozenset_of_allowed_roles)
TRANSITIONS: dict[tuple[PaymentStatus, PaymentAction], tuple[PaymentStatus, frozenset[Role]]] = {
    (PaymentStatus.PENDING, PaymentAction.CONFIRM_DELIVERY): (
        PaymentStatus.COMPLETED,
        frozenset({Role.BUYER}),
    ),
    (PaymentStatus.PENDING, PaymentAction.RAISE_DISPUTE): (
        PaymentStatus.DISPUTED,
        frozenset({Role.BUYER, Role.SELLER}),
    ),
    # Time-gated: the engine checks the timeout after this table allows it
    (PaymentStatus.PENDING, PaymentAction.EXPIRE_REFUND): (
        PaymentStatus.REFUNDED,
        frozenset({Role.ANY}),
    ),
    (PaymentStatus.DISPUTED, PaymentAction.RESOLVE_DISPUTE): (
        PaymentStatus.RESOLVED,
        frozenset({Role.ADMIN}),
    ),
}

TERMINAL_STATUSES: frozenset[PaymentStatus] = frozenset({
    PaymentStatus.COMPLETED,
    PaymentStatus.RESOLVED,
    PaymentStatus.REFUNDED,
})


def roles_for(caller: str, buyer: str, seller: str, admin: str) -> frozenset[Role]:
    """Return every role the caller holds with respect to one payment."""
    roles = {Role.ANY}
    if caller == buyer:
        roles.add(Role.BUYER)
    if caller == seller:
        roles.add(Role.SELLER)
    if caller == admin:
        roles.add(Role.ADMIN)
    return frozenset(roles)


def validate_transition(
    current: str,
    action: str,
    roles: frozenset[Role] | set[Role],
    *,
    payment_id: str | None = None,
) -> PaymentStatus:
    """Validate and return the new status for a transition.

    Raises InvalidState if the status does not permit the action and
    NotAuthorized if none of the caller's roles may perform it.
    """
    try:
        current_status = PaymentStatus(current)
        payment_action = PaymentAction(action)
    except ValueError:
        raise InvalidState(
            f"Invalid transition: {current} + {action}",
            payment_id=payment_id, current=current, action=action,
        )

    key = (current_status, payment_action)
    if key not in TRANSITIONS:
        raise InvalidState(
            f"Invalid transition: {current} + {action}",
            payment_id=payment_id, current=current, action=action,
        )

    new_status, allowed_roles = TRANSITIONS[key]

    if Role.ANY not in allowed_roles and not (allowed_roles & set(roles)):
        raise NotAuthorized(
            f"{action} requires one of: {', '.join(sorted(allowed_roles))}",
            payment_id=payment_id,
        )

    return new_status


def get_available_actions(current: str, roles: frozenset[Role] | set[Role]) -> list[str]:
    """Return list of action names available for the given status and roles."""
    try:
        current_status = PaymentStatus(current)
    except ValueError:
        return []

    if current_status in TERMINAL_STATUSES:
        return []

    actions: list[str] = []
    for (status, action), (_, allowed_roles) in TRANSITIONS.items():
        if status != current_status:
            continue
        if Role.ANY in allowed_roles or allowed_roles & set(roles):
            actions.append(action.value)

    return actions
