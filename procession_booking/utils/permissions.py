"""
Role policy table.

Access decisions are looked up by ``(role, resource, action)`` instead of
being spread across handlers as inline role checks.
"""

from enum import Enum
from typing import FrozenSet, Tuple


class Role(str, Enum):
    CUSTOMER = "customer"
    SELLER = "seller"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class Resource(str, Enum):
    CART = "cart"
    BOOKING = "booking"
    PAYMENT = "payment"
    MAINTENANCE = "maintenance"


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    CANCEL = "cancel"
    OVERRIDE_STATUS = "override_status"
    RUN = "run"


_CUSTOMER_GRANTS = {
    (Resource.CART, Action.READ),
    (Resource.CART, Action.CREATE),
    (Resource.CART, Action.CANCEL),
    (Resource.BOOKING, Action.READ),
    (Resource.BOOKING, Action.CREATE),
    (Resource.BOOKING, Action.CANCEL),
    (Resource.PAYMENT, Action.CREATE),
    (Resource.PAYMENT, Action.READ),
}

_ADMIN_GRANTS = _CUSTOMER_GRANTS | {
    (Resource.BOOKING, Action.OVERRIDE_STATUS),
    (Resource.MAINTENANCE, Action.RUN),
}

POLICY: FrozenSet[Tuple[Role, Resource, Action]] = frozenset(
    [(Role.CUSTOMER, resource, action) for resource, action in _CUSTOMER_GRANTS]
    # Sellers can also buy seats for other shops
    + [(Role.SELLER, resource, action) for resource, action in _CUSTOMER_GRANTS]
    + [(Role.ADMIN, resource, action) for resource, action in _ADMIN_GRANTS]
    + [(Role.SUPER_ADMIN, resource, action) for resource, action in _ADMIN_GRANTS]
)


def is_allowed(role: str, resource: Resource, action: Action) -> bool:
    """Return True when the policy grants ``action`` on ``resource`` to ``role``."""
    try:
        role_value = Role(role)
    except ValueError:
        return False
    return (role_value, resource, action) in POLICY
