from enum import Enum

from hamromart.core.errors import Forbidden


class Role(str, Enum):
    ADMIN = 'admin'
    CUSTOMER = 'customer'


class Action(str, Enum):
    BROWSE_CATALOG = 'browse_catalog'
    MANAGE_CART = 'manage_cart'
    PLACE_ORDER = 'place_order'
    VIEW_OWN_ORDERS = 'view_own_orders'
    CANCEL_OWN_ORDER = 'cancel_own_order'
    PAY_OWN_ORDER = 'pay_own_order'
    MANAGE_PROFILE = 'manage_profile'
    MANAGE_CATALOG = 'manage_catalog'
    MANAGE_ORDERS = 'manage_orders'
    MANAGE_USERS = 'manage_users'
    VIEW_REPORTS = 'view_reports'
    VIEW_AUDIT_LOG = 'view_audit_log'


_CUSTOMER_ACTIONS = frozenset({
    Action.BROWSE_CATALOG,
    Action.MANAGE_CART,
    Action.PLACE_ORDER,
    Action.VIEW_OWN_ORDERS,
    Action.CANCEL_OWN_ORDER,
    Action.PAY_OWN_ORDER,
    Action.MANAGE_PROFILE,
})

POLICY = {
    Role.CUSTOMER: _CUSTOMER_ACTIONS,
    # admins shop like anyone else and run the back office
    Role.ADMIN: frozenset(Action),
}


def is_allowed(role: Role, action: Action) -> bool:
    return action in POLICY.get(role, frozenset())


def authorize(identity, action: Action) -> None:
    if not is_allowed(identity.role, action):
        raise Forbidden(f'{identity.role.value} may not {action.value.replace("_", " ")}')
