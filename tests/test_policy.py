import pytest

from hamromart.core.auth import Identity
from hamromart.core.errors import Forbidden
from hamromart.core.policy import Role, Action, is_allowed, authorize


class TestPolicy:
    @pytest.mark.parametrize("action", list(Action))
    def test_admin_may_do_everything(self, action):
        assert is_allowed(Role.ADMIN, action)

    @pytest.mark.parametrize("action", [Action.MANAGE_CATALOG, Action.MANAGE_ORDERS, Action.MANAGE_USERS,
                                        Action.VIEW_REPORTS, Action.VIEW_AUDIT_LOG])
    def test_customer_is_kept_out_of_back_office(self, action):
        assert not is_allowed(Role.CUSTOMER, action)
        with pytest.raises(Forbidden):
            authorize(Identity(user_id=1, email="c@example.com", role=Role.CUSTOMER), action)

    def test_customer_can_shop(self):
        for action in (Action.MANAGE_CART, Action.PLACE_ORDER, Action.PAY_OWN_ORDER, Action.CANCEL_OWN_ORDER):
            assert is_allowed(Role.CUSTOMER, action)


class TestOperationalEndpoints:
    def test_health_and_info(self, client):
        assert client.get("/health").json() == {"status": "ok"}
        assert client.get("/v1/_info").json()["service"] == "hamromart"
