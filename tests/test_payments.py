import pytest

from hamromart.core.errors import ExternalServiceError, PaymentDeclined, InvalidTransition, NotFound
from hamromart.db.models import Order, OrderStatus, PaymentStatus, PaymentMethod
from hamromart.services import orders
from hamromart.services.gateway import GatewayResult

from conftest import make_user, make_product, put_in_cart, identity_for, auth_headers, checkout_request


@pytest.fixture
def gateway_order(db, customer, category):
    p = make_product(db, category, price_cents=45000, stock=3)
    put_in_cart(db, customer, p, 2)
    return orders.place_order(db, identity_for(customer), checkout_request(PaymentMethod.GATEWAY))


def reload(db, order_id):
    db.expire_all()
    return db.get(Order, order_id)


class TestConfirmGatewayPayment:
    def test_timeout_then_retry_succeeds_once(self, db, customer, gateway, mailer, gateway_order):
        gateway.outcomes = [ExternalServiceError("payment_gateway", "Payment gateway timed out"),
                            GatewayResult.COMPLETED]

        with pytest.raises(ExternalServiceError):
            orders.confirm_gateway_payment(db, identity_for(customer), gateway_order.id, "tok", "9800000000",
                                           gateway, mailer)
        unchanged = reload(db, gateway_order.id)
        assert (unchanged.payment_status, unchanged.order_status) == (PaymentStatus.PENDING, OrderStatus.PENDING)
        assert unchanged.version == 1

        paid = orders.confirm_gateway_payment(db, identity_for(customer), gateway_order.id, "tok", "9800000000",
                                              gateway, mailer)
        assert (paid.payment_status, paid.order_status) == (PaymentStatus.COMPLETED, OrderStatus.PROCESSING)
        assert paid.version == 2
        assert "Payment received" in mailer.subjects(customer.email)

        with pytest.raises(InvalidTransition):
            orders.confirm_gateway_payment(db, identity_for(customer), gateway_order.id, "tok", "9800000000",
                                           gateway, mailer)
        assert len(gateway.calls) == 2

    def test_amount_sent_is_the_order_total(self, db, customer, gateway, gateway_order):
        orders.confirm_gateway_payment(db, identity_for(customer), gateway_order.id, "tok", "9800000000", gateway)
        assert gateway.calls == [{"token": "tok", "amount": 90000, "mobile": "9800000000"}]

    def test_declined_leaves_order_pending(self, db, customer, gateway, gateway_order):
        gateway.outcomes = [GatewayResult.FAILED]

        with pytest.raises(PaymentDeclined):
            orders.confirm_gateway_payment(db, identity_for(customer), gateway_order.id, "bad", "9800000000", gateway)

        order = reload(db, gateway_order.id)
        assert order.payment_status == PaymentStatus.PENDING
        assert order.order_status == OrderStatus.PENDING

    def test_cash_on_delivery_order_is_not_payable(self, db, customer, category, gateway):
        p = make_product(db, category)
        put_in_cart(db, customer, p, 1)
        order = orders.place_order(db, identity_for(customer), checkout_request())

        with pytest.raises(InvalidTransition):
            orders.confirm_gateway_payment(db, identity_for(customer), order.id, "tok", "9800000000", gateway)
        assert gateway.calls == []

    def test_cancelled_order_is_not_payable(self, db, customer, gateway, gateway_order):
        orders.cancel_order(db, identity_for(customer), gateway_order.id)

        with pytest.raises(InvalidTransition):
            orders.confirm_gateway_payment(db, identity_for(customer), gateway_order.id, "tok", "9800000000", gateway)
        assert gateway.calls == []

    def test_only_the_owner_can_pay(self, db, gateway, gateway_order):
        stranger = make_user(db, email="stranger@example.com")
        with pytest.raises(NotFound):
            orders.confirm_gateway_payment(db, identity_for(stranger), gateway_order.id, "tok", "9800000000", gateway)


class TestPaymentApi:
    def test_gateway_outage_is_503_and_retryable(self, client, customer, gateway, gateway_order):
        gateway.outcomes = [ExternalServiceError("payment_gateway", "Payment gateway timed out")]
        url = f"/api/v1/orders/{gateway_order.id}/payments/verify"
        body = {"token": "tok", "mobile": "9800000000"}

        r = client.post(url, json=body, headers=auth_headers(customer))
        assert r.status_code == 503
        assert r.json() == {"detail": "Payment gateway timed out"}

        r = client.post(url, json=body, headers=auth_headers(customer))
        assert r.status_code == 200, r.text
        assert r.json()["payment_status"] == "Completed"
        assert r.json()["order_status"] == "Processing"

    def test_decline_is_402(self, client, customer, gateway, gateway_order):
        gateway.outcomes = [GatewayResult.FAILED]
        r = client.post(f"/api/v1/orders/{gateway_order.id}/payments/verify",
                        json={"token": "bad", "mobile": "9800000000"}, headers=auth_headers(customer))
        assert r.status_code == 402
