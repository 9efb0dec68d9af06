import pytest

from stockledger.line_items import DealLine, ProductLine
from stockledger.models import Coupon, Order, PaymentNotification, Product, StockMovement
from stockledger.services import (
    cart_service,
    inventory_service,
    loyalty_service,
    offer_service,
    order_service,
    payment_context_service,
    settlement_service,
)
from stockledger.services.settlement_service import (
    MSG_DUPLICATE,
    MSG_DUPLICATE_WITH_ORDER,
    MSG_MANUAL_VERIFICATION,
    MSG_MISSING_FIELDS,
    MSG_ORDER_CREATED,
    MSG_ORDER_EXISTS,
    STATE_CONTEXT_MISSING,
    STATE_DUPLICATE,
    STATE_NOTIFIED,
    STATE_SETTLED,
    STATE_VALIDATED,
)
from stockledger.services.stock_service import StockOwner
from stockledger.validation import ConflictError


REF = "Order_1760860800000_5_042"
USER = 5


def test_missing_required_fields_are_rejected(db_session, itn):
    payload = itn(REF)
    del payload["pf_payment_id"]

    result = settlement_service.handle_payment_notification(payload)

    assert result.success is False
    assert result.message == MSG_MISSING_FIELDS
    assert result.state == STATE_NOTIFIED
    assert db_session.query(PaymentNotification).count() == 0


def test_paid_notification_creates_order_and_drains_stock(
    db_session, make_product, fill_cart, checkout_context, itn, stock
):
    product, (size,) = make_product([10], price_cents=1000)
    fill_cart(USER, ("product", product, size, 2))
    checkout_context(REF, USER)

    result = settlement_service.handle_payment_notification(itn(REF))

    assert result.success is True
    assert result.message == MSG_ORDER_CREATED
    assert result.state == STATE_SETTLED

    order = order_service.find_order_by_number(REF)
    assert order.user_id == USER
    assert order.total_cents == 2000
    assert order.status == "confirmed"
    assert order.payment_status == "paid"
    assert order.payment_method == "bank-transfer"
    assert order.contact_email == "shopper@example.com"
    assert [(i.product_size_id, i.quantity, i.line_total_cents) for i in order.items] == [(size.id, 2, 2000)]

    assert stock(size) == 8
    (movement,) = db_session.query(StockMovement).all()
    assert movement.movement_type == "OUT"
    assert movement.quantity_delta == -2
    assert movement.reference_id == str(order.id)

    assert loyalty_service.get_balance(USER) == 20
    assert cart_service.get_full_cart(USER).lines == []
    assert payment_context_service.get_context(REF) is None

    notification = db_session.query(PaymentNotification).one()
    assert notification.amount_gross_cents == 500
    assert notification.amount_fee_cents == -12
    assert notification.item_name == "Cart Order #1"


def test_duplicate_delivery_is_idempotent(db_session, make_product, fill_cart, checkout_context, itn, stock):
    product, (size,) = make_product([10])
    fill_cart(USER, ("product", product, size, 2))
    checkout_context(REF, USER)

    first = settlement_service.handle_payment_notification(itn(REF))
    second = settlement_service.handle_payment_notification(itn(REF))

    assert first.state == STATE_SETTLED
    assert second.success is True
    assert second.message == MSG_DUPLICATE_WITH_ORDER
    assert second.state == STATE_DUPLICATE
    assert second.order.id == first.order.id
    assert stock(size) == 8
    assert db_session.query(Order).count() == 1
    assert db_session.query(PaymentNotification).count() == 1


def test_redelivery_with_new_signature_finds_existing_order(
    db_session, make_product, fill_cart, checkout_context, itn, stock
):
    product, (size,) = make_product([10])
    fill_cart(USER, ("product", product, size, 1))
    checkout_context(REF, USER)
    settlement_service.handle_payment_notification(itn(REF))

    result = settlement_service.handle_payment_notification(itn(REF, signature="sig-2"))

    assert result.message == MSG_ORDER_EXISTS
    assert result.state == STATE_DUPLICATE
    assert stock(size) == 9
    assert db_session.query(PaymentNotification).count() == 2


def test_non_paid_status_is_recorded_only(db_session, make_product, fill_cart, checkout_context, itn, stock):
    product, (size,) = make_product([10])
    fill_cart(USER, ("product", product, size, 1))
    checkout_context(REF, USER)

    result = settlement_service.handle_payment_notification(itn(REF, status="FAILED"))

    assert result.success is True
    assert result.message == "Payment status: FAILED"
    assert result.state == STATE_VALIDATED
    assert db_session.query(Order).count() == 0
    assert db_session.query(PaymentNotification).one().payment_status == "FAILED"
    assert stock(size) == 10
    assert payment_context_service.get_context(REF) is not None


def test_missing_context_needs_manual_verification(db_session, make_product, fill_cart, itn, stock):
    product, (size,) = make_product([10])
    fill_cart(USER, ("product", product, size, 1))

    result = settlement_service.handle_payment_notification(itn(REF))

    assert result.success is True
    assert result.message == MSG_MANUAL_VERIFICATION
    assert result.state == STATE_CONTEXT_MISSING
    assert db_session.query(Order).count() == 0
    assert stock(size) == 10


def test_empty_cart_needs_manual_verification(db_session, checkout_context, itn):
    checkout_context(REF, USER)

    result = settlement_service.handle_payment_notification(itn(REF))

    assert result.message == MSG_MANUAL_VERIFICATION
    assert result.state == STATE_VALIDATED
    assert db_session.query(Order).count() == 0


def test_failed_line_does_not_undo_other_lines(db_session, make_product, fill_cart, checkout_context, itn, stock):
    p1, (s1,) = make_product([10])
    p2, (s2,) = make_product([1])
    fill_cart(USER, ("product", p1, s1, 2), ("product", p2, s2, 3))
    checkout_context(REF, USER)

    result = settlement_service.handle_payment_notification(itn(REF))

    assert result.state == STATE_SETTLED
    assert stock(s1) == 8
    assert stock(s2) == 1
    assert db_session.query(StockMovement).count() == 1
    assert len(result.order.items) == 2


def test_decrement_report_lists_failures(db_session, make_product, stock):
    p1, (s1,) = make_product([1])
    order = order_service.create_order(
        order_number=REF, user_id=USER, payment_method="bank-transfer", delivery_method="home-delivery",
    )
    db_session.commit()

    report = settlement_service.decrement_order_stock(
        order, [ProductLine(p1.id, s1.id, 5), ProductLine(p1.id, s1.id, 1)]
    )

    assert report.updates == 1
    assert len(report.failures) == 1
    assert report.failures[0].startswith("product: Insufficient stock")
    assert stock(s1) == 0


def test_selling_out_marks_product_and_deactivates_offers(
    db_session, make_product, make_offer, fill_cart, checkout_context, itn
):
    p1, (s1,) = make_product([1])
    p2, (s2,) = make_product([5])
    deal = make_offer([(p1, s1, 1), (p2, s2, 1)])
    promo = make_offer([(p2, s2, 1)], kind="promotion")
    fill_cart(USER, ("product", p1, s1, 1))
    checkout_context(REF, USER)

    settlement_service.handle_payment_notification(itn(REF))

    assert db_session.get(Product, p1.id).status == "out-of-stock"
    assert offer_service.get_offer("deal", deal.id).is_active is False
    assert offer_service.get_offer("promotion", promo.id).is_active is True

    inventory_service.restock(StockOwner.size(s1.id), quantity=5, cost_per_unit_cents=100, supplier_name="Acme")
    assert offer_service.get_offer("deal", deal.id).is_active is False


def test_deal_line_expands_into_constituents(db_session, make_product, make_offer, fill_cart, checkout_context, itn, stock):
    p1, (s1,) = make_product([4])
    p2, (s2,) = make_product([9])
    deal = make_offer([(p1, s1, 2), (p2, s2, 1)], price_cents=3000)
    fill_cart(USER, ("deal", deal, 2))
    checkout_context(REF, USER)

    result = settlement_service.handle_payment_notification(itn(REF))

    assert result.order.total_cents == 6000
    assert stock(s1) == 0
    assert stock(s2) == 7
    assert offer_service.get_offer("deal", deal.id).is_active is False


def test_deal_is_checked_even_when_its_decrement_fails(db_session, make_product, make_offer):
    p1, (s1,) = make_product([0])
    deal = make_offer([(p1, s1, 1)])
    order = order_service.create_order(
        order_number=REF, user_id=USER, payment_method="bank-transfer", delivery_method="home-delivery",
    )
    db_session.commit()

    report = settlement_service.decrement_order_stock(order, [DealLine(deal.id, 1)])
    deactivated = offer_service.run_deactivation_checks(report.deals_to_check, report.promotions_to_check)

    assert report.failures
    assert deactivated == [("deal", deal.id)]


def test_coupon_usage_and_loyalty_bonus(
    db_session, make_product, make_coupon, fill_cart, checkout_context, itn
):
    product, (size,) = make_product([5], price_cents=60_000)
    coupon = make_coupon("BIG", discount_value=10_000)
    fill_cart(USER, ("product", product, size, 2))
    cart_service.apply_coupon(USER, "BIG")
    checkout_context(REF, USER)

    result = settlement_service.handle_payment_notification(itn(REF))

    assert result.order.discount_cents == 10_000
    assert result.order.total_cents == 110_000
    assert db_session.get(Coupon, coupon.id).usage_count == 1
    assert loyalty_service.get_balance(USER) == 1100 + 50
    assert cart_service.get_cart(USER).coupon_id is None


def test_loyalty_award_is_once_per_order(db_session):
    first = loyalty_service.add_points_for_order(USER, 77, 12_345)
    again = loyalty_service.add_points_for_order(USER, 77, 12_345)

    assert first == again
    assert loyalty_service.get_balance(USER) == 123


def test_order_number_is_unique(db_session):
    order_service.create_order(
        order_number=REF, user_id=USER, payment_method="bank-transfer", delivery_method="home-delivery",
    )
    db_session.commit()

    with pytest.raises(ConflictError):
        order_service.create_order(
            order_number=REF, user_id=USER, payment_method="bank-transfer", delivery_method="home-delivery",
        )


def test_materialize_returns_existing_order(db_session, make_product, fill_cart, checkout_context, stock):
    product, (size,) = make_product([10])
    fill_cart(USER, ("product", product, size, 1))
    checkout_context(REF, USER)
    first, state = settlement_service.materialize_order(REF)
    assert state == STATE_SETTLED

    checkout_context(REF, USER)
    again, state = settlement_service.materialize_order(REF)

    assert state == STATE_DUPLICATE
    assert again.id == first.id
    assert stock(size) == 9
    assert payment_context_service.get_context(REF) is None


def test_unparseable_amounts_and_email_are_stored_as_null(db_session, itn):
    payload = itn(REF, status="PENDING", amount_gross="n/a", email_address="not-an-email", billing_date="soon")

    settlement_service.handle_payment_notification(payload)

    notification = db_session.query(PaymentNotification).one()
    assert notification.amount_gross_cents is None
    assert notification.email_address is None
    assert notification.billing_date is None


def test_repeat_of_unpaid_notification_is_a_duplicate_without_order(db_session, itn):
    settlement_service.handle_payment_notification(itn(REF, status="FAILED"))

    result = settlement_service.handle_payment_notification(itn(REF, status="FAILED"))

    assert result.success is True
    assert result.message == MSG_DUPLICATE
    assert result.state == STATE_DUPLICATE
    assert result.order is None
    assert db_session.query(PaymentNotification).count() == 1


def test_losing_the_notification_insert_race_creates_no_order(
    db_session, monkeypatch, make_product, fill_cart, checkout_context, itn, stock
):
    product, (size,) = make_product([10])
    fill_cart(USER, ("product", product, size, 1))
    checkout_context(REF, USER)
    # Another worker stored the same (pf_payment_id, signature) after this one checked for it
    db_session.add(PaymentNotification(
        merchant_id="10000100", pf_payment_id="1089250", payment_reference=REF,
        payment_status="COMPLETE", signature="sig-1",
    ))
    db_session.commit()
    monkeypatch.setattr(settlement_service, "is_duplicate_notification", lambda *args: False)

    result = settlement_service.handle_payment_notification(itn(REF))

    assert result.success is True
    assert result.message == "Payment status: COMPLETE"
    assert result.state == STATE_VALIDATED
    assert db_session.query(Order).count() == 0
    assert db_session.query(PaymentNotification).count() == 1
    assert stock(size) == 10


def test_losing_the_order_insert_race_resolves_to_winner(
    db_session, monkeypatch, make_product, fill_cart, checkout_context, stock
):
    product, (size,) = make_product([10])
    fill_cart(USER, ("product", product, size, 2))
    checkout_context(REF, USER)
    winner = order_service.create_order(
        order_number=REF, user_id=USER, payment_method="bank-transfer", delivery_method="home-delivery",
    )
    db_session.commit()
    winner_id = winner.id

    lookups = []
    real_find = order_service.find_order_by_number

    def find_after_first_miss(order_number):
        # The existence check runs before the other worker's insert is visible
        lookups.append(order_number)
        return None if len(lookups) == 1 else real_find(order_number)

    monkeypatch.setattr(order_service, "find_order_by_number", find_after_first_miss)

    order, state = settlement_service.materialize_order(REF)

    assert state == STATE_DUPLICATE
    assert order.id == winner_id
    assert len(lookups) == 2
    assert db_session.query(Order).count() == 1
    assert stock(size) == 10
    assert db_session.query(StockMovement).count() == 0
