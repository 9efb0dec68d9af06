from datetime import timedelta

import pytest

from stockledger.services import inventory_service, offer_service
from stockledger.services.stock_service import StockOwner
from stockledger.time_utils import utcnow
from stockledger.validation import ConflictError, NotFoundError, ValidationError


def test_expand_multiplies_constituent_quantities(db_session, make_product, make_offer):
    p1, (s1,) = make_product([10])
    p2, (s2,) = make_product([10])
    deal = make_offer([(p1, s1, 2), (p2, s2, 1)])

    parts = offer_service.expand(deal, 3)

    assert [(c.size_id, c.quantity) for c in parts] == [(s1.id, 6), (s2.id, 3)]


def test_unknown_offer_kind_is_rejected(db_session):
    with pytest.raises(ValidationError):
        offer_service.offer_model("bundle")


def test_check_offer_prefixes_failing_constituents(db_session, make_product, make_offer):
    p1, (s1,) = make_product([10])
    p2, (s2,) = make_product([1])
    deal = make_offer([(p1, s1, 1), (p2, s2, 1)])

    result = offer_service.check_offer("deal", deal.id, 2)

    assert result.is_available is False
    assert result.reasons == [
        f"Deal product ({p2.id}): Insufficient stock: only 1 available, but 2 requested",
    ]


def test_check_offer_missing_offer(db_session):
    result = offer_service.check_offer("promotion", 9999, 1)
    assert result.reasons == ["Promotion not found"]


def test_check_offer_reports_window_and_inactive_together(db_session, make_product, make_offer):
    p1, (s1,) = make_product([5])
    now = utcnow()
    promo = make_offer(
        [(p1, s1, 1)],
        kind="promotion",
        is_active=False,
        start_date=now + timedelta(days=1),
    )

    result = offer_service.check_offer("promotion", promo.id, 1, now=now)

    assert result.reasons == ["Promotion is no longer active", "Promotion has not started yet"]


def test_check_offer_expired(db_session, make_product, make_offer):
    p1, (s1,) = make_product([5])
    now = utcnow()
    deal = make_offer([(p1, s1, 1)], end_date=now - timedelta(hours=1))

    result = offer_service.check_offer("deal", deal.id, 1, now=now)

    assert result.reasons == ["Deal has expired"]


def test_find_offers_containing_only_active(db_session, make_product, make_offer):
    p1, (s1, s2) = make_product([5, 5])
    deal = make_offer([(p1, s1, 1)])
    make_offer([(p1, s1, 1)], is_active=False)
    promo = make_offer([(p1, s1, 1), (p1, s2, 1)], kind="promotion")

    found = offer_service.find_offers_containing(s1.id)

    assert [d.id for d in found.deals] == [deal.id]
    assert [p.id for p in found.promotions] == [promo.id]
    assert offer_service.find_offers_containing(s2.id).deals == []


def test_deactivation_is_one_directional(db_session, make_product, make_offer):
    p1, (s1,) = make_product([0])
    p2, (s2,) = make_product([4])
    deal = make_offer([(p1, s1, 1), (p2, s2, 1)])

    assert offer_service.run_deactivation_checks({deal.id}, set()) == [("deal", deal.id)]
    assert deal.is_active is False

    inventory_service.restock(StockOwner.size(s1.id), quantity=10, cost_per_unit_cents=100, supplier_name="Acme")
    assert offer_service.run_deactivation_checks({deal.id}, set()) == []
    assert offer_service.get_offer("deal", deal.id).is_active is False


def test_deactivation_check_ignores_sellable_offers(db_session, make_product, make_offer):
    p1, (s1,) = make_product([3])
    promo = make_offer([(p1, s1, 1)], kind="promotion")

    assert offer_service.run_deactivation_checks(set(), {promo.id, 4242}) == []
    assert promo.is_active is True


def test_reactivate_refuses_while_out_of_stock(db_session, make_product, make_offer):
    p1, (s1,) = make_product([0])
    deal = make_offer([(p1, s1, 1)], is_active=False)

    with pytest.raises(ConflictError):
        offer_service.reactivate("deal", deal.id)

    forced = offer_service.reactivate("deal", deal.id, force=True)
    assert forced.is_active is True


def test_reactivate_after_restock(db_session, make_product, make_offer):
    p1, (s1,) = make_product([0])
    deal = make_offer([(p1, s1, 1)], is_active=False)
    inventory_service.restock(StockOwner.size(s1.id), quantity=2, cost_per_unit_cents=100, supplier_name="Acme")

    assert offer_service.reactivate("deal", deal.id).is_active is True


def test_reactivate_missing_offer(db_session):
    with pytest.raises(NotFoundError):
        offer_service.reactivate("promotion", 31337)
