import pytest

from stockledger.models import StockRecord
from stockledger.services import stock_service
from stockledger.services.stock_service import InsufficientStockError, StockOwner
from stockledger.validation import NotFoundError, ValidationError


def test_find_or_create_tracks_untracked_product(db_session, make_product):
    product, _ = make_product(size_stock=())
    owner = StockOwner.product(product.id)

    assert stock_service.get_record(owner) is None
    assert stock_service.get_sellable(owner) == 0

    record = stock_service.find_or_create(owner, initial_available=7)
    again = stock_service.find_or_create(owner, initial_available=99)

    assert record.id == again.id
    assert again.quantity_available == 7
    assert db_session.query(StockRecord).filter_by(product_id=product.id).count() == 1


def test_find_or_create_rejects_unknown_owner(db_session):
    with pytest.raises(NotFoundError):
        stock_service.find_or_create(StockOwner.size(424242))


def test_owner_requires_exactly_one_reference():
    with pytest.raises(ValidationError):
        StockOwner.from_ids(product_size_id=1, product_id=2)
    with pytest.raises(ValidationError):
        StockOwner.from_ids()
    assert StockOwner.from_ids(product_id=5) == StockOwner.product(5)


def test_reserve_and_release_move_only_reserved(db_session, make_product):
    _, (size,) = make_product(size_stock=[10])
    owner = StockOwner.size(size.id)

    record = stock_service.reserve(owner, 4)
    assert (record.quantity_available, record.quantity_reserved, record.sellable) == (10, 4, 6)

    record = stock_service.release(owner, 3)
    assert (record.quantity_available, record.quantity_reserved) == (10, 1)


def test_reserve_beyond_sellable_fails_without_writing(db_session, make_product):
    _, (size,) = make_product(size_stock=[5])
    owner = StockOwner.size(size.id)
    stock_service.reserve(owner, 3)

    with pytest.raises(InsufficientStockError) as exc:
        stock_service.reserve(owner, 3)

    assert exc.value.available == 2
    record = stock_service.get_record(owner)
    assert record.quantity_reserved == 3


def test_release_more_than_reserved_is_refused(db_session, make_product):
    _, (size,) = make_product(size_stock=[5])
    owner = StockOwner.size(size.id)
    stock_service.reserve(owner, 1)

    with pytest.raises(InsufficientStockError):
        stock_service.release(owner, 2)
    assert stock_service.get_record(owner).quantity_reserved == 1


def test_deduct_without_reservation(db_session, make_product):
    _, (size,) = make_product(size_stock=[10])
    record = stock_service.deduct(StockOwner.size(size.id), 2)
    assert (record.quantity_available, record.quantity_reserved) == (8, 0)


def test_direct_deduct_leaves_reservations_in_place(db_session, make_product):
    _, (size,) = make_product([10])
    owner = StockOwner.size(size.id)
    stock_service.reserve(owner, 3)

    record = stock_service.deduct(owner, 5)

    assert record.quantity_available == 5
    assert record.quantity_reserved == 3
    assert record.sellable == 2


def test_direct_deduct_cannot_take_reserved_units(db_session, make_product):
    _, (size,) = make_product([5])
    owner = StockOwner.size(size.id)
    stock_service.reserve(owner, 5)

    with pytest.raises(InsufficientStockError) as exc:
        stock_service.deduct(owner, 2)
    assert exc.value.available == 0

    record = stock_service.release(owner, 5)
    assert (record.quantity_available, record.quantity_reserved) == (5, 0)


def test_deduct_from_reservation_finalizes_it(db_session, make_product):
    _, (size,) = make_product([6])
    owner = StockOwner.size(size.id)
    stock_service.reserve(owner, 4)

    record = stock_service.deduct(owner, 4, from_reservation=True)

    assert (record.quantity_available, record.quantity_reserved, record.sellable) == (2, 0, 2)
    with pytest.raises(InsufficientStockError):
        stock_service.deduct(owner, 1, from_reservation=True)


def test_deduct_never_goes_negative(db_session, make_product):
    _, (size,) = make_product(size_stock=[1])
    owner = StockOwner.size(size.id)

    with pytest.raises(InsufficientStockError):
        stock_service.deduct(owner, 2)

    assert stock_service.get_record(owner).quantity_available == 1


def test_adjust_negative_limited_by_sellable(db_session, make_product):
    _, (size,) = make_product(size_stock=[6])
    owner = StockOwner.size(size.id)
    stock_service.reserve(owner, 4)

    with pytest.raises(InsufficientStockError):
        stock_service.adjust(owner, -3)

    record = stock_service.adjust(owner, -2)
    assert record.quantity_available == 4
    assert record.sellable == 0


def test_mutations_reject_non_positive_quantities(db_session, make_product):
    _, (size,) = make_product(size_stock=[3])
    owner = StockOwner.size(size.id)

    for op in (stock_service.reserve, stock_service.release, stock_service.deduct, stock_service.increase):
        with pytest.raises(ValidationError):
            op(owner, 0)
    with pytest.raises(ValidationError):
        stock_service.adjust(owner, 0)
    with pytest.raises(ValidationError):
        stock_service.set_reorder_level(owner, -1)


def test_mutating_untracked_owner_is_not_found(db_session, make_product):
    product, _ = make_product(size_stock=())
    with pytest.raises(NotFoundError):
        stock_service.deduct(StockOwner.product(product.id), 1)


def test_set_reorder_level_flags_low_stock(db_session, make_product):
    _, (size,) = make_product(size_stock=[3])
    record = stock_service.set_reorder_level(StockOwner.size(size.id), 5)
    assert record.reorder_level == 5
    assert record.is_low_stock is True
