"""
Pytest fixtures for stockledger backend tests.

Provides the test application (in-memory SQLite), per-test table cleanup,
the Flask test client, and small factories for catalog, offers, carts and
checkout contexts.
"""

import pytest

from stockledger import create_app
from stockledger.extensions import db
from stockledger.line_items import DealLine, ProductLine, PromotionLine
from stockledger.models import Coupon, Deal, Product, ProductSize, Promotion, StockRecord
from stockledger.services import cart_service, payment_context_service


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'PAYFAST_ENV': 'sandbox',
    'PAYFAST_PASSPHRASE': None,
    'BACKEND_URL': 'https://api.shop.test',
    'PAYFAST_RETURN_URL': 'https://shop.test',
    'PAYFAST_CANCEL_URL': None,
    'PAYMENT_CONTEXT_TTL_HOURS': 24,
    'PAYMENT_CONTEXT_SWEEP_INTERVAL_SECONDS': 0,
    'LOYALTY_POINTS_PER_UNIT': 1,
    'LOYALTY_BONUS_THRESHOLD_CENTS': 100_000,
    'LOYALTY_BONUS_POINTS': 50,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_product(db_session):
    """
    Factory: product with one size per entry in size_stock.

    make_product(size_stock=[10, 0]) -> (product, [size_a, size_b]) with
    stock records holding 10 and 0 available units.
    """
    counter = {"n": 0}

    def _make(size_stock=(10,), *, price_cents=1000, vendor_id=1, size_active=True):
        counter["n"] += 1
        product = Product(
            vendor_id=vendor_id,
            sku=f"SKU-{counter['n']:03d}",
            title=f"Product {counter['n']}",
            price_cents=price_cents,
        )
        db_session.add(product)
        db_session.flush()

        sizes = []
        for idx, stock in enumerate(size_stock):
            size = ProductSize(product_id=product.id, label=f"S{idx}", is_active=size_active)
            db_session.add(size)
            db_session.flush()
            db_session.add(StockRecord(product_size_id=size.id, quantity_available=stock, quantity_reserved=0))
            sizes.append(size)
        db_session.commit()
        return product, sizes

    return _make


@pytest.fixture(scope='function')
def make_offer(db_session):
    """Factory: Deal or Promotion over (product, size, multiplier) triples."""

    def _make(parts, *, kind='deal', price_cents=1500, is_active=True, start_date=None, end_date=None):
        model = Deal if kind == 'deal' else Promotion
        offer = model(
            name=f"{model.OFFER_LABEL} bundle",
            price_cents=price_cents,
            products=[
                {"product_id": product.id, "size_id": size.id if size is not None else None, "quantity": qty}
                for product, size, qty in parts
            ],
            is_active=is_active,
            start_date=start_date,
            end_date=end_date,
        )
        db_session.add(offer)
        db_session.commit()
        return offer

    return _make


@pytest.fixture(scope='function')
def make_coupon(db_session):
    def _make(code='SAVE10', *, discount_type='FIXED_AMOUNT', discount_value=100):
        coupon = Coupon(code=code, discount_type=discount_type, discount_value=discount_value)
        db_session.add(coupon)
        db_session.commit()
        return coupon

    return _make


@pytest.fixture(scope='function')
def fill_cart(db_session):
    """
    Factory: put lines into a user's cart.

    Accepts ("product", product, size, qty), ("deal", deal, qty) and
    ("promotion", promotion, qty) tuples.
    """

    def _fill(user_id, *entries):
        for entry in entries:
            kind = entry[0]
            if kind == 'product':
                _, product, size, qty = entry
                line = ProductLine(product_id=product.id, size_id=size.id if size else None, quantity=qty)
            elif kind == 'deal':
                line = DealLine(deal_id=entry[1].id, quantity=entry[2])
            else:
                line = PromotionLine(promotion_id=entry[1].id, quantity=entry[2])
            cart_service.add_item(user_id, line)
        return cart_service.get_full_cart(user_id)

    return _fill


@pytest.fixture(scope='function')
def checkout_context(db_session):
    """Factory: store a checkout context as generate-payment would."""

    def _put(reference, user_id, *, now=None):
        return payment_context_service.put_context(
            reference,
            user_id=user_id,
            delivery_method='home-delivery',
            delivery_address={"line1": "1 Long Street", "city": "Cape Town"},
            email='shopper@example.com',
            phone='0820000000',
            full_name='Sam Shopper',
            now=now,
        )

    return _put


def stock_of(size) -> int:
    record = db.session.query(StockRecord).filter_by(product_size_id=size.id).one()
    return record.quantity_available


def itn_payload(reference, *, pf_payment_id='1089250', status='COMPLETE', signature='sig-1', **extra):
    """Gateway ITN body as the webhook receives it."""
    payload = {
        'm_payment_id': reference,
        'pf_payment_id': pf_payment_id,
        'payment_status': status,
        'merchant_id': '10000100',
        'amount_gross': '5.00',
        'amount_fee': '-0.12',
        'amount_net': '4.88',
        'item_name': ' Cart Order #1 ',
        'email_address': 'shopper@example.com',
        'billing_date': '2026-10-19',
        'signature': signature,
    }
    payload.update(extra)
    return payload


@pytest.fixture
def itn():
    return itn_payload


@pytest.fixture
def stock():
    return stock_of
