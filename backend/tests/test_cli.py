from datetime import timedelta

from stockledger.models import PaymentContext
from stockledger.services import inventory_service
from stockledger.services.stock_service import StockOwner
from stockledger.time_utils import utcnow


def test_sweep_payment_contexts_command(app, db_session, checkout_context):
    checkout_context("Order_old", 1, now=utcnow() - timedelta(hours=30))
    checkout_context("Order_new", 2)

    result = app.test_cli_runner().invoke(args=["maintenance", "sweep-payment-contexts"])

    assert result.exit_code == 0
    assert "Deleted 1 expired payment contexts." in result.output
    assert db_session.query(PaymentContext).count() == 1


def test_low_stock_command(app, db_session, make_product):
    _, (size,) = make_product([1])
    inventory_service.set_reorder_level(StockOwner.size(size.id), level=2)

    result = app.test_cli_runner().invoke(args=["inventory", "low-stock"])

    assert result.exit_code == 0
    assert f"size {size.id}" in result.output


def test_movements_command(app, db_session, make_product):
    _, (size,) = make_product([1])
    inventory_service.adjust(StockOwner.size(size.id), quantity_delta=3, reason="Found in back room")

    result = app.test_cli_runner().invoke(args=["inventory", "movements", "size", str(size.id)])

    assert result.exit_code == 0
    assert "ADJUSTMENT" in result.output
    assert "Found in back room" in result.output


def test_reactivate_command_refuses_out_of_stock(app, db_session, make_product, make_offer):
    product, (size,) = make_product([0])
    deal = make_offer([(product, size, 1)], is_active=False)

    refused = app.test_cli_runner().invoke(args=["offers", "reactivate", "deal", str(deal.id)])
    forced = app.test_cli_runner().invoke(args=["offers", "reactivate", "deal", str(deal.id), "--force"])

    assert refused.exit_code != 0
    assert forced.exit_code == 0
    assert f"Deal {deal.id} is active." in forced.output
