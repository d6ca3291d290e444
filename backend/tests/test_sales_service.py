"""
Sale recording and voiding.

Verifies:
- Recording decrements stock by relative update and stores the price snapshot
- A fault anywhere in the unit of work leaves no sale, no lines, no stock change
- Void is the exact inverse of record
- Concurrent sales on one product never lose an update
- Events go out after commit and never affect the sale
"""

import queue
import threading

import pytest
from sqlalchemy import event

from stockledger.errors import (
    InsufficientStockError,
    NotFoundError,
    TransactionFailure,
    ValidationError,
)
from stockledger.extensions import db
from stockledger.models import Product, Sale, SaleLine
from stockledger.services import inventory_service, sales_service

from conftest import line_item, make_product, stock_of, table_state


# =============================================================================
# RECORDING
# =============================================================================


class TestRecordSale:

    def test_scenario_a_record_then_void(self, product_p1):
        sale = sales_service.record_sale(
            [line_item("p1", 3, price=5, cost_price=2)],
            total=15,
            payment_method="Cash",
        )

        sale_id = sale.id
        assert sale.total == 15
        assert sale_id.startswith("SALE-")
        assert stock_of("p1") == 7.0

        sales_service.void_sale(sale_id)

        assert stock_of("p1") == 10.0
        assert db.session.get(Sale, sale_id) is None
        assert db.session.query(SaleLine).filter_by(sale_id=sale_id).count() == 0

    def test_lines_keep_price_snapshot(self, product_p1):
        sale = sales_service.record_sale(
            [line_item("p1", 1, price=4.5, cost_price=1.25, name="Paper Cups (promo)")],
            total=4.5,
            payment_method="Card",
        )

        # Later price changes must not leak into the recorded line
        product = db.session.get(Product, "p1")
        product.selling_price = 99.0
        product.cost_price = 50.0
        product.name = "Renamed"
        db.session.commit()

        line = db.session.query(SaleLine).filter_by(sale_id=sale.id).one()
        assert line.name == "Paper Cups (promo)"
        assert line.price == 4.5
        assert line.cost_price == 1.25

    def test_fractional_quantities(self, product_p2):
        sales_service.record_sale(
            [line_item("p2", 0.5, price=4.0), line_item("p2", 0.25, price=2.0)],
            total=2.5,
            payment_method="Transfer",
        )
        assert stock_of("p2") == pytest.approx(3.75)

    def test_total_is_trusted_as_given(self, product_p1):
        sale = sales_service.record_sale(
            [line_item("p1", 2, price=5)],
            total=9.0,
            payment_method="Cash",
        )
        assert sale.total == 9.0

    def test_sale_payload_includes_items(self, product_p1, product_p2):
        sale = sales_service.record_sale(
            [line_item("p1", 1), line_item("p2", 2, price=8.0, name="Foil Trays")],
            total=21.0,
            payment_method="Cash",
        )
        data = sale.to_dict()
        assert [i["productId"] for i in data["items"]] == ["p1", "p2"]
        assert data["items"][1]["price"] == 8.0
        assert data["items"][1]["saleId"] == sale.id
        assert data["paymentMethod"] == "Cash"

    def test_unit_price_aliases_accepted(self, product_p1):
        item = {"productId": "p1", "name": "Paper Cups", "quantity": 2, "unitPrice": 4.0, "unitCostPrice": 1.5}

        sale = sales_service.record_sale([item], total=8.0, payment_method="Cash")

        line = sale.to_dict()["items"][0]
        assert (line["price"], line["costPrice"]) == (4.0, 1.5)
        assert stock_of("p1") == 8.0

    def test_oversell_is_permitted_by_default(self, product_p1):
        sales_service.record_sale([line_item("p1", 12)], total=60, payment_method="Cash")
        assert stock_of("p1") == -2.0


# =============================================================================
# VALIDATION (nothing touched)
# =============================================================================


class TestRecordSaleValidation:

    @pytest.mark.parametrize(
        "items,total,method",
        [
            ([], 10, "Cash"),
            (None, 10, "Cash"),
            ([line_item("p1", 0)], 10, "Cash"),
            ([line_item("p1", -1)], 10, "Cash"),
            ([{"productId": "p1", "quantity": 1, "price": 5}], 5, "Cash"),
            ([line_item("p1", 1)], "15", "Cash"),
            ([line_item("p1", 1)], 5, "Cheque"),
        ],
    )
    def test_rejected_before_mutation(self, product_p1, items, total, method):
        before = table_state()
        with pytest.raises(ValidationError):
            sales_service.record_sale(items, total, method)
        assert table_state() == before


# =============================================================================
# ATOMICITY
# =============================================================================


class TestRecordSaleAtomicity:

    def test_fault_on_last_line_insert_rolls_back_everything(self, product_p1, product_p2):
        before = table_state()

        def fail_on_last(mapper, connection, target):
            if target.product_id == "p2":
                raise RuntimeError("simulated fault")

        event.listen(SaleLine, "before_insert", fail_on_last)
        try:
            with pytest.raises(RuntimeError):
                sales_service.record_sale(
                    [line_item("p1", 3), line_item("p2", 1)],
                    total=20,
                    payment_method="Cash",
                )
        finally:
            event.remove(SaleLine, "before_insert", fail_on_last)

        assert table_state() == before
        assert db.session.query(Sale).count() == 0
        assert stock_of("p1") == 10.0
        assert stock_of("p2") == 4.5

    def test_fault_on_last_stock_update_rolls_back_earlier_decrements(self, product_p1, product_p2, monkeypatch):
        before = table_state()
        real_adjust = inventory_service.adjust_stock

        def adjust(product_id, delta, **kwargs):
            if product_id == "p2":
                raise TransactionFailure("simulated fault")
            return real_adjust(product_id, delta, **kwargs)

        monkeypatch.setattr(inventory_service, "adjust_stock", adjust)

        with pytest.raises(TransactionFailure):
            sales_service.record_sale(
                [line_item("p1", 3), line_item("p2", 1)],
                total=20,
                payment_method="Cash",
            )

        assert table_state() == before

    def test_unknown_product_fails_whole_sale(self, product_p1):
        before = table_state()
        with pytest.raises(NotFoundError) as exc_info:
            sales_service.record_sale(
                [line_item("p1", 3), line_item("missing", 1)],
                total=20,
                payment_method="Cash",
            )
        assert exc_info.value.status_code == 404
        assert exc_info.value.details["product_ids"] == ["missing"]
        assert table_state() == before

    def test_stock_floor_rejects_oversell(self, app, product_p1, product_p2):
        app.config["ALLOW_NEGATIVE_STOCK"] = False
        before = table_state()

        with pytest.raises(InsufficientStockError) as exc_info:
            sales_service.record_sale(
                [line_item("p1", 2), line_item("p2", 5)],
                total=20,
                payment_method="Cash",
            )

        assert exc_info.value.details["product_id"] == "p2"
        assert exc_info.value.details["on_hand"] == 4.5
        assert table_state() == before

    def test_stock_floor_allows_exact_sellout(self, app, product_p1):
        app.config["ALLOW_NEGATIVE_STOCK"] = False
        sales_service.record_sale([line_item("p1", 10)], total=50, payment_method="Cash")
        assert stock_of("p1") == 0.0

    def test_repeated_product_lines_are_summed(self, app, product_p1):
        app.config["ALLOW_NEGATIVE_STOCK"] = False
        with pytest.raises(InsufficientStockError):
            sales_service.record_sale(
                [line_item("p1", 6), line_item("p1", 6)],
                total=60,
                payment_method="Cash",
            )
        assert stock_of("p1") == 10.0


# =============================================================================
# VOID
# =============================================================================


class TestVoidSale:

    def test_void_is_exact_inverse(self, product_p1, product_p2):
        sale = sales_service.record_sale(
            [line_item("p1", 3), line_item("p2", 0.5), line_item("p1", 1.5)],
            total=30,
            payment_method="Card",
        )
        assert stock_of("p1") == 5.5
        assert stock_of("p2") == 4.0
        sale_id = sale.id

        voided = sales_service.void_sale(sale_id)

        assert voided["id"] == sale_id
        assert len(voided["items"]) == 3
        assert stock_of("p1") == 10.0
        assert stock_of("p2") == 4.5
        assert db.session.query(SaleLine).count() == 0
        assert db.session.query(Sale).count() == 0

    def test_scenario_c_unknown_sale(self, product_p1):
        sales_service.record_sale([line_item("p1", 1)], total=5, payment_method="Cash")
        before = table_state()

        with pytest.raises(NotFoundError):
            sales_service.void_sale("SALE-DOES-NOT-EXIST")

        assert table_state() == before

    def test_void_twice_is_not_found(self, product_p1):
        sale = sales_service.record_sale([line_item("p1", 1)], total=5, payment_method="Cash")
        sale_id = sale.id
        sales_service.void_sale(sale_id)

        with pytest.raises(NotFoundError):
            sales_service.void_sale(sale_id)
        assert stock_of("p1") == 10.0

    def test_void_fault_leaves_sale_intact(self, product_p1, product_p2, monkeypatch):
        sale = sales_service.record_sale(
            [line_item("p1", 3), line_item("p2", 1)],
            total=20,
            payment_method="Cash",
        )
        before = table_state()
        real_adjust = inventory_service.adjust_stock

        def adjust(product_id, delta, **kwargs):
            if product_id == "p2":
                raise TransactionFailure("simulated fault")
            return real_adjust(product_id, delta, **kwargs)

        monkeypatch.setattr(inventory_service, "adjust_stock", adjust)

        with pytest.raises(TransactionFailure):
            sales_service.void_sale(sale.id)

        assert table_state() == before

    def test_void_ignores_stock_floor(self, app, product_p1):
        sale = sales_service.record_sale([line_item("p1", 12)], total=60, payment_method="Cash")
        app.config["ALLOW_NEGATIVE_STOCK"] = False
        sales_service.void_sale(sale.id)
        assert stock_of("p1") == 10.0


# =============================================================================
# READS
# =============================================================================


class TestSaleReads:

    def test_list_sales_window(self, product_p1):
        first = sales_service.record_sale([line_item("p1", 1)], total=5, payment_method="Cash")
        second = sales_service.record_sale([line_item("p1", 1)], total=5, payment_method="Card")

        all_sales = sales_service.list_sales()
        assert {s.id for s in all_sales} == {first.id, second.id}
        assert all_sales[0].timestamp >= all_sales[1].timestamp

        assert sales_service.list_sales(start=second.timestamp + 1) == []
        window = sales_service.list_sales(start=first.timestamp, end=first.timestamp)
        assert first.id in {s.id for s in window}

    def test_get_sale_not_found(self, app):
        with pytest.raises(NotFoundError):
            sales_service.get_sale("SALE-NOPE00")


# =============================================================================
# CONCURRENCY
# =============================================================================


class TestConcurrentSales:

    def test_no_lost_updates_on_one_product(self, app):
        make_product("hot", 20.0)
        errors = []
        lock = threading.Lock()

        def worker():
            with app.app_context():
                try:
                    sales_service.record_sale(
                        [line_item("hot", 1.5)],
                        total=7.5,
                        payment_method="Cash",
                    )
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        assert stock_of("hot") == pytest.approx(5.0)
        assert db.session.query(Sale).count() == 10


# =============================================================================
# EVENTS
# =============================================================================


class TestSaleEvents:

    def test_sale_completed_published_with_items(self, product_p1, events):
        sale = sales_service.record_sale([line_item("p1", 2)], total=10, payment_method="Cash")

        received = events.get(timeout=2)
        assert received.name == "sale_completed"
        assert received.payload["id"] == sale.id
        assert received.payload["items"][0]["quantity"] == 2

    def test_sale_voided_published(self, product_p1, events):
        sale = sales_service.record_sale([line_item("p1", 2)], total=10, payment_method="Cash")
        sale_id = sale.id
        sales_service.void_sale(sale_id)

        completed, voided = events.get(timeout=2), events.get(timeout=2)
        assert [completed.name, voided.name] == ["sale_completed", "sale_voided"]
        assert voided.payload == sale_id

    def test_failed_sale_publishes_nothing(self, product_p1, events):
        with pytest.raises(ValidationError):
            sales_service.record_sale([], total=0, payment_method="Cash")
        with pytest.raises(queue.Empty):
            events.get(timeout=0.2)

    def test_broken_subscriber_does_not_fail_sale(self, product_p1):
        from stockledger.extensions import broadcaster

        broken = broadcaster.subscribe()
        broken.close()

        sale = sales_service.record_sale([line_item("p1", 1)], total=5, payment_method="Cash")

        assert db.session.get(Sale, sale.id) is not None
        assert stock_of("p1") == 9.0
