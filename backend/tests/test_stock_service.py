import pytest

from stockroom.errors import InsufficientStockError, InvalidTypeError, ProductNotFound
from stockroom.models import Product, StockTransaction
from stockroom.services.ledger_service import Ledger
from stockroom.services.stock_service import StockEngine, adjust_stock, validate_change
from stockroom.validation import ValidationError


class TestValidateChange:
    @pytest.mark.parametrize("type_, change", [
        ("stock_in", 5),
        ("purchase", 1),
        ("return_in", 3),
        ("stock_out", -2),
        ("sale", -1),
        ("return_out", -4),
        ("adjustment", 7),
        ("adjustment", -7),
        ("transfer", -1),
    ])
    def test_accepts_matching_sign(self, type_, change):
        validate_change(change, type_)

    @pytest.mark.parametrize("type_, change", [
        ("stock_in", -5),
        ("sale", 3),
        ("return_out", 2),
    ])
    def test_rejects_contradicting_sign(self, type_, change):
        with pytest.raises(ValidationError):
            validate_change(change, type_)

    def test_rejects_zero(self):
        with pytest.raises(ValidationError):
            validate_change(0, "adjustment")

    @pytest.mark.parametrize("value", [1.5, "3", True, None])
    def test_rejects_non_integer(self, value):
        with pytest.raises(ValidationError):
            validate_change(value, "adjustment")

    def test_rejects_unknown_type(self):
        with pytest.raises(InvalidTypeError):
            validate_change(1, "gift")


class TestAdjustStock:
    def test_stock_in_updates_quantity_and_writes_ledger_row(self, db_session, product):
        result = adjust_stock(product.id, 5, "stock_in", reference_no="PO-1", user_id="u1")

        assert result.product.quantity == 15
        tx = result.transaction
        assert tx.id.startswith("txn_")
        assert tx.type == "stock_in"
        assert tx.quantity == 5
        assert tx.previous_quantity == 10
        assert tx.new_quantity == 15
        assert tx.reference_no == "PO-1"
        assert tx.user_id == "u1"

    def test_unit_price_defaults_to_product_price(self, db_session, product):
        tx = adjust_stock(product.id, -4, "sale").transaction

        assert tx.unit_price == 2.5
        assert tx.total_amount == 10.0
        assert tx.signed_quantity == -4

    def test_explicit_unit_price_is_used(self, db_session, product):
        tx = adjust_stock(product.id, 3, "purchase", unit_price=1.333).transaction

        assert tx.unit_price == 1.333
        assert tx.total_amount == 4.0

    def test_insufficient_stock_writes_nothing(self, db_session, product):
        before = db_session.query(StockTransaction).count()

        with pytest.raises(InsufficientStockError) as exc:
            adjust_stock(product.id, -15, "stock_out")

        assert exc.value.available == 10
        assert exc.value.requested == 15
        db_session.expire_all()
        assert db_session.get(Product, product.id).quantity == 10
        assert db_session.query(StockTransaction).count() == before

    def test_can_drain_to_exactly_zero(self, db_session, product):
        result = adjust_stock(product.id, -10, "stock_out")

        assert result.product.quantity == 0
        assert result.product.is_out_of_stock

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFound):
            adjust_stock("prod_missing", 1, "stock_in")

    def test_inactive_product_can_still_move(self, db_session, product):
        product.is_active = False
        db_session.commit()

        assert adjust_stock(product.id, 1, "adjustment").product.quantity == 11

    def test_commit_false_leaves_transaction_open(self, db_session, product):
        StockEngine(db_session).adjust_stock(product.id, 2, "stock_in", commit=False)
        db_session.rollback()

        db_session.expire_all()
        assert db_session.get(Product, product.id).quantity == 10
        assert Ledger(db_session).ledger_quantity(product.id) == 10

    def test_ledger_sum_matches_quantity_after_many_changes(self, db_session, product):
        for change, type_ in [(5, "stock_in"), (-3, "sale"), (-2, "adjustment"), (4, "return_in")]:
            adjust_stock(product.id, change, type_)
        with pytest.raises(InsufficientStockError):
            adjust_stock(product.id, -100, "stock_out")

        db_session.expire_all()
        assert db_session.get(Product, product.id).quantity == 14
        assert Ledger(db_session).ledger_quantity(product.id) == 14
        assert Ledger(db_session).verify() == []
