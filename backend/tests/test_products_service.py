import pytest

from stockroom.errors import ProductNotFound
from stockroom.models import StockTransaction
from stockroom.services.ledger_service import Ledger
from stockroom.services.products_service import ProductRegistry
from stockroom.services.stock_service import adjust_stock
from stockroom.validation import ConflictError, ValidationError


@pytest.fixture
def registry(db_session):
    return ProductRegistry(db_session)


class TestCreate:
    def test_opening_quantity_is_booked_as_stock_in(self, db_session, registry):
        p = registry.create_product({"name": "Lamp", "sku": "LMP-1", "quantity": 7, "price": 12.0}, user_id="u9")

        assert p.id.startswith("prod_")
        assert p.quantity == 7
        rows = db_session.query(StockTransaction).filter_by(product_id=p.id).all()
        assert len(rows) == 1
        assert rows[0].type == "stock_in"
        assert (rows[0].previous_quantity, rows[0].new_quantity) == (0, 7)
        assert rows[0].notes == "Initial stock"
        assert rows[0].user_id == "u9"

    def test_zero_opening_quantity_writes_no_row(self, db_session, registry):
        p = registry.create_product({"name": "Shelf"})

        assert p.quantity == 0
        assert p.price == 0.0
        assert p.unit == "unit"
        assert db_session.query(StockTransaction).count() == 0

    def test_name_required(self, registry):
        with pytest.raises(ValidationError):
            registry.create_product({"sku": "X"})

    def test_negative_opening_quantity(self, registry):
        with pytest.raises(ValidationError):
            registry.create_product({"name": "Bad", "quantity": -1})

    def test_duplicate_sku(self, registry, product):
        with pytest.raises(ConflictError):
            registry.create_product({"name": "Copy", "sku": product.sku})


class TestUpdateAndDelete:
    def test_update_attributes(self, registry, product):
        updated = registry.update_product(product.id, {"name": "Navy Widget", "min_stock": 12})

        assert updated.name == "Navy Widget"
        assert updated.min_stock == 12
        assert updated.quantity == 10

    def test_quantity_is_not_writable(self, registry, product):
        with pytest.raises(ValidationError):
            registry.update_product(product.id, {"quantity": 500})

    def test_sku_conflict_on_update(self, registry, make_product, product):
        other = make_product()

        with pytest.raises(ConflictError):
            registry.update_product(other.id, {"sku": product.sku})

    def test_soft_delete_keeps_ledger(self, db_session, registry, product):
        registry.delete_product(product.id)

        assert registry.get_product(product.id).is_active is False
        assert registry.list_products() == []
        assert [p.id for p in registry.list_products(is_active=False)] == [product.id]
        assert Ledger(db_session).ledger_quantity(product.id) == 10

    def test_unknown_product(self, registry):
        with pytest.raises(ProductNotFound):
            registry.update_product("prod_missing", {"name": "x"})


class TestLookups:
    def test_barcode(self, registry, make_product):
        p = make_product(barcode="4006381333931")

        assert registry.get_product_by_barcode("4006381333931").id == p.id
        with pytest.raises(ProductNotFound):
            registry.get_product_by_barcode("0000")

    def test_search(self, registry, make_product):
        make_product(name="Red Mug", sku="MUG-R")
        make_product(name="Blue Plate", sku="PLT-B")

        assert [p.sku for p in registry.list_products(search="Mug")] == ["MUG-R"]
        assert [p.sku for p in registry.list_products(search="PLT")] == ["PLT-B"]


class TestStockClassification:
    @pytest.fixture
    def shelf(self, make_product):
        return {
            "healthy": make_product(name="Healthy", quantity=20, min_stock=5, price=1.0),
            "at_threshold": make_product(name="At threshold", quantity=5, min_stock=5, price=2.0),
            "low": make_product(name="Low", quantity=1, min_stock=5, price=3.0),
            "empty": make_product(name="Empty", quantity=0, min_stock=5, price=4.0),
            "no_threshold": make_product(name="No threshold", quantity=1, min_stock=0, price=5.0),
        }

    def test_low_stock_excludes_empty_and_untracked(self, registry, shelf):
        low = {p.name for p in registry.list_low_stock()}

        assert low == {"At threshold", "Low"}
        assert shelf["low"].is_low_stock
        assert not shelf["empty"].is_low_stock

    def test_out_of_stock(self, registry, shelf):
        assert [p.name for p in registry.list_out_of_stock()] == ["Empty"]

    def test_product_moves_between_classes(self, registry, shelf):
        adjust_stock(shelf["low"].id, -1, "sale")

        assert "Low" not in {p.name for p in registry.list_low_stock()}
        assert "Low" in {p.name for p in registry.list_out_of_stock()}

    def test_inactive_products_are_ignored(self, registry, shelf):
        registry.delete_product(shelf["empty"].id)

        assert registry.list_out_of_stock() == []

    def test_inventory_stats(self, registry, shelf):
        stats = registry.inventory_stats()

        assert stats == {
            "total_products": 5,
            "total_quantity": 27,
            "total_value": 38.0,
            "out_of_stock_count": 1,
            "low_stock_count": 2,
        }
