import gc
import threading

import pytest
from sqlalchemy.exc import OperationalError

from stockroom import create_app
from stockroom.errors import AlreadyCompleted, InsufficientStockError
from stockroom.extensions import db
from stockroom.models import Product, StockTransaction
from stockroom.services import concurrency
from stockroom.services.concurrency import keyed_lock, product_lock, return_lock, run_with_retry
from stockroom.services.ledger_service import Ledger
from stockroom.services.products_service import ProductRegistry
from stockroom.services.return_service import ReturnWorkflow
from stockroom.services.stock_service import adjust_stock


class FakeSession:
    def __init__(self):
        self.rollbacks = 0

    def rollback(self):
        self.rollbacks += 1


class TestKeyedLock:
    def test_reentrant_in_same_thread(self):
        with product_lock("prod_a"):
            with product_lock("prod_a"):
                pass

    def test_excludes_other_threads(self):
        entered = threading.Event()
        release = threading.Event()
        order = []

        def holder():
            with keyed_lock("product:prod_b"):
                entered.set()
                release.wait(timeout=5)
                order.append("holder")

        def contender():
            with keyed_lock("product:prod_b"):
                order.append("contender")

        t1 = threading.Thread(target=holder)
        t1.start()
        entered.wait(timeout=5)
        t2 = threading.Thread(target=contender)
        t2.start()
        t2.join(timeout=0.2)
        assert t2.is_alive()

        release.set()
        t1.join(timeout=5)
        t2.join(timeout=5)
        assert order == ["holder", "contender"]

    def test_distinct_keys_do_not_block(self):
        done = threading.Event()

        def other():
            with product_lock("prod_d"):
                done.set()

        with product_lock("prod_c"):
            t = threading.Thread(target=other)
            t.start()
            assert done.wait(timeout=5)
            t.join()

    def test_released_locks_leave_the_registry(self):
        with return_lock("ret_gone"):
            assert "return:ret_gone" in concurrency._keyed_locks

        gc.collect()
        assert "return:ret_gone" not in concurrency._keyed_locks


class TestRunWithRetry:
    def test_retries_operational_error(self):
        session = FakeSession()
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise OperationalError("UPDATE products", {}, Exception("database is locked"))
            return "ok"

        assert run_with_retry(flaky, session=session, backoff_base=0) == "ok"
        assert len(calls) == 3
        assert session.rollbacks == 2

    def test_gives_up_after_attempts(self):
        session = FakeSession()

        def always_locked():
            raise OperationalError("UPDATE products", {}, Exception("database is locked"))

        with pytest.raises(OperationalError):
            run_with_retry(always_locked, session=session, attempts=2, backoff_base=0)
        assert session.rollbacks == 2

    def test_domain_errors_are_not_retried(self):
        session = FakeSession()
        calls = []

        def refuse():
            calls.append(1)
            raise InsufficientStockError("prod_x", available=0, requested=1)

        with pytest.raises(InsufficientStockError):
            run_with_retry(refuse, session=session, backoff_base=0)
        assert len(calls) == 1
        assert session.rollbacks == 0


class TestConcurrentStockChanges:
    """Many threads against one product on a file-backed database."""

    STOCK_OUT_THREADS = 30
    COMPLETION_THREADS = 5
    OPENING_STOCK = 20
    RETURN_QUANTITY = 3

    @pytest.fixture
    def race_app(self, tmp_path):
        app = create_app({
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'race.sqlite3'}",
            'SQLALCHEMY_ENGINE_OPTIONS': {"connect_args": {"check_same_thread": False, "timeout": 30}},
        })
        with app.app_context():
            db.create_all()
            yield app
            db.session.remove()
            db.drop_all()
            db.engine.dispose()

    def _run_threads(self, app, targets):
        start = threading.Barrier(len(targets))
        outcomes = []
        outcomes_guard = threading.Lock()

        def worker(kind, fn):
            with app.app_context():
                start.wait(timeout=10)
                try:
                    fn()
                    result = "ok"
                except InsufficientStockError:
                    result = "insufficient"
                except AlreadyCompleted:
                    result = "terminal"
                except Exception as exc:
                    result = f"error: {exc!r}"
                finally:
                    db.session.remove()
                with outcomes_guard:
                    outcomes.append((kind, result))

        threads = [threading.Thread(target=worker, args=target) for target in targets]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)
        assert not any(t.is_alive() for t in threads)
        return outcomes

    def test_stock_outs_and_completions_keep_the_ledger_consistent(self, race_app):
        product = ProductRegistry().create_product(
            {"name": "Contested", "sku": "RACE-1", "quantity": self.OPENING_STOCK}
        )
        product_id = product.id
        return_id = ReturnWorkflow().create_return(
            {"product_id": product_id, "type": "return_in", "quantity": self.RETURN_QUANTITY}
        ).id

        targets = [
            ("stock_out", lambda: adjust_stock(product_id, -1, "stock_out"))
            for _ in range(self.STOCK_OUT_THREADS)
        ] + [
            ("complete", lambda: ReturnWorkflow().process_return(return_id, "completed"))
            for _ in range(self.COMPLETION_THREADS)
        ]
        outcomes = self._run_threads(race_app, targets)

        assert [o for o in outcomes if o[1].startswith("error")] == []

        completions = [result for kind, result in outcomes if kind == "complete"]
        assert completions.count("ok") == 1
        assert completions.count("terminal") == self.COMPLETION_THREADS - 1

        stock_outs = [result for kind, result in outcomes if kind == "stock_out"]
        shipped = stock_outs.count("ok")
        assert shipped + stock_outs.count("insufficient") == self.STOCK_OUT_THREADS
        assert self.OPENING_STOCK <= shipped <= self.OPENING_STOCK + self.RETURN_QUANTITY

        db.session.expire_all()
        quantity = db.session.get(Product, product_id).quantity
        assert quantity >= 0
        assert quantity == self.OPENING_STOCK + self.RETURN_QUANTITY - shipped

        rows = db.session.query(StockTransaction).filter_by(product_id=product_id)
        assert rows.filter_by(type="return_in").count() == 1
        assert rows.filter_by(type="stock_out").count() == shipped
        assert Ledger().verify() == []
        assert ReturnWorkflow().get_return(return_id).status == "completed"
