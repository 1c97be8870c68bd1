"""数据库引擎配置测试"""
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine, func, select, update
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.core.exceptions import StorageError
from app.db.base import Base
from app.db.session import _engine_options
from app.models import Order, Product
from app.services.order_placement import CartLine, OrderPlacementCoordinator


class TestEngineOptions:

    def test_postgres_statement_and_lock_timeouts(self):
        with patch.object(settings, "DB_STATEMENT_TIMEOUT_MS", 8000), \
                patch.object(settings, "DB_LOCK_TIMEOUT_MS", 3000):
            options = _engine_options("postgresql+psycopg://u:p@db:5432/orders")

        assert options["pool_pre_ping"] is True
        assert "statement_timeout=8000" in options["connect_args"]["options"]
        assert "lock_timeout=3000" in options["connect_args"]["options"]

    def test_sqlite_busy_timeout(self):
        with patch.object(settings, "DB_LOCK_TIMEOUT_MS", 2500):
            options = _engine_options("sqlite:///./orders.db")

        assert options["connect_args"] == {"check_same_thread": False, "timeout": 2.5}
        assert "pool_size" not in options


class TestLockWait:
    """写锁被长期占用时，下单在超时后返回存储异常"""

    def test_blocked_write_becomes_storage_error(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'locked.db'}"
        with patch.object(settings, "DB_LOCK_TIMEOUT_MS", 100):
            engine = create_engine(url, **_engine_options(url))
        Base.metadata.create_all(engine)
        SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

        with SessionLocal() as setup:
            product = Product(sku="LOCK", name="锁等待商品", price=1, stock_quantity=5)
            setup.add(product)
            setup.commit()
            pid = product.id

        blocker = SessionLocal()
        db = SessionLocal()
        try:
            # 未提交的写事务持有数据库写锁
            blocker.execute(
                update(Product).where(Product.id == pid).values(stock_quantity=Product.stock_quantity)
            )

            with pytest.raises(StorageError) as exc_info:
                OrderPlacementCoordinator(db).place_order(1, [CartLine(pid, 1)])

            assert exc_info.value.status_code == 500
            blocker.rollback()
            assert db.execute(select(func.count()).select_from(Order)).scalar_one() == 0
            assert db.execute(select(Product.stock_quantity).where(Product.id == pid)).scalar_one() == 5
        finally:
            blocker.close()
            db.close()
            engine.dispose()
