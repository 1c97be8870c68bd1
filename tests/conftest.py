"""测试配置和 fixtures"""
from decimal import Decimal

import pytest
from unittest.mock import Mock
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from redis import Redis
from redlock import Redlock

from app.db.base import Base
from app.models import Product


@pytest.fixture
def engine():
    """内存 SQLite 引擎（每个测试独立建表）"""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def db_session(engine):
    """真实数据库会话"""
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def session_factory(tmp_path):
    """文件 SQLite 会话工厂（多会话、多线程测试使用）"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'orders.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    try:
        yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    finally:
        engine.dispose()


@pytest.fixture
def mock_redis():
    """创建模拟 Redis 客户端"""
    redis_mock = Mock(spec=Redis)
    redis_mock.get.return_value = None
    redis_mock.setex.return_value = True
    redis_mock.delete.return_value = 1
    redis_mock.mget.return_value = []
    redis_mock.pipeline.return_value = Mock()
    return redis_mock


@pytest.fixture
def mock_redlock():
    """创建模拟 Redlock 分布式锁"""
    redlock_mock = Mock(spec=Redlock)
    lock_mock = Mock()
    redlock_mock.lock.return_value = lock_mock
    redlock_mock.unlock.return_value = True
    return redlock_mock


@pytest.fixture
def make_product(db_session):
    """创建商品的工厂"""
    counter = {"n": 0}

    def _make(stock=10, price="9.90", name=None):
        counter["n"] += 1
        product = Product(
            sku=f"SKU{counter['n']:03d}",
            name=name or f"测试商品{counter['n']}",
            price=Decimal(price),
            stock_quantity=stock,
        )
        db_session.add(product)
        db_session.commit()
        return product.id

    return _make


def stock_of(db, product_id):
    """直接从数据库读取库存（绕过会话缓存）"""
    return db.execute(
        select(Product.stock_quantity).where(Product.id == product_id)
    ).scalar_one()


@pytest.fixture
def read_stock(db_session):
    return lambda product_id: stock_of(db_session, product_id)
