"""模型单元测试"""
import pytest
from decimal import Decimal
from sqlalchemy.exc import IntegrityError

from app.models import (
    ChangeType,
    IdempotencyKey,
    IdempotencyStatus,
    InventoryLog,
    Order,
    OrderLine,
    OrderStatus,
    Product,
)


class TestModels:
    """数据模型测试类"""

    def test_product_model(self, db_session):
        """测试商品模型"""
        product = Product(sku="PROD001", name="测试商品", price=Decimal("19.99"), stock_quantity=5)
        db_session.add(product)
        db_session.commit()

        saved_product = db_session.query(Product).first()
        assert saved_product.id is not None
        assert saved_product.sku == "PROD001"
        assert saved_product.price == Decimal("19.99")
        assert saved_product.created_at is not None
        assert saved_product.updated_at is not None

    def test_product_stock_cannot_be_negative(self, db_session):
        """测试库存非负约束"""
        db_session.add(Product(sku="PROD001", name="测试商品", price=1, stock_quantity=-1))

        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_product_sku_unique(self, db_session):
        """测试 SKU 唯一"""
        db_session.add(Product(sku="PROD001", name="商品A", price=1, stock_quantity=1))
        db_session.commit()
        db_session.add(Product(sku="PROD001", name="商品B", price=1, stock_quantity=1))

        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_order_defaults_to_created(self, db_session):
        """测试订单默认状态"""
        order = Order(user_id=1)
        db_session.add(order)
        db_session.commit()

        assert order.status == OrderStatus.CREATED
        assert order.created_at is not None

    def test_order_line_relationships(self, db_session, make_product):
        """测试订单明细关联"""
        pid = make_product(price="5.00")
        order = Order(user_id=1)
        db_session.add(order)
        db_session.flush()
        db_session.add(OrderLine(order_id=order.id, product_id=pid, quantity=2, unit_price=Decimal("5.00")))
        db_session.commit()

        db_session.refresh(order)
        assert len(order.lines) == 1
        assert order.lines[0].product.id == pid
        assert order.lines[0].order is order

    def test_order_line_quantity_positive(self, db_session, make_product):
        """测试明细数量必须为正"""
        pid = make_product()
        order = Order(user_id=1)
        db_session.add(order)
        db_session.flush()
        db_session.add(OrderLine(order_id=order.id, product_id=pid, quantity=0, unit_price=1))

        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_inventory_log_model(self, db_session, make_product):
        """测试库存日志模型"""
        pid = make_product(stock=10)
        log = InventoryLog(
            product_id=pid,
            order_id=1,
            change_type=ChangeType.RESERVE,
            quantity=-2,
            before_quantity=10,
            after_quantity=8,
            operator="order_1",
            source="order_service",
        )
        db_session.add(log)
        db_session.commit()

        saved = db_session.query(InventoryLog).first()
        assert saved.change_type == ChangeType.RESERVE
        assert saved.after_quantity == 8
        assert saved.created_at is not None

    def test_idempotency_key_snapshot(self, db_session):
        """测试幂等记录保存 JSON 快照"""
        record = IdempotencyKey(
            key="abc",
            request_hash="hash",
            status=IdempotencyStatus.SUCCESS,
            response_snapshot={"success": True, "order_id": 1},
        )
        db_session.add(record)
        db_session.commit()
        db_session.expunge_all()

        saved = db_session.get(IdempotencyKey, "abc")
        assert saved.response_snapshot == {"success": True, "order_id": 1}
        assert saved.status == IdempotencyStatus.SUCCESS
