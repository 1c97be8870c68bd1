"""订单头存储"""

import logging
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.exceptions import OrderNotFound, OrderStateConflict, ValidationError
from app.models.order import Order, OrderStatus

logger = logging.getLogger(__name__)

FINAL_STATUSES = (OrderStatus.COMMITTED, OrderStatus.FAILED)


def is_positive_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class OrderHeaderStore:
    """订单头的创建、状态流转与查询（不负责提交事务）"""

    def __init__(self, db: Session):
        self.db = db

    def create_header(self, user_id: int) -> int:
        """创建 CREATED 状态的订单头，返回订单ID"""
        if not is_positive_id(user_id):
            raise ValidationError("用户ID必须为正整数", user_id=user_id)

        order = Order(user_id=user_id, status=OrderStatus.CREATED)
        self.db.add(order)
        self.db.flush()
        logger.debug(f"创建订单头: order_id={order.id}, user_id={user_id}")
        return order.id

    def ensure_created(self, order_id: int) -> None:
        """确认订单仍为 CREATED，并持有订单行锁直到本事务结束

        每一行扣减都必须先调用，与清理任务的 CREATED -> FAILED 串行化。
        """
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.CREATED)
            .values(updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = self.db.execute(
                select(Order.status).where(Order.id == order_id)
            ).scalar_one_or_none()
            if current is None:
                raise OrderNotFound(order_id)
            raise OrderStateConflict(
                f"订单 {order_id} 已被终结为 {current.value}，停止扣减",
                order_id=order_id,
            )

    def mark_status(self, order_id: int, status: OrderStatus) -> None:
        """状态只能从 CREATED 前进到 COMMITTED / FAILED"""
        if status not in FINAL_STATUSES:
            raise ValidationError(f"不允许的订单状态: {status}", order_id=order_id)

        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.CREATED)
            .values(status=status)
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount == 0:
            current = self.db.execute(
                select(Order.status).where(Order.id == order_id)
            ).scalar_one_or_none()
            if current is None:
                raise OrderNotFound(order_id)
            raise OrderStateConflict(
                f"订单 {order_id} 当前状态为 {current.value}，不能变更为 {status.value}",
                order_id=order_id,
            )

    def get(self, order_id: int) -> Order:
        order = self.db.get(Order, order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def list_headers(self, user_id: Optional[int] = None, limit: int = 50, offset: int = 0) -> List[Order]:
        stmt = select(Order).order_by(Order.id.desc()).limit(limit).offset(offset)
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)
        return list(self.db.execute(stmt).scalars().all())
