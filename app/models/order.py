import enum

from sqlalchemy import (
    Column,
    BigInteger,
    TIMESTAMP,
    Enum,
    Index,
    func,
)
from sqlalchemy.orm import relationship
from app.db.base import Base, BigIntPK



# 1️ 订单状态枚举

class OrderStatus(str, enum.Enum):
    CREATED = "CREATED"       # 已创建，正在扣减库存
    COMMITTED = "COMMITTED"   # 全部行扣减成功
    FAILED = "FAILED"         # 已回滚



# 2️ 订单头表

class Order(Base):
    __tablename__ = "orders"

    id = Column(
        BigIntPK,
        primary_key=True,
        autoincrement=True,
    )

    user_id = Column(
        BigInteger,
        nullable=False,
        index=True,
        comment="下单用户ID（由认证服务提供）",
    )

    status = Column(
        Enum(
            OrderStatus,
            name="order_status_type",
        ),
        nullable=False,
        default=OrderStatus.CREATED,
        server_default=OrderStatus.CREATED.value,
        comment="订单状态",
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    lines = relationship(
        "OrderLine",
        back_populates="order",
        order_by="OrderLine.id",
    )



# 3️ 清理任务按状态 + 创建时间扫描

Index(
    "idx_orders_status_created",
    Order.status,
    Order.created_at,
)
