from sqlalchemy import (
    Column,
    BigInteger,
    Integer,
    Numeric,
    TIMESTAMP,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship
from app.db.base import Base, BigIntPK


class OrderLine(Base):
    """订单明细，只在对应库存扣减成功的同一事务内写入"""

    __tablename__ = "order_lines"

    id = Column(
        BigIntPK,
        primary_key=True,
        autoincrement=True,
    )

    order_id = Column(
        BigInteger,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="订单ID",
    )

    product_id = Column(
        BigInteger,
        ForeignKey("products.id"),
        nullable=False,
        index=True,
        comment="商品ID",
    )

    quantity = Column(
        Integer,
        nullable=False,
        comment="已扣减数量",
    )

    unit_price = Column(
        Numeric(10, 2),
        nullable=True,
        comment="下单时单价快照",
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    order = relationship("Order", back_populates="lines")
    product = relationship("Product")

    __table_args__ = (
        # 同一订单同一商品只有一行
        UniqueConstraint(
            "order_id",
            "product_id",
            name="uq_order_lines_order_product",
        ),
        CheckConstraint(
            "quantity > 0",
            name="ck_order_lines_quantity_positive",
        ),
    )
