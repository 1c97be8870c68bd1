"""订单明细写入"""

import logging
from typing import List

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.models.order_line import OrderLine
from app.models.product import Product

logger = logging.getLogger(__name__)


class OrderLineWriter:

    def __init__(self, db: Session):
        self.db = db

    def write_line(self, order_id: int, product_id: int, quantity: int) -> OrderLine:
        """写入一条明细，并快照当前单价

        只能在同一事务内 StockLedger.reserve 成功之后调用。
        """
        unit_price = self.db.execute(
            select(Product.price).where(Product.id == product_id)
        ).scalar_one_or_none()

        line = OrderLine(
            order_id=order_id,
            product_id=product_id,
            quantity=quantity,
            unit_price=unit_price,
        )
        self.db.add(line)
        self.db.flush()
        return line

    def discard_line(self, line_id: int) -> None:
        # 仅用于回滚补偿，与 StockLedger.release 同一事务
        self.db.execute(
            delete(OrderLine)
            .where(OrderLine.id == line_id)
            .execution_options(synchronize_session=False)
        )

    def lines_for(self, order_id: int) -> List[OrderLine]:
        return list(
            self.db.execute(
                select(OrderLine).where(OrderLine.order_id == order_id).order_by(OrderLine.id)
            ).scalars().all()
        )
