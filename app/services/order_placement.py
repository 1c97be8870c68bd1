"""下单协调器

下单流程（全部成功或全部回滚）：

1. 校验用户与购物车，失败直接返回，不创建订单头
2. 创建 CREATED 订单头并提交
3. 逐行：确认订单仍为 CREATED（持有订单行锁）、扣减库存、写明细，
   同一事务提交；成功的行进入回滚列表
4. 任一行失败（库存不足、商品不存在、存储异常、超时）：
   订单 CREATED -> FAILED，按回滚列表逆序归还库存并删除明细，同一事务提交
5. 全部成功：订单 CREATED -> COMMITTED

补偿本身失败时订单保持 CREATED，由 sweep_stale_orders 清理任务接手。
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from redis import Redis
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    OrderServiceError,
    OrderStateConflict,
    PlacementTimeout,
    StorageError,
    ValidationError,
)
from app.models.order import Order, OrderStatus
from app.models.order_line import OrderLine
from app.models.product import Product
from app.services.order_header_store import OrderHeaderStore, is_positive_id
from app.services.order_line_writer import OrderLineWriter
from app.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartLine:
    product_id: int
    requested_qty: int


@dataclass(frozen=True)
class PlacedLine:
    line_id: int
    product_id: int
    quantity: int
    unit_price: Optional[Decimal] = None


@dataclass
class PlacementResult:
    order_id: int
    status: OrderStatus
    lines: List[PlacedLine] = field(default_factory=list)


class OrderPlacementCoordinator:
    """下单协调器：订单头、库存账本、明细写入的编排者"""

    def __init__(
        self,
        db: Session,
        redis: Optional[Redis] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.db = db
        self.ledger = StockLedger(db, redis)
        self.headers = OrderHeaderStore(db)
        self.lines = OrderLineWriter(db)
        self.timeout_seconds = (
            settings.ORDER_PLACEMENT_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )

    def place_order(self, user_id: int, cart: Iterable[Any]) -> PlacementResult:
        """下单并扣减库存

        Args:
            user_id: 下单用户ID（由认证服务提供）
            cart: 购物车行，CartLine 或 {"product_id", "requested_qty"} 字典

        Returns:
            PlacementResult，状态为 COMMITTED

        Raises:
            ValidationError: 参数不合法，未创建订单头
            InsufficientStock / ProductNotFound: 某行失败，订单已回滚为 FAILED
            StorageError: 存储异常或超时，订单已回滚为 FAILED
            OrderStateConflict: 订单在扣减过程中被清理任务终结
        """
        cart_lines = self.normalize_cart(user_id, cart)

        try:
            order_id = self.headers.create_header(user_id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"创建订单头失败: user_id={user_id}, error={e}")
            raise StorageError() from e

        deadline = time.monotonic() + self.timeout_seconds
        applied: List[PlacedLine] = []

        try:
            for line in cart_lines:
                if time.monotonic() > deadline:
                    raise PlacementTimeout(order_id=order_id)

                self.headers.ensure_created(order_id)
                quantity = self.ledger.reserve(line.product_id, line.requested_qty, order_id=order_id)
                written = self.lines.write_line(order_id, line.product_id, quantity)
                placed = PlacedLine(written.id, written.product_id, written.quantity, written.unit_price)
                self.db.commit()
                applied.append(placed)

            self.headers.mark_status(order_id, OrderStatus.COMMITTED)
            self.db.commit()

        except OrderServiceError as e:
            logger.info(f"下单失败，开始回滚: order_id={order_id}, reason={e.message}")
            self._abort(order_id, applied)
            e.details.setdefault("order_id", order_id)
            raise
        except Exception as e:
            logger.error(f"下单存储异常，开始回滚: order_id={order_id}, error={e}", exc_info=True)
            self._abort(order_id, applied)
            raise StorageError(order_id=order_id) from e
        finally:
            self.ledger.invalidate_cached_stock()

        logger.info(f"下单成功: order_id={order_id}, user_id={user_id}, lines={len(applied)}")
        return PlacementResult(order_id=order_id, status=OrderStatus.COMMITTED, lines=applied)

    def normalize_cart(self, user_id: int, cart: Iterable[Any]) -> List[CartLine]:
        """校验并合并购物车（同一商品数量相加，保持首次出现的顺序）"""
        if not is_positive_id(user_id):
            raise ValidationError("用户ID必须为正整数", user_id=user_id)

        merged: Dict[int, int] = {}
        for index, raw in enumerate(cart or []):
            if isinstance(raw, CartLine):
                product_id, quantity = raw.product_id, raw.requested_qty
            elif isinstance(raw, dict):
                product_id, quantity = raw.get("product_id"), raw.get("requested_qty")
            else:
                product_id = getattr(raw, "product_id", None)
                quantity = getattr(raw, "requested_qty", None)

            if not is_positive_id(product_id):
                raise ValidationError("商品ID必须为正整数", line=index, product_id=product_id)
            if not is_positive_id(quantity):
                raise ValidationError("购买数量必须为正整数", line=index, requested_qty=quantity)

            merged[product_id] = merged.get(product_id, 0) + quantity

        if not merged:
            raise ValidationError("购物车不能为空")

        return [CartLine(pid, qty) for pid, qty in merged.items()]

    def sweep_stale_orders(self, batch_size: int = 500, older_than_minutes: Optional[int] = None) -> int:
        """回滚长时间停留在 CREATED 的订单（进程中途崩溃留下的半成品）

        Returns:
            回滚的订单数量
        """
        cutoff = self._stale_cutoff(older_than_minutes)
        total_swept = 0
        skipped: Set[int] = set()

        while True:
            stmt = (
                select(Order.id)
                .where(Order.status == OrderStatus.CREATED, Order.created_at <= cutoff)
                .order_by(Order.id)
                .limit(batch_size)
            )
            if skipped:
                stmt = stmt.where(Order.id.notin_(skipped))
            order_ids = list(self.db.execute(stmt).scalars().all())
            self.db.rollback()

            if not order_ids:
                break

            logger.info(f"本批次待回滚 {len(order_ids)} 个滞留订单")

            for order_id in order_ids:
                if self._compensate(order_id, source="sweeper"):
                    total_swept += 1
                else:
                    skipped.add(order_id)

            self.ledger.invalidate_cached_stock()

            if len(order_ids) < batch_size:
                break

        logger.info(f"滞留订单清理完成，共回滚 {total_swept} 个订单")
        return total_swept

    def count_stale_orders(self, older_than_minutes: Optional[int] = None) -> int:
        cutoff = self._stale_cutoff(older_than_minutes)
        return self.db.execute(
            select(func.count())
            .select_from(Order)
            .where(Order.status == OrderStatus.CREATED, Order.created_at <= cutoff)
        ).scalar_one()

    def get_order(self, order_id: int) -> Dict[str, Any]:
        order = self.headers.get(order_id)
        return self._serialize(order, self._line_rows([order.id]).get(order.id, []))

    def list_orders(self, user_id: Optional[int] = None, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        orders = self.headers.list_headers(user_id=user_id, limit=limit, offset=offset)
        rows = self._line_rows([o.id for o in orders])
        return [self._serialize(order, rows.get(order.id, [])) for order in orders]

    # ------------------------------------------------------------------

    def _stale_cutoff(self, older_than_minutes: Optional[int]) -> datetime:
        minutes = settings.STALE_ORDER_MINUTES if older_than_minutes is None else older_than_minutes
        # 不早于下单超时，避免回滚仍在扣减中的订单
        age = max(timedelta(minutes=minutes), timedelta(seconds=self.timeout_seconds))
        return datetime.now(timezone.utc) - age

    def _abort(self, order_id: int, applied: List[PlacedLine]) -> None:
        self.db.rollback()
        self._compensate(order_id, applied)

    def _compensate(
        self,
        order_id: int,
        applied: Optional[List[PlacedLine]] = None,
        source: str = "order_service",
    ) -> bool:
        """订单转 FAILED 并逆序归还已扣减的库存，返回是否完成补偿

        applied 为 None 时（清理任务）在状态变更之后读取已提交的明细，
        此时订单行锁已持有，下单流程不会再写入新的明细。
        """
        try:
            self.headers.mark_status(order_id, OrderStatus.FAILED)
            if applied is None:
                applied = [
                    PlacedLine(line.id, line.product_id, line.quantity, line.unit_price)
                    for line in self.lines.lines_for(order_id)
                ]
            for line in reversed(applied):
                self.ledger.release(line.product_id, line.quantity, order_id=order_id, source=source)
                self.lines.discard_line(line.line_id)
            self.db.commit()
        except OrderStateConflict:
            # 已被其他流程终结（例如清理任务），不能重复归还
            self.db.rollback()
            logger.info(f"订单已终结，跳过补偿: order_id={order_id}")
            return False
        except (SQLAlchemyError, OrderServiceError):
            self.db.rollback()
            logger.error(
                f"补偿失败，订单保持 CREATED 等待清理任务: order_id={order_id}", exc_info=True
            )
            return False

        logger.info(f"订单已回滚: order_id={order_id}, released_lines={len(applied)}")
        return True

    def _line_rows(self, order_ids: List[int]) -> Dict[int, List[Tuple]]:
        if not order_ids:
            return {}
        rows = self.db.execute(
            select(
                OrderLine.order_id,
                OrderLine.product_id,
                Product.name,
                OrderLine.quantity,
                OrderLine.unit_price,
            )
            .join(Product, Product.id == OrderLine.product_id)
            .where(OrderLine.order_id.in_(order_ids))
            .order_by(OrderLine.id)
        ).all()
        grouped: Dict[int, List[Tuple]] = {}
        for row in rows:
            grouped.setdefault(row.order_id, []).append(row)
        return grouped

    @staticmethod
    def _serialize(order: Order, rows: List[Tuple]) -> Dict[str, Any]:
        return {
            "order_id": order.id,
            "user_id": order.user_id,
            "status": order.status.value,
            "created_at": order.created_at,
            "lines": [
                {
                    "product_id": row.product_id,
                    "product_name": row.name,
                    "quantity": row.quantity,
                    "unit_price": row.unit_price,
                }
                for row in rows
            ],
        }
