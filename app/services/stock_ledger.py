"""库存账本

商品库存 stock_quantity 的唯一修改入口。扣减使用单条条件 UPDATE
（WHERE stock_quantity >= :qty），由数据库行锁保证同一商品的并发扣减
可串行化，库存永远不会小于 0。

账本只 flush 不 commit，事务边界由调用方（OrderPlacementCoordinator）掌握。
"""

import logging
from typing import Dict, List, Optional, Set

from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import InsufficientStock, ProductNotFound, ValidationError
from app.models.inventory_logs import ChangeType, InventoryLog
from app.models.product import Product

logger = logging.getLogger(__name__)

STOCK_CACHE_KEY = "stock:available:{product_id}"


class StockLedger:
    """库存账本"""

    def __init__(self, db: Session, redis: Optional[Redis] = None, cache_ttl: Optional[int] = None):
        self.db = db
        self.redis = redis
        self.cache_ttl = settings.STOCK_CACHE_TTL_SECONDS if cache_ttl is None else cache_ttl
        # 本实例修改过的商品，提交后统一失效缓存
        self._touched: Set[int] = set()

    def reserve(self, product_id: int, quantity: int, order_id: Optional[int] = None) -> int:
        """扣减库存（拒绝策略），返回实际扣减数量

        库存不足时不做任何修改并抛出 InsufficientStock。
        """
        self._check_quantity(quantity)

        result = self.db.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock_quantity >= quantity)
            .values(stock_quantity=Product.stock_quantity - quantity)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            available = self._current_quantity(product_id)
            if available is None:
                raise ProductNotFound(product_id)
            logger.info(
                f"库存不足: product_id={product_id}, requested={quantity}, available={available}"
            )
            raise InsufficientStock(product_id, quantity, available)

        after = self._current_quantity(product_id)
        self._log(product_id, order_id, ChangeType.RESERVE, -quantity, after + quantity, after)
        logger.debug(f"扣减库存: order_id={order_id}, product_id={product_id}, quantity={quantity}")
        return quantity

    def release(self, product_id: int, quantity: int, order_id: Optional[int] = None, source: str = "order_service") -> int:
        """归还库存（回滚补偿），返回归还数量"""
        self._check_quantity(quantity)

        after = self._credit(product_id, quantity)
        self._log(
            product_id, order_id, ChangeType.RELEASE, quantity, after - quantity, after,
            source=source,
        )
        logger.debug(f"归还库存: order_id={order_id}, product_id={product_id}, quantity={quantity}")
        return quantity

    def restock(self, product_id: int, quantity: int, operator: str = "manual") -> int:
        """人工补货，返回补货后的库存"""
        self._check_quantity(quantity)

        after = self._credit(product_id, quantity)
        self._log(
            product_id, None, ChangeType.ADJUST, quantity, after - quantity, after,
            operator=operator, source="manual",
        )
        logger.info(f"补货: product_id={product_id}, quantity={quantity}, after={after}")
        return after

    def get_product_stock(self, product_id: int) -> int:
        """查询商品可用库存（带缓存），仅用于展示"""
        cache_key = STOCK_CACHE_KEY.format(product_id=product_id)

        cached = self._cache_get(cache_key)
        if cached is not None:
            logger.debug(f"Cache hit for product {product_id}")
            return int(cached)

        available = self._current_quantity(product_id)
        if available is None:
            raise ProductNotFound(product_id)

        self._cache_set(cache_key, available)
        return available

    def batch_get_stocks(self, product_ids: List[int]) -> Dict[int, int]:
        """批量获取库存（带缓存），不存在的商品返回 0"""
        if not product_ids:
            return {}

        results: Dict[int, int] = {}
        uncached_ids = list(product_ids)

        if self.redis is not None:
            keys = [STOCK_CACHE_KEY.format(product_id=pid) for pid in product_ids]
            try:
                cached_values = self.redis.mget(keys)
            except RedisError as e:
                logger.warning(f"Redis 批量读取失败，回退数据库: {e}")
                cached_values = [None] * len(product_ids)

            uncached_ids = []
            for pid, cached in zip(product_ids, cached_values):
                if cached is not None:
                    results[pid] = int(cached)
                else:
                    uncached_ids.append(pid)

        if uncached_ids:
            rows = self.db.execute(
                select(Product.id, Product.stock_quantity).where(Product.id.in_(uncached_ids))
            ).all()
            stock_map = {row.id: row.stock_quantity for row in rows}

            for pid in uncached_ids:
                results[pid] = stock_map.get(pid, 0)

            if self.redis is not None and stock_map:
                try:
                    pipe = self.redis.pipeline()
                    for pid, available in stock_map.items():
                        pipe.setex(STOCK_CACHE_KEY.format(product_id=pid), self.cache_ttl, available)
                    pipe.execute()
                except RedisError as e:
                    logger.warning(f"Redis 批量写入失败: {e}")

        return results

    def invalidate_cached_stock(self) -> None:
        """提交后调用：失效本实例修改过的商品缓存"""
        touched, self._touched = self._touched, set()
        if self.redis is None or not touched:
            return
        try:
            self.redis.delete(*[STOCK_CACHE_KEY.format(product_id=pid) for pid in sorted(touched)])
            logger.debug(f"Cache invalidated for products {sorted(touched)}")
        except RedisError as e:
            logger.warning(f"库存缓存失效失败: {e}")

    # ------------------------------------------------------------------

    def _check_quantity(self, quantity: int) -> None:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("数量必须为正整数", quantity=quantity)

    def _credit(self, product_id: int, quantity: int) -> int:
        result = self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=Product.stock_quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ProductNotFound(product_id)
        return self._current_quantity(product_id)

    def _current_quantity(self, product_id: int) -> Optional[int]:
        return self.db.execute(
            select(Product.stock_quantity).where(Product.id == product_id)
        ).scalar_one_or_none()

    def _log(self, product_id, order_id, change_type, quantity, before, after,
             operator: Optional[str] = None, source: str = "order_service") -> None:
        self.db.add(
            InventoryLog(
                product_id=product_id,
                order_id=order_id,
                change_type=change_type,
                quantity=quantity,
                before_quantity=before,
                after_quantity=after,
                operator=operator or (f"order_{order_id}" if order_id else None),
                source=source,
            )
        )
        self._touched.add(product_id)

    def _cache_get(self, key: str) -> Optional[str]:
        if self.redis is None:
            return None
        try:
            return self.redis.get(key)
        except RedisError as e:
            logger.warning(f"Redis 读取失败，回退数据库: {e}")
            return None

    def _cache_set(self, key: str, value: int) -> None:
        if self.redis is None:
            return
        try:
            self.redis.setex(key, self.cache_ttl, value)
        except RedisError as e:
            logger.warning(f"Redis 写入失败: {e}")
