"""依赖注入配置模块"""

import logging
from typing import Generator, Optional

from fastapi import Depends
from redis import Redis
from redis.exceptions import RedisError
from redlock import Redlock
from sqlalchemy.orm import Session

# 数据库会话依赖
from app.db.session import SessionLocal

# Redis 依赖
from app.core.redis import redis_client, redlock

from app.services.idempotency import IdempotencyService
from app.services.order_placement import OrderPlacementCoordinator
from app.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)


def get_db() -> Generator[Session, None, None]:
    """获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_redis() -> Optional[Redis]:
    """获取 Redis 客户端，不可用时返回 None（不使用缓存）"""
    try:
        redis_client.ping()
    except RedisError as e:
        logger.warning(f"Redis 不可用，跳过缓存: {e}")
        return None
    return redis_client

def get_redlock() -> Optional[Redlock]:
    """获取 Redlock 分布式锁实例

    未配置服务器，或可连通的服务器不足半数以上时返回 None，
    幂等控制退化为数据库主键约束。
    """
    servers = getattr(redlock, "servers", None)
    if not servers:
        return None

    reachable = 0
    for server in servers:
        try:
            server.ping()
            reachable += 1
        except RedisError as e:
            logger.warning(f"Redlock 节点不可用: {e}")

    if reachable < len(servers) // 2 + 1:
        logger.warning(f"Redlock 可用节点不足 ({reachable}/{len(servers)})，跳过分布式锁")
        return None
    return redlock


def get_order_coordinator(
    db: Session = Depends(get_db),
    redis: Optional[Redis] = Depends(get_redis),
) -> OrderPlacementCoordinator:
    """获取下单协调器"""
    return OrderPlacementCoordinator(db=db, redis=redis)

def get_stock_ledger(
    db: Session = Depends(get_db),
    redis: Optional[Redis] = Depends(get_redis),
) -> StockLedger:
    """获取库存账本"""
    return StockLedger(db=db, redis=redis)

def get_idempotency_service(
    db: Session = Depends(get_db),
    rlock: Optional[Redlock] = Depends(get_redlock),
) -> IdempotencyService:
    """获取幂等服务"""
    return IdempotencyService(db=db, rlock=rlock)


# 常用的依赖注入别名
DatabaseDep = Depends(get_db)
RedisDep = Depends(get_redis)
RedlockDep = Depends(get_redlock)
OrderCoordinatorDep = Depends(get_order_coordinator)
StockLedgerDep = Depends(get_stock_ledger)
IdempotencyServiceDep = Depends(get_idempotency_service)
