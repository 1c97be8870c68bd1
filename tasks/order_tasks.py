"""订单相关的 Celery 任务"""

import logging

from celery_app import app
from app.core.redis import redis_client
from app.db.session import SessionLocal
from app.services.idempotency import IdempotencyService
from app.services.order_placement import OrderPlacementCoordinator

logger = logging.getLogger(__name__)

@app.task(name='tasks.orders.sweep_stale_orders')
def sweep_stale_orders(batch_size: int = 500):
    """回滚滞留在 CREATED 状态的订单

    Args:
        batch_size: 批处理大小，默认500条

    Returns:
        清理结果描述
    """
    db = SessionLocal()
    try:
        coordinator = OrderPlacementCoordinator(db, redis_client)
        count = coordinator.sweep_stale_orders(batch_size)
        result = f"成功回滚 {count} 个滞留订单"
        logger.info(result)
        return result
    except Exception as e:
        logger.error(f"滞留订单清理任务执行失败: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()

@app.task(name='tasks.orders.purge_idempotency_keys')
def purge_idempotency_keys():
    """删除过期的幂等记录"""
    db = SessionLocal()
    try:
        count = IdempotencyService(db).purge_expired()
        return f"清理 {count} 条过期幂等记录"
    except Exception as e:
        logger.error(f"幂等记录清理失败: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()

# 导出任务
__all__ = [
    'sweep_stale_orders',
    'purge_idempotency_keys',
]
