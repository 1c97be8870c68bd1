"""滞留订单回滚本地执行脚本"""

import argparse
import logging

from app.core.config import settings
from app.core.redis import redis_client
from app.db.session import SessionLocal
from app.services.order_placement import OrderPlacementCoordinator

# 配置日志
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

def run_sweep(batch_size: int = 500, older_than_minutes: int = None, dry_run: bool = False) -> int:
    """执行滞留订单回滚

    Args:
        batch_size: 批处理大小
        older_than_minutes: 超过多少分钟仍为 CREATED 视为滞留，默认取配置
        dry_run: 试运行模式，只统计不回滚
    """
    db = SessionLocal()
    try:
        coordinator = OrderPlacementCoordinator(db, redis_client)
        if dry_run:
            count = coordinator.count_stale_orders(older_than_minutes)
            logger.info(f"试运行模式：发现 {count} 个滞留订单待回滚")
            return count

        count = coordinator.sweep_stale_orders(batch_size, older_than_minutes)
        logger.info(f"回滚完成：{count} 个滞留订单")
        return count
    except Exception as e:
        logger.error(f"回滚执行失败: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='滞留订单回滚工具')
    parser.add_argument(
        '--batch-size',
        type=int,
        default=500,
        help='批处理大小 (默认: 500)'
    )
    parser.add_argument(
        '--older-than-minutes',
        type=int,
        default=None,
        help=f'滞留阈值分钟数 (默认: {settings.STALE_ORDER_MINUTES})'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='试运行模式，只统计不回滚'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='详细输出模式'
    )

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        result = run_sweep(args.batch_size, args.older_than_minutes, args.dry_run)
    except Exception as e:
        print(f"❌ 执行失败: {str(e)}")
        return 1

    if args.dry_run:
        print(f"📊 试运行结果：发现 {result} 个滞留订单")
    else:
        print(f"✅ 回滚完成：处理了 {result} 个订单")
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
