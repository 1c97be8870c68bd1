"""Celery 配置文件"""

from celery import Celery

from app.core.config import settings

# 创建 Celery 应用实例
app = Celery('order_worker', include=['tasks.order_tasks'])

# 配置 Redis 作为 broker 和 backend
app.conf.broker_url = settings.celery_url(settings.CELERY_BROKER_DB)
app.conf.result_backend = settings.celery_url(settings.CELERY_BACKEND_DB)

# 任务序列化配置
app.conf.task_serializer = 'json'
app.conf.result_serializer = 'json'
app.conf.accept_content = ['json']

# 时区配置
app.conf.timezone = 'UTC'
app.conf.enable_utc = True

# 任务路由配置
app.conf.task_routes = {
    'tasks.orders.*': {'queue': 'orders'},
}

# 定时回滚滞留订单、清理过期幂等键
app.conf.beat_schedule = {
    'sweep-stale-orders': {
        'task': 'tasks.orders.sweep_stale_orders',
        'schedule': float(settings.SWEEP_INTERVAL_SECONDS),
    },
    'purge-idempotency-keys': {
        'task': 'tasks.orders.purge_idempotency_keys',
        'schedule': 3600.0,
    },
}

# Worker 配置
app.conf.worker_prefetch_multiplier = 1
app.conf.task_acks_late = True

# 导出应用实例
__all__ = ['app']
