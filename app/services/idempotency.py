"""下单接口幂等控制

客户端通过 Idempotency-Key 请求头重试下单时：
- 首次请求：登记 PROCESSING，执行下单
- 相同 key + 相同请求体且已成功：直接返回成功时的响应快照
- 相同 key + 不同请求体，或首次请求仍在处理中：IdempotencyConflict
- 相同 key 的上次尝试已失败，或 PROCESSING 超过下单超时（进程中断）：
  作为一次全新的尝试重新执行
"""

import hashlib
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from redlock import Redlock
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import IdempotencyConflict, LockUnavailable
from app.models.idempotency_keys import IdempotencyKey, IdempotencyStatus

logger = logging.getLogger(__name__)


def request_hash(payload: Dict[str, Any]) -> str:
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite 读回的时间不带时区
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class IdempotencyService:

    def __init__(self, db: Session, rlock: Optional[Redlock] = None, abandon_after_seconds: Optional[float] = None):
        self.db = db
        self.rlock = rlock
        self.abandon_after_seconds = (
            settings.ORDER_PLACEMENT_TIMEOUT_SECONDS if abandon_after_seconds is None else abandon_after_seconds
        )

    def begin(self, key: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """登记一次请求；若已有成功结果则返回响应快照，否则返回 None"""
        digest = request_hash(payload)
        lock = None

        if self.rlock:
            lock = self.rlock.lock(f"lock:idempotency:{key}", 10000)  # 10秒TTL
            if not lock:
                raise LockUnavailable(idempotency_key=key)

        try:
            return self._begin(key, digest)
        finally:
            if self.rlock and lock:
                self.rlock.unlock(lock)

    def complete(self, key: str, response: Dict[str, Any]) -> None:
        """保存成功响应快照；失败只记录日志，不影响已提交的订单"""
        try:
            record = self.db.get(IdempotencyKey, key)
            if record is None:
                return
            record.status = IdempotencyStatus.SUCCESS
            record.response_snapshot = response
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"保存幂等响应失败: key={key}, error={e}", exc_info=True)

    def fail(self, key: str) -> None:
        """标记失败；失败只记录日志，不掩盖原始错误"""
        try:
            record = self.db.get(IdempotencyKey, key)
            if record is None:
                return
            record.status = IdempotencyStatus.FAILED
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"标记幂等失败状态出错: key={key}, error={e}", exc_info=True)

    def purge_expired(self) -> int:
        """删除过期的幂等记录，返回删除数量"""
        result = self.db.execute(
            delete(IdempotencyKey)
            .where(IdempotencyKey.expires_at <= datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount:
            logger.info(f"已清理 {result.rowcount} 条过期幂等记录")
        return result.rowcount

    def _begin(self, key: str, digest: str) -> Optional[Dict[str, Any]]:
        record = self.db.get(IdempotencyKey, key)
        now = datetime.now(timezone.utc)

        if record is None:
            try:
                self.db.add(IdempotencyKey(
                    key=key,
                    request_hash=digest,
                    status=IdempotencyStatus.PROCESSING,
                    started_at=now,
                    expires_at=now + timedelta(hours=settings.IDEMPOTENCY_KEY_TTL_HOURS),
                ))
                self.db.commit()
                return None
            except IntegrityError:
                # 并发请求抢先登记了同一个 key
                self.db.rollback()
                raise IdempotencyConflict("相同幂等键的请求正在处理中", idempotency_key=key)

        if record.request_hash != digest:
            raise IdempotencyConflict("幂等键已用于不同的请求内容", idempotency_key=key)

        if record.status == IdempotencyStatus.SUCCESS:
            logger.info(f"幂等命中，返回历史响应: key={key}")
            return record.response_snapshot

        if record.status == IdempotencyStatus.PROCESSING and not self._abandoned(record, now):
            raise IdempotencyConflict("相同幂等键的请求正在处理中", idempotency_key=key)

        # 上次失败或已中断：重新作为新的尝试
        logger.info(f"幂等键重新执行: key={key}, previous={record.status.value}")
        record.status = IdempotencyStatus.PROCESSING
        record.response_snapshot = None
        record.started_at = now
        self.db.commit()
        return None

    def _abandoned(self, record: IdempotencyKey, now: datetime) -> bool:
        started = _as_utc(record.started_at) or _as_utc(record.created_at)
        if started is None:
            return False
        return now - started > timedelta(seconds=self.abandon_after_seconds)
