import enum

from sqlalchemy import (
    Column,
    String,
    TIMESTAMP,
    JSON,
    Enum,
    Index,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from app.db.base import Base



# 1️ 幂等状态枚举

class IdempotencyStatus(str, enum.Enum):
    PROCESSING = "PROCESSING"  # 正在处理中
    SUCCESS = "SUCCESS"        # 成功
    FAILED = "FAILED"          # 失败，可用同一 key 重新发起



# 2️ 幂等表

class IdempotencyKey(Base):
    __tablename__ = "idempotency_keys"

    # 客户端传入的 Idempotency-Key
    key = Column(
        String(128),
        primary_key=True,
        comment="幂等唯一键",
    )

    request_hash = Column(
        String(64),
        nullable=False,
        comment="请求体 SHA-256",
    )

    status = Column(
        Enum(
            IdempotencyStatus,
            name="idempotency_status_type",
        ),
        nullable=False,
        default=IdempotencyStatus.PROCESSING,
        server_default=IdempotencyStatus.PROCESSING.value,
        comment="当前处理状态",
    )

    # 成功后的响应快照，重复请求直接返回
    response_snapshot = Column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=True,
        comment="接口响应结果快照",
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    # 最近一次进入 PROCESSING 的时间，超过下单超时视为已中断
    started_at = Column(
        TIMESTAMP(timezone=True),
        nullable=True,
        comment="本次处理开始时间",
    )

    expires_at = Column(
        TIMESTAMP(timezone=True),
        nullable=True,
        comment="过期时间（用于清理）",
    )



# 3️ 索引设计

Index(
    "idx_idempotency_keys_expires_at",
    IdempotencyKey.expires_at,
)
