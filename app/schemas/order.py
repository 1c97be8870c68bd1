"""下单 API 的请求与响应模型"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ==================== 请求模型 ====================

class CartLineRequest(BaseModel):
    """购物车行"""
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(
        ...,
        alias="productId",
        description="商品ID",
        examples=[1],
    )
    requested_qty: int = Field(
        ...,
        alias="requestedQty",
        description="购买数量",
        examples=[2],
    )


class PlaceOrderRequest(BaseModel):
    """下单请求

    正数校验由下单协调器完成，统一返回 400。
    """
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(
        ...,
        alias="userId",
        description="用户ID（来自认证服务）",
        examples=[1],
    )
    cart: List[CartLineRequest] = Field(
        ...,
        max_length=200,
        description="购物车",
    )


# ==================== 响应模型 ====================

class BaseResponse(BaseModel):
    """基础响应模型"""
    success: bool = Field(
        ...,
        description="请求是否成功"
    )
    message: Optional[str] = Field(
        None,
        description="响应消息"
    )


class PlacedLineResponse(BaseModel):
    product_id: int
    quantity: int
    unit_price: Optional[Decimal] = None


class PlaceOrderResponse(BaseResponse):
    """下单成功响应"""
    order_id: int = Field(..., description="订单ID")
    status: str = Field(..., description="订单状态")
    lines: List[PlacedLineResponse] = []


class OrderLineDetail(BaseModel):
    product_id: int
    product_name: str
    quantity: int
    unit_price: Optional[Decimal] = None


class OrderDetail(BaseModel):
    order_id: int
    user_id: int
    status: str
    created_at: Optional[datetime] = None
    lines: List[OrderLineDetail] = []


class OrderDetailResponse(BaseResponse):
    data: OrderDetail


class OrderListResponse(BaseResponse):
    count: int
    data: List[OrderDetail] = []


class SweepResponse(BaseResponse):
    """清理任务响应"""
    swept_count: Optional[int] = Field(
        None,
        ge=0,
        description="回滚的订单数量"
    )


class CeleryTaskResponse(BaseResponse):
    """Celery任务响应"""
    task_id: Optional[str] = Field(
        None,
        description="任务ID"
    )


class TaskStatusResponse(BaseModel):
    """任务状态响应"""
    task_id: str
    status: str
    state: str
