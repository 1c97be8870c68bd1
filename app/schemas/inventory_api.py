"""库存API专用的Pydantic模型和响应格式"""

from typing import Dict, List

from pydantic import BaseModel, Field

from app.schemas.order import BaseResponse


# ==================== 请求模型 ====================

class BatchStockQueryRequest(BaseModel):
    """批量查询库存请求"""
    product_ids: List[int] = Field(
        ...,
        min_length=1,
        max_length=100,
        description="商品ID列表",
        examples=[[1, 2, 3]],
    )


class RestockItem(BaseModel):
    product_id: int = Field(..., gt=0, description="商品ID")
    quantity: int = Field(..., gt=0, description="补货数量")


class RestockRequest(BaseModel):
    """补货请求"""
    items: List[RestockItem] = Field(..., min_length=1)
    operator: str = Field(
        "manual",
        min_length=1,
        max_length=64,
        description="操作人",
    )


# ==================== 响应模型 ====================

class StockResponse(BaseResponse):
    """单个商品库存响应"""
    product_id: int = Field(
        ...,
        description="商品ID"
    )
    available_stock: int = Field(
        ...,
        ge=0,
        description="可用库存数量"
    )


class BatchStockResponse(BaseResponse):
    """批量库存查询响应"""
    data: Dict[int, int] = Field(
        ...,
        description="商品ID到库存数量的映射"
    )


class RestockResponse(BaseResponse):
    """补货响应，返回补货后的库存"""
    data: Dict[int, int] = Field(
        ...,
        description="商品ID到补货后库存的映射"
    )
