"""库存查询与补货 API 路由"""

import logging

from fastapi import APIRouter, Body, Depends, HTTPException, Path

from app.core.dependencies import get_stock_ledger
from app.core.exceptions import OrderServiceError
from app.schemas.inventory_api import (
    BatchStockQueryRequest,
    BatchStockResponse,
    RestockRequest,
    RestockResponse,
    StockResponse,
)
from app.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/inventory",
    tags=["库存管理"],
    responses={
        404: {"description": "商品不存在"},
        422: {"description": "请求验证失败"},
        500: {"description": "服务器内部错误"}
    }
)

@router.get(
    "/stock/{product_id}",
    response_model=StockResponse,
    summary="查询商品库存",
    description="""查询指定商品的可用库存数量。

    **缓存策略：**
    - 首先查询Redis缓存
    - 缓存未命中则查询数据库
    - 库存变更提交后失效缓存

    仅用于展示，下单扣减不读取缓存。
    """,
)
def get_stock(
    product_id: int = Path(
        ...,
        gt=0,
        description="商品ID",
    ),
    ledger: StockLedger = Depends(get_stock_ledger),
):
    try:
        stock = ledger.get_product_stock(product_id)
        return {
            "success": True,
            "product_id": product_id,
            "available_stock": stock
        }
    except OrderServiceError:
        raise
    except Exception as e:
        logger.error(f"查询库存失败: {str(e)}")
        raise HTTPException(status_code=500, detail="查询库存失败")

@router.post(
    "/stock/batch",
    response_model=BatchStockResponse,
    summary="批量查询商品库存",
)
def batch_get_stocks(
    request: BatchStockQueryRequest = Body(
        ...,
        description="批量查询请求参数"
    ),
    ledger: StockLedger = Depends(get_stock_ledger),
):
    """批量查询商品库存（Redis mget + 数据库 in 查询）"""
    try:
        stocks = ledger.batch_get_stocks(request.product_ids)
        return BatchStockResponse(
            success=True,
            data=stocks
        )
    except OrderServiceError:
        raise
    except Exception as e:
        logger.error(f"批量查询库存失败: {str(e)}")
        raise HTTPException(status_code=500, detail="批量查询库存失败")

@router.post(
    "/restock",
    response_model=RestockResponse,
    summary="补货",
)
def restock(
    request: RestockRequest,
    ledger: StockLedger = Depends(get_stock_ledger),
):
    """人工补货，所有商品在同一事务内提交"""
    try:
        after = {}
        for item in request.items:
            after[item.product_id] = ledger.restock(item.product_id, item.quantity, operator=request.operator)
        ledger.db.commit()
    except OrderServiceError:
        ledger.db.rollback()
        raise
    except Exception as e:
        logger.error(f"补货失败: {str(e)}")
        ledger.db.rollback()
        raise HTTPException(status_code=500, detail="补货失败")

    ledger.invalidate_cached_stock()
    return {"success": True, "message": "补货成功", "data": after}
