"""订单 API 路由"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Query
from fastapi.encoders import jsonable_encoder

from app.core.dependencies import get_idempotency_service, get_order_coordinator
from app.core.exceptions import OrderServiceError
from app.schemas.order import (
    CeleryTaskResponse,
    OrderDetailResponse,
    OrderListResponse,
    PlaceOrderRequest,
    PlaceOrderResponse,
    SweepResponse,
    TaskStatusResponse,
)
from app.services.idempotency import IdempotencyService
from app.services.order_placement import OrderPlacementCoordinator
from celery_app import app as celery_app
from tasks.order_tasks import sweep_stale_orders as celery_sweep_task

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/orders",
    tags=["订单"],
    responses={
        400: {"description": "请求参数错误"},
        404: {"description": "资源未找到"},
        409: {"description": "库存不足或状态冲突"},
        422: {"description": "请求验证失败"},
        429: {"description": "请求过于频繁"},
        500: {"description": "服务器内部错误"}
    }
)

@router.post(
    "/new",
    response_model=PlaceOrderResponse,
    summary="下单并扣减库存",
    description="""创建订单并逐行扣减库存，全部成功或全部回滚。

    **特点：**
    - 条件 UPDATE 扣减，库存不会为负
    - 任一行失败时归还已扣减的库存，订单标记为 FAILED
    - 支持 Idempotency-Key 请求头安全重试
    """,
    responses={
        200: {
            "description": "下单成功",
            "content": {
                "application/json": {
                    "example": {
                        "success": True,
                        "message": "订单创建成功，订单号 1",
                        "order_id": 1,
                        "status": "COMMITTED",
                        "lines": [{"product_id": 1, "quantity": 2, "unit_price": "9.90"}]
                    }
                }
            }
        },
        409: {
            "description": "库存不足",
            "content": {
                "application/json": {
                    "example": {
                        "success": False,
                        "message": "库存不足: 商品 1 需要 3，可用 2",
                        "product_id": 1,
                        "requested": 3,
                        "available": 2,
                        "order_id": 1
                    }
                }
            }
        }
    }
)
def place_order(
    request: PlaceOrderRequest,
    idempotency_key: Optional[str] = Header(
        None,
        alias="Idempotency-Key",
        max_length=128,
        description="幂等键（可选）",
    ),
    coordinator: OrderPlacementCoordinator = Depends(get_order_coordinator),
    idempotency: IdempotencyService = Depends(get_idempotency_service),
):
    """下单（全部成功或全部回滚）"""
    if idempotency_key:
        snapshot = idempotency.begin(idempotency_key, request.model_dump())
        if snapshot is not None:
            return snapshot

    try:
        result = coordinator.place_order(request.user_id, request.cart)
    except OrderServiceError:
        if idempotency_key:
            idempotency.fail(idempotency_key)
        raise
    except Exception as e:
        logger.error(f"下单失败: {str(e)}", exc_info=True)
        if idempotency_key:
            idempotency.fail(idempotency_key)
        raise HTTPException(status_code=500, detail="下单失败，请稍后重试")

    response = jsonable_encoder({
        "success": True,
        "message": f"订单创建成功，订单号 {result.order_id}",
        "order_id": result.order_id,
        "status": result.status.value,
        "lines": [
            {"product_id": line.product_id, "quantity": line.quantity, "unit_price": line.unit_price}
            for line in result.lines
        ],
    })
    if idempotency_key:
        idempotency.complete(idempotency_key, response)
    return response

@router.get(
    "",
    response_model=OrderListResponse,
    summary="查询订单列表",
)
def list_orders(
    user_id: Optional[int] = Query(None, gt=0, description="按用户过滤"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    coordinator: OrderPlacementCoordinator = Depends(get_order_coordinator),
):
    """查询订单（含明细），按订单ID倒序"""
    try:
        orders = coordinator.list_orders(user_id=user_id, limit=limit, offset=offset)
        return {"success": True, "count": len(orders), "data": orders}
    except OrderServiceError:
        raise
    except Exception as e:
        logger.error(f"查询订单失败: {str(e)}")
        raise HTTPException(status_code=500, detail="查询订单失败")

@router.get(
    "/{order_id}",
    response_model=OrderDetailResponse,
    summary="查询订单详情",
)
def get_order(
    order_id: int = Path(..., gt=0, description="订单ID"),
    coordinator: OrderPlacementCoordinator = Depends(get_order_coordinator),
):
    try:
        return {"success": True, "data": coordinator.get_order(order_id)}
    except OrderServiceError:
        raise
    except Exception as e:
        logger.error(f"查询订单详情失败: {str(e)}")
        raise HTTPException(status_code=500, detail="查询订单失败")

@router.post(
    "/sweep/manual",
    response_model=SweepResponse,
    summary="手动回滚滞留订单",
)
def manual_sweep(
    batch_size: int = Query(500, ge=1, le=10000),
    older_than_minutes: Optional[int] = Query(None, ge=0),
    coordinator: OrderPlacementCoordinator = Depends(get_order_coordinator),
):
    """手动触发清理（方式一：API 直接调用 Service）"""
    try:
        count = coordinator.sweep_stale_orders(batch_size, older_than_minutes)
        return {
            "success": True,
            "message": "手动清理完成",
            "swept_count": count
        }
    except OrderServiceError:
        raise
    except Exception as e:
        logger.error(f"手动清理失败: {str(e)}")
        coordinator.db.rollback()
        raise HTTPException(status_code=500, detail=str(e))

@router.post(
    "/sweep/celery",
    response_model=CeleryTaskResponse,
    summary="异步回滚滞留订单",
)
async def celery_sweep(batch_size: int = Query(500, ge=1, le=10000)):
    """触发 Celery 异步清理任务（方式二：Celery 调用）"""
    try:
        task = celery_sweep_task.delay(batch_size)
        return {
            "success": True,
            "message": "已提交异步清理任务",
            "task_id": task.id
        }
    except Exception as e:
        logger.error(f"Celery 任务提交失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get(
    "/sweep/status/{task_id}",
    response_model=TaskStatusResponse,
    summary="查询清理任务状态",
)
async def get_sweep_status(task_id: str):
    """查询 Celery 任务执行状态"""
    try:
        task = celery_app.AsyncResult(task_id)

        if task.state == 'PENDING':
            status = "任务等待中"
        elif task.state == 'SUCCESS':
            status = f"任务完成: {task.result}"
        elif task.state == 'FAILURE':
            status = f"任务失败: {str(task.info)}"
        else:
            status = f"任务状态: {task.state}"

        return {
            "task_id": task_id,
            "status": status,
            "state": task.state
        }
    except Exception as e:
        logger.error(f"查询任务状态失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
