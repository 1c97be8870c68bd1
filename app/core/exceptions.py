"""下单与库存领域异常

所有异常都带有 HTTP 状态码、面向用户的消息以及附加字段，
由 app.main 中的全局异常处理器统一转换为 JSON 响应。
"""

from typing import Any, Dict, Optional


class OrderServiceError(Exception):
    """领域异常基类"""

    status_code: int = 500
    default_message: str = "服务器内部错误"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details: Dict[str, Any] = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message, **self.details}


class ValidationError(OrderServiceError):
    status_code = 400
    default_message = "请求参数不合法"


class ProductNotFound(OrderServiceError):
    status_code = 404
    default_message = "商品不存在"

    def __init__(self, product_id: int, message: Optional[str] = None, **details: Any):
        self.product_id = product_id
        super().__init__(message or f"商品不存在: {product_id}", product_id=product_id, **details)


class OrderNotFound(OrderServiceError):
    status_code = 404
    default_message = "订单不存在"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"订单不存在: {order_id}", order_id=order_id)


class InsufficientStock(OrderServiceError):
    status_code = 409
    default_message = "库存不足"

    def __init__(self, product_id: int, requested: int, available: int, **details: Any):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"库存不足: 商品 {product_id} 需要 {requested}，可用 {available}",
            product_id=product_id,
            requested=requested,
            available=available,
            **details,
        )


class OrderStateConflict(OrderServiceError):
    status_code = 409
    default_message = "订单状态已变更"


class IdempotencyConflict(OrderServiceError):
    status_code = 409
    default_message = "幂等键冲突"


class LockUnavailable(OrderServiceError):
    status_code = 429
    default_message = "操作冲突，请稍后重试"


class StorageError(OrderServiceError):
    status_code = 500
    default_message = "下单失败，请稍后重试"


class PlacementTimeout(StorageError):
    status_code = 504
    default_message = "下单超时，订单已回滚"
