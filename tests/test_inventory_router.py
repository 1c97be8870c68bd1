"""库存路由单元测试"""
import pytest
from unittest.mock import Mock
from fastapi.testclient import TestClient

from app.core.dependencies import get_stock_ledger
from app.core.exceptions import ProductNotFound
from app.main import app


class TestInventoryRouter:
    """库存路由测试类"""

    @pytest.fixture
    def ledger(self):
        """创建模拟库存账本"""
        return Mock()

    @pytest.fixture
    def client(self, ledger):
        """创建测试客户端"""
        app.dependency_overrides[get_stock_ledger] = lambda: ledger
        try:
            yield TestClient(app)
        finally:
            app.dependency_overrides.clear()

    def test_get_stock_success(self, client, ledger):
        """测试成功查询库存"""
        ledger.get_product_stock.return_value = 50

        response = client.get("/api/v1/inventory/stock/1")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["product_id"] == 1
        assert data["available_stock"] == 50
        ledger.get_product_stock.assert_called_once_with(1)

    def test_get_stock_not_found(self, client, ledger):
        """测试查询不存在的商品"""
        ledger.get_product_stock.side_effect = ProductNotFound(999)

        response = client.get("/api/v1/inventory/stock/999")

        assert response.status_code == 404
        assert response.json()["message"] == "商品不存在: 999"

    def test_get_stock_invalid_id(self, client, ledger):
        """测试非法商品ID"""
        response = client.get("/api/v1/inventory/stock/0")

        assert response.status_code == 422
        ledger.get_product_stock.assert_not_called()

    def test_get_stock_unexpected_error(self, client, ledger):
        """测试查询库存时发生未知异常"""
        ledger.get_product_stock.side_effect = Exception("Database error")

        response = client.get("/api/v1/inventory/stock/1")

        assert response.status_code == 500
        assert response.json()["message"] == "查询库存失败"

    def test_batch_get_stocks_success(self, client, ledger):
        """测试批量查询库存"""
        ledger.batch_get_stocks.return_value = {1: 50, 2: 30, 3: 0}

        response = client.post("/api/v1/inventory/stock/batch", json={"product_ids": [1, 2, 3]})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"] == {"1": 50, "2": 30, "3": 0}
        ledger.batch_get_stocks.assert_called_once_with([1, 2, 3])

    def test_batch_get_stocks_empty_list(self, client, ledger):
        """测试空商品列表"""
        response = client.post("/api/v1/inventory/stock/batch", json={"product_ids": []})

        assert response.status_code == 422
        ledger.batch_get_stocks.assert_not_called()

    def test_batch_get_stocks_error(self, client, ledger):
        """测试批量查询失败"""
        ledger.batch_get_stocks.side_effect = Exception("Redis error")

        response = client.post("/api/v1/inventory/stock/batch", json={"product_ids": [1]})

        assert response.status_code == 500
        assert response.json()["message"] == "批量查询库存失败"

    def test_restock_success(self, client, ledger):
        """测试补货"""
        ledger.restock.side_effect = [12, 5]

        response = client.post("/api/v1/inventory/restock", json={
            "items": [{"product_id": 1, "quantity": 10}, {"product_id": 2, "quantity": 5}],
            "operator": "alice",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "补货成功"
        assert data["data"] == {"1": 12, "2": 5}
        ledger.restock.assert_any_call(1, 10, operator="alice")
        ledger.db.commit.assert_called_once()
        ledger.invalidate_cached_stock.assert_called_once()

    def test_restock_unknown_product_rolls_back(self, client, ledger):
        """测试补货时商品不存在，整批回滚"""
        ledger.restock.side_effect = [12, ProductNotFound(2)]

        response = client.post("/api/v1/inventory/restock", json={
            "items": [{"product_id": 1, "quantity": 10}, {"product_id": 2, "quantity": 5}],
        })

        assert response.status_code == 404
        ledger.db.rollback.assert_called_once()
        ledger.db.commit.assert_not_called()
        ledger.invalidate_cached_stock.assert_not_called()

    def test_restock_rejects_non_positive_quantity(self, client, ledger):
        """测试补货数量必须为正"""
        response = client.post("/api/v1/inventory/restock", json={
            "items": [{"product_id": 1, "quantity": 0}],
        })

        assert response.status_code == 422
        ledger.restock.assert_not_called()
