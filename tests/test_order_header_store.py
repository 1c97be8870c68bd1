"""订单头存储单元测试"""
import pytest
from sqlalchemy import func, select

from app.core.exceptions import OrderNotFound, OrderStateConflict, ValidationError
from app.models import Order, OrderStatus
from app.services.order_header_store import OrderHeaderStore


class TestOrderHeaderStore:

    def test_create_header(self, db_session):
        store = OrderHeaderStore(db_session)

        order_id = store.create_header(7)
        db_session.commit()

        order = store.get(order_id)
        assert order.user_id == 7
        assert order.status == OrderStatus.CREATED
        assert order.created_at is not None

    @pytest.mark.parametrize("user_id", [0, -3, None, "5", True])
    def test_create_header_rejects_invalid_user(self, db_session, user_id):
        store = OrderHeaderStore(db_session)

        with pytest.raises(ValidationError) as exc_info:
            store.create_header(user_id)

        assert exc_info.value.status_code == 400
        assert db_session.execute(select(func.count()).select_from(Order)).scalar_one() == 0

    @pytest.mark.parametrize("status", [OrderStatus.COMMITTED, OrderStatus.FAILED])
    def test_mark_status_forward(self, db_session, status):
        store = OrderHeaderStore(db_session)
        order_id = store.create_header(1)
        db_session.commit()

        store.mark_status(order_id, status)
        db_session.commit()

        assert store.get(order_id).status == status

    def test_mark_status_never_backward(self, db_session):
        store = OrderHeaderStore(db_session)
        order_id = store.create_header(1)
        store.mark_status(order_id, OrderStatus.COMMITTED)
        db_session.commit()

        with pytest.raises(OrderStateConflict) as exc_info:
            store.mark_status(order_id, OrderStatus.FAILED)

        assert exc_info.value.status_code == 409
        assert exc_info.value.details["order_id"] == order_id

    def test_ensure_created_on_open_order(self, db_session):
        store = OrderHeaderStore(db_session)
        order_id = store.create_header(1)
        db_session.commit()

        store.ensure_created(order_id)
        db_session.commit()

        assert db_session.execute(
            select(Order.status).where(Order.id == order_id)
        ).scalar_one() == OrderStatus.CREATED

    def test_ensure_created_after_finalised(self, db_session):
        """订单已被终结后不能继续扣减"""
        store = OrderHeaderStore(db_session)
        order_id = store.create_header(1)
        store.mark_status(order_id, OrderStatus.FAILED)
        db_session.commit()

        with pytest.raises(OrderStateConflict) as exc_info:
            store.ensure_created(order_id)

        assert exc_info.value.details["order_id"] == order_id

    def test_ensure_created_unknown_order(self, db_session):
        with pytest.raises(OrderNotFound):
            OrderHeaderStore(db_session).ensure_created(404)

    def test_mark_status_rejects_created_target(self, db_session):
        store = OrderHeaderStore(db_session)
        order_id = store.create_header(1)

        with pytest.raises(ValidationError):
            store.mark_status(order_id, OrderStatus.CREATED)

    def test_mark_status_unknown_order(self, db_session):
        with pytest.raises(OrderNotFound):
            OrderHeaderStore(db_session).mark_status(404, OrderStatus.FAILED)

    def test_get_unknown_order(self, db_session):
        with pytest.raises(OrderNotFound) as exc_info:
            OrderHeaderStore(db_session).get(404)
        assert exc_info.value.status_code == 404

    def test_list_headers_newest_first(self, db_session):
        store = OrderHeaderStore(db_session)
        first = store.create_header(1)
        second = store.create_header(2)
        third = store.create_header(1)
        db_session.commit()

        assert [o.id for o in store.list_headers()] == [third, second, first]
        assert [o.id for o in store.list_headers(user_id=1)] == [third, first]
        assert [o.id for o in store.list_headers(limit=1, offset=1)] == [second]
