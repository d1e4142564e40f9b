"""
Order lifecycle.

An order starts pending, can be switched between pending and completed by
the admin, and is cancelled by deleting it. Customers may only cancel while
the order is pending; the admin can delete in any state.
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, ValidationError

from schemas import CustomerDetails, Order, Product, ProductDetails

logger = logging.getLogger(__name__)

ORDERS = "orders"


class OrderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class OrderNotCancellable(Exception):
    def __init__(self, order_id: Optional[str]):
        super().__init__(f"Order {order_id} is already completed and cannot be cancelled")
        self.order_id = order_id


def timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).isoformat()


def order_status(order: Order) -> OrderStatus:
    return OrderStatus.COMPLETED if order.is_completed else OrderStatus.PENDING


def new_order(product: Product, size: str, customer: CustomerDetails, now: Optional[datetime] = None) -> Order:
    return Order(
        product_id=product.id,
        product_details=ProductDetails(name=product.name, price=product.sale_price, size=size),
        customer_name=customer.name,
        customer_contact=customer.phone,
        customer_address=customer.address,
        order_date=timestamp(now),
        is_completed=False,
        completed_date="",
    )


def mark_completed(order: Order, now: Optional[datetime] = None) -> Order:
    return order.model_copy(update={"is_completed": True, "completed_date": timestamp(now)})


def mark_pending(order: Order) -> Order:
    return order.model_copy(update={"is_completed": False, "completed_date": ""})


def toggle_status(order: Order, now: Optional[datetime] = None) -> Order:
    return mark_pending(order) if order.is_completed else mark_completed(order, now)


def status_fields(order: Order) -> dict:
    """The fields a status transition writes back to the store."""
    return {"is_completed": order.is_completed, "completed_date": order.completed_date}


def can_cancel(order: Order) -> bool:
    return not order.is_completed


def ensure_cancellable(order: Order):
    if not can_cancel(order):
        raise OrderNotCancellable(order.id)


def orders_from_docs(docs: Iterable[dict]) -> List[Order]:
    orders = []
    for doc in docs:
        try:
            orders.append(Order(**doc))
        except ValidationError as e:
            logger.warning("Skipping malformed order %s: %s", doc.get("id"), e.errors()[:1])
    return orders


def _order_time(order: Order) -> datetime:
    try:
        parsed = datetime.fromisoformat(order.order_date)
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def sort_newest_first(orders: Iterable[Order]) -> List[Order]:
    return sorted(orders, key=_order_time, reverse=True)


def search_orders(orders: List[Order], term: str) -> List[Order]:
    """Admin search over customer name, contact number and product id."""
    if not term:
        return list(orders)
    needle = term.lower()
    return [
        o for o in orders
        if needle in o.customer_name.lower()
        or term in o.customer_contact
        or needle in o.product_id.lower()
    ]


# ----------------------- Optimistic board -----------------------

class MutationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class Mutation(BaseModel):
    order_id: str
    kind: Literal["toggle", "remove"]
    status: MutationStatus = MutationStatus.PENDING
    previous: Order
    error: Optional[str] = None


class OrderBoard:
    """Admin order list that applies changes before the store confirms them.

    Each change is tracked as a ``Mutation``. If the write fails the board
    puts the previous order back and marks the mutation failed.
    """

    def __init__(self, orders: Iterable[Order] = ()):
        self.orders: List[Order] = sort_newest_first(orders)
        self.mutations: Dict[str, Mutation] = {}

    def replace(self, orders: Iterable[Order]):
        self.orders = sort_newest_first(orders)

    def get(self, order_id: str) -> Optional[Order]:
        return next((o for o in self.orders if o.id == order_id), None)

    def visible(self, search_term: str = "") -> List[Order]:
        return search_orders(self.orders, search_term)

    def toggle(self, order_id: str, write: Callable[[str, dict], bool], now: Optional[datetime] = None) -> Mutation:
        index = self._index(order_id)
        previous = self.orders[index]
        updated = toggle_status(previous, now)
        self.orders[index] = updated
        mutation = self._start(order_id, "toggle", previous)
        return self._commit(mutation, lambda: write(order_id, status_fields(updated)), index)

    def remove(self, order_id: str, delete: Callable[[str], bool]) -> Mutation:
        index = self._index(order_id)
        previous = self.orders.pop(index)
        mutation = self._start(order_id, "remove", previous)
        return self._commit(mutation, lambda: delete(order_id), index)

    def _index(self, order_id: str) -> int:
        for i, o in enumerate(self.orders):
            if o.id == order_id:
                return i
        raise KeyError(order_id)

    def _start(self, order_id, kind, previous) -> Mutation:
        mutation = Mutation(order_id=order_id, kind=kind, previous=previous)
        self.mutations[order_id] = mutation
        return mutation

    def _commit(self, mutation: Mutation, write: Callable[[], bool], index: int) -> Mutation:
        try:
            ok = write()
        except Exception as e:
            logger.warning("Order %s %s failed: %s", mutation.order_id, mutation.kind, e)
            ok = False
            mutation.error = str(e)
        if ok:
            mutation.status = MutationStatus.CONFIRMED
            return mutation
        self._rollback(mutation, index)
        mutation.status = MutationStatus.FAILED
        mutation.error = mutation.error or "Order not found"
        return mutation

    def _rollback(self, mutation: Mutation, index: int):
        if mutation.kind == "toggle":
            self.orders[index] = mutation.previous
        else:
            self.orders.insert(index, mutation.previous)
