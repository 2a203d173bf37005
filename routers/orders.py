from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from auth import get_current_user, is_admin, require_admin
from database import Mongo, get_mongo
from helpers import envelope, serialize_doc
from repositories import OrderRepository
from schemas import ORDER_STATUSES, PAYMENT_METHODS, Order, OrderItem, ShippingAddress

router = APIRouter(prefix="/api/orders", tags=["orders"])


class OrderBody(BaseModel):
    orderItems: List[OrderItem] = Field(..., min_length=1)
    shippingAddress: ShippingAddress
    paymentMethod: Literal[PAYMENT_METHODS] = "cod"
    totalPrice: float = Field(..., ge=0)


class OrderStatusBody(BaseModel):
    status: Literal[ORDER_STATUSES]


class PaymentResultBody(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    update_time: Optional[str] = None
    email_address: Optional[str] = None


def get_repo(mongo: Mongo = Depends(get_mongo)) -> OrderRepository:
    return OrderRepository(mongo)


def check_owner(order: dict, user: dict) -> None:
    if str(order.get("user")) != user["id"] and not is_admin(user):
        raise HTTPException(status_code=403, detail="Not authorized to access this order")


@router.post("", status_code=201)
def create_order(body: OrderBody, user: dict = Depends(get_current_user), repo: OrderRepository = Depends(get_repo)):
    order = repo.create(Order(user=user["id"], **body.model_dump()))
    return envelope(serialize_doc(order), message="Order placed successfully")


@router.get("/mine")
def my_orders(user: dict = Depends(get_current_user), repo: OrderRepository = Depends(get_repo)):
    outcome = repo.list(user["id"])
    return outcome.envelope(count=len(outcome.value))


@router.get("")
def all_orders(user: dict = Depends(require_admin), repo: OrderRepository = Depends(get_repo)):
    outcome = repo.list()
    return outcome.envelope(count=len(outcome.value))


@router.get("/{order_id}")
def get_order(order_id: str, user: dict = Depends(get_current_user), repo: OrderRepository = Depends(get_repo)):
    order = repo.get(order_id)
    check_owner(order, user)
    return envelope(serialize_doc(order))


@router.put("/{order_id}/status")
def update_order_status(
    order_id: str, body: OrderStatusBody, user: dict = Depends(require_admin), repo: OrderRepository = Depends(get_repo)
):
    order = repo.update_status(order_id, body.status)
    return envelope(serialize_doc(order), message=f"Order marked {body.status}")


@router.put("/{order_id}/pay")
def pay_order(
    order_id: str,
    body: Optional[PaymentResultBody] = None,
    user: dict = Depends(require_admin),
    repo: OrderRepository = Depends(get_repo),
):
    result = body.model_dump(exclude_none=True) if body else {}
    result.setdefault("id", f"manual_{user['id']}")
    order = repo.mark_paid(order_id, result)
    return envelope(serialize_doc(order), message="Order marked as paid")
