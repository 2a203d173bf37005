"""
Manual payment flow: customers submit a payment request for an order, an
admin confirms it, and the bank details shown at checkout come from the
active payment settings.
"""
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from auth import get_current_user, is_admin, require_admin
from database import Mongo, get_mongo
from helpers import envelope, serialize_doc
from repositories import OrderRepository, PaymentRequestRepository, PaymentSettingsRepository
from routers.orders import check_owner
from schemas import PAYMENT_METHODS, PAYMENT_STATUSES, PaymentRequest, PaymentSettings, PaymentSettingsUpdate

requests_router = APIRouter(prefix="/api/payment-requests", tags=["payment-requests"])
settings_router = APIRouter(prefix="/api/payment-settings", tags=["payment-settings"])


class PaymentRequestBody(BaseModel):
    orderId: str
    amount: Optional[float] = Field(None, ge=0)
    paymentMethod: Literal[PAYMENT_METHODS]
    transactionId: Optional[str] = None
    notes: Optional[str] = None


class StatusBody(BaseModel):
    status: Literal[PAYMENT_STATUSES]
    notes: Optional[str] = None


def get_requests(mongo: Mongo = Depends(get_mongo)) -> PaymentRequestRepository:
    return PaymentRequestRepository(mongo)


def get_settings(mongo: Mongo = Depends(get_mongo)) -> PaymentSettingsRepository:
    return PaymentSettingsRepository(mongo)


# ----------------------- Payment requests -----------------------
@requests_router.post("", status_code=201)
def create_payment_request(
    body: PaymentRequestBody,
    user: dict = Depends(get_current_user),
    mongo: Mongo = Depends(get_mongo),
    repo: PaymentRequestRepository = Depends(get_requests),
):
    order = OrderRepository(mongo).get(body.orderId)
    check_owner(order, user)
    request = PaymentRequest(
        user=str(order.get("user") or user["id"]),
        order=str(order["_id"]),
        amount=body.amount if body.amount is not None else order.get("totalPrice", 0),
        paymentMethod=body.paymentMethod,
        transactionId=body.transactionId,
        notes=body.notes,
    )
    return envelope(serialize_doc(repo.create(request)), message="Payment request submitted")


@requests_router.get("")
def my_payment_requests(user: dict = Depends(get_current_user), repo: PaymentRequestRepository = Depends(get_requests)):
    outcome = repo.list(user_id=user["id"])
    return outcome.envelope(count=len(outcome.value))


@requests_router.get("/all")
def all_payment_requests(
    status: Optional[Literal[PAYMENT_STATUSES]] = None,
    user: dict = Depends(require_admin),
    repo: PaymentRequestRepository = Depends(get_requests),
):
    outcome = repo.list(status=status)
    return outcome.envelope(count=len(outcome.value))


@requests_router.get("/{request_id}")
def get_payment_request(
    request_id: str, user: dict = Depends(get_current_user), repo: PaymentRequestRepository = Depends(get_requests)
):
    payment_request = repo.get(request_id)
    if payment_request.get("user") != user["id"] and not is_admin(user):
        raise HTTPException(status_code=403, detail="Not authorized to access this payment request")
    return envelope(serialize_doc(payment_request))


@requests_router.put("/{request_id}/status")
def update_payment_status(
    request_id: str,
    body: StatusBody,
    user: dict = Depends(require_admin),
    repo: PaymentRequestRepository = Depends(get_requests),
):
    updated = repo.update_status(request_id, body.status, body.notes)
    return envelope(serialize_doc(updated), message=f"Payment request marked {body.status}")


# ----------------------- Payment settings -----------------------
@settings_router.get("")
def active_payment_settings(repo: PaymentSettingsRepository = Depends(get_settings)):
    return envelope(serialize_doc(repo.active()))


@settings_router.get("/all")
def all_payment_settings(user: dict = Depends(require_admin), repo: PaymentSettingsRepository = Depends(get_settings)):
    outcome = repo.list()
    return outcome.envelope(count=len(outcome.value))


@settings_router.post("", status_code=201)
def create_payment_settings(
    body: PaymentSettings, user: dict = Depends(require_admin), repo: PaymentSettingsRepository = Depends(get_settings)
):
    return envelope(serialize_doc(repo.create(body)))


@settings_router.put("/{settings_id}")
def update_payment_settings(
    settings_id: str,
    body: PaymentSettingsUpdate,
    user: dict = Depends(require_admin),
    repo: PaymentSettingsRepository = Depends(get_settings),
):
    return envelope(serialize_doc(repo.update(settings_id, body)))


@settings_router.delete("/{settings_id}")
def delete_payment_settings(
    settings_id: str, user: dict = Depends(require_admin), repo: PaymentSettingsRepository = Depends(get_settings)
):
    repo.delete(settings_id)
    return envelope({}, message="Payment settings deleted")
