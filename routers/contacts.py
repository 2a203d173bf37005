"""
Contact form messages.

The same router is mounted under ``/api/contact`` and the legacy
``/direct-contact`` and ``/api/api/contact`` paths still used by deployed
storefront builds.
"""
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

import config
from auth import require_admin
from database import Mongo, get_mongo
from helpers import envelope, is_blank, require_fields, serialize_doc
from repositories import ContactRepository
from schemas import Contact
from uploads import FormPayload, read_payload

router = APIRouter(tags=["contact"])

REQUIRED_FIELDS = ("name", "email", "subject", "message")


class StatusBody(BaseModel):
    status: Literal["unread", "read"]


def get_repo(mongo: Mongo = Depends(get_mongo)) -> ContactRepository:
    return ContactRepository(mongo, config.CONTACT_BACKUP_DIR)


@router.post("", status_code=201)
def create_contact(payload: FormPayload = Depends(read_payload), repo: ContactRepository = Depends(get_repo)):
    require_fields(payload.data, REQUIRED_FIELDS)
    fields = {k: str(v).strip() for k, v in payload.data.items() if k in REQUIRED_FIELDS + ("phone",) and not is_blank(v)}
    outcome = repo.create(Contact(**fields))
    return outcome.envelope(message="Your message has been sent successfully")


@router.get("")
def list_contacts(
    status: Optional[Literal["unread", "read"]] = None,
    user: dict = Depends(require_admin),
    repo: ContactRepository = Depends(get_repo),
):
    repo.sync_backups()
    outcome = repo.list(status)
    return outcome.envelope(count=len(outcome.value))


@router.get("/{contact_id}")
def get_contact(contact_id: str, user: dict = Depends(require_admin), repo: ContactRepository = Depends(get_repo)):
    return envelope(serialize_doc(repo.get(contact_id)))


@router.put("/{contact_id}")
def update_contact(
    contact_id: str,
    body: StatusBody,
    user: dict = Depends(require_admin),
    repo: ContactRepository = Depends(get_repo),
):
    return envelope(serialize_doc(repo.set_status(contact_id, body.status)))


@router.delete("/{contact_id}")
def delete_contact(contact_id: str, user: dict = Depends(require_admin), repo: ContactRepository = Depends(get_repo)):
    repo.delete(contact_id)
    return envelope({}, message="Message deleted")
