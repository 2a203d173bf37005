from typing import List

from fastapi import APIRouter, Depends

from auth import require_admin
from database import Mongo, get_mongo
from helpers import envelope, is_blank, require_fields, serialize_doc
from repositories import CategoryRepository
from schemas import Category, CategoryUpdate
from uploads import FormPayload, ImageUploader, StoredImage, get_uploader, read_payload

router = APIRouter(prefix="/api/categories", tags=["categories"])


def get_repo(mongo: Mongo = Depends(get_mongo)) -> CategoryRepository:
    return CategoryRepository(mongo)


def _fields(payload: FormPayload) -> dict:
    return {k: str(payload.data[k]).strip() for k in ("name", "description", "image") if not is_blank(payload.data.get(k))}


def _store_image(payload: FormPayload, uploader: ImageUploader) -> List[StoredImage]:
    files = payload.take_files("image")
    return uploader.store_all(files, max_files=1) if files else []


@router.get("")
def list_categories(repo: CategoryRepository = Depends(get_repo)):
    outcome = repo.list()
    return outcome.envelope(count=len(outcome.value))


@router.get("/{category_id}")
def get_category(category_id: str, repo: CategoryRepository = Depends(get_repo)):
    return envelope(serialize_doc(repo.get(category_id)))


@router.post("", status_code=201)
def create_category(
    user: dict = Depends(require_admin),
    payload: FormPayload = Depends(read_payload),
    repo: CategoryRepository = Depends(get_repo),
    uploader: ImageUploader = Depends(get_uploader),
):
    require_fields(payload.data, ("name",))
    category = Category(**_fields(payload))
    stored = _store_image(payload, uploader)
    if stored:
        category.image = stored[0].url
    with uploader.discard_on_error(stored):
        outcome = repo.create(category)
    return outcome.envelope(message="Category created successfully")


@router.put("/{category_id}")
def update_category(
    category_id: str,
    user: dict = Depends(require_admin),
    payload: FormPayload = Depends(read_payload),
    repo: CategoryRepository = Depends(get_repo),
    uploader: ImageUploader = Depends(get_uploader),
):
    changes = CategoryUpdate(**_fields(payload))
    stored = _store_image(payload, uploader)
    if stored:
        changes.image = stored[0].url
    with uploader.discard_on_error(stored):
        category = repo.update(category_id, changes)
    return envelope(serialize_doc(category), message="Category updated successfully")


@router.delete("/{category_id}")
def delete_category(category_id: str, user: dict = Depends(require_admin), repo: CategoryRepository = Depends(get_repo)):
    repo.delete(category_id)
    return envelope({}, message="Category deleted successfully")
