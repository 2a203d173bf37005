from dataclasses import asdict

from fastapi import APIRouter, Depends

from auth import require_admin
from errors import ValidationFailed
from helpers import envelope
from uploads import FormPayload, ImageUploader, get_uploader, read_payload

router = APIRouter(prefix="/api/uploads", tags=["uploads"])


@router.post("", status_code=201)
def upload_images(
    user: dict = Depends(require_admin),
    payload: FormPayload = Depends(read_payload),
    uploader: ImageUploader = Depends(get_uploader),
):
    files = payload.take_files("images")
    if not files:
        raise ValidationFailed("Please upload at least one image")
    stored = uploader.store_all(files)
    return envelope([asdict(img) for img in stored], count=len(stored))
