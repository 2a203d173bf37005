from fastapi import APIRouter, Depends

from auth import require_admin
from database import Mongo, get_mongo
from helpers import envelope, serialize_doc
from repositories import AddressRepository
from schemas import SavedAddress, SavedAddressUpdate

router = APIRouter(prefix="/api/shipping-addresses", tags=["shipping-addresses"])


def get_repo(mongo: Mongo = Depends(get_mongo)) -> AddressRepository:
    return AddressRepository(mongo)


@router.get("/default")
def default_address(repo: AddressRepository = Depends(get_repo)):
    return envelope(serialize_doc(repo.default()))


@router.get("")
def list_addresses(user: dict = Depends(require_admin), repo: AddressRepository = Depends(get_repo)):
    outcome = repo.list()
    return outcome.envelope(count=len(outcome.value))


@router.post("", status_code=201)
def create_address(body: SavedAddress, user: dict = Depends(require_admin), repo: AddressRepository = Depends(get_repo)):
    return envelope(serialize_doc(repo.create(body)), message="Shipping address created")


@router.get("/{address_id}")
def get_address(address_id: str, user: dict = Depends(require_admin), repo: AddressRepository = Depends(get_repo)):
    return envelope(serialize_doc(repo.get(address_id)))


@router.put("/{address_id}")
def update_address(
    address_id: str,
    body: SavedAddressUpdate,
    user: dict = Depends(require_admin),
    repo: AddressRepository = Depends(get_repo),
):
    return envelope(serialize_doc(repo.update(address_id, body)), message="Shipping address updated")


@router.delete("/{address_id}")
def delete_address(address_id: str, user: dict = Depends(require_admin), repo: AddressRepository = Depends(get_repo)):
    repo.delete(address_id)
    return envelope({}, message="Shipping address deleted")
