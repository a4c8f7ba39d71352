from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from hasta.database import get_db
from hasta.models import User
from hasta.schemas import AddressCreate, AddressUpdate
from hasta.security import require_account
from hasta.services import addresses as address_service
from hasta.services.addresses import serialize_address

router = APIRouter(prefix="/users/me/addresses", tags=["addresses"])


@router.get("")
def list_addresses(
    db: Session = Depends(get_db),
    user: User = Depends(require_account),
):
    return [serialize_address(a) for a in address_service.list_addresses(db, user.id)]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_address(
    payload: AddressCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_account),
):
    address = address_service.create_address(db, user.id, payload.model_dump())
    return serialize_address(address)


@router.patch("/{address_id}")
def update_address(
    address_id: str,
    payload: AddressUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_account),
):
    address = address_service.update_address(
        db, user.id, address_id, payload.model_dump(exclude_unset=True)
    )
    return serialize_address(address)


@router.post("/{address_id}/set-default")
def set_default_address(
    address_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_account),
):
    address = address_service.set_default(db, user.id, address_id)
    return serialize_address(address)


@router.delete("/{address_id}")
def delete_address(
    address_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_account),
):
    address_service.delete_address(db, user.id, address_id)
    return {"message": "Address deleted", "address_id": address_id}
