import logging
from typing import List

from sqlalchemy.orm import Session

from hasta.errors import InputRejected, NotFound
from hasta.models import Address
from hasta.store import commit

logger = logging.getLogger(__name__)


def serialize_address(addr: Address) -> dict:
    return {
        "id": addr.id,
        "name": addr.name,
        "address": addr.address,
        "city": addr.city,
        "state": addr.state,
        "pincode": addr.pincode,
        "phone": addr.phone,
        "address_type": addr.address_type,
        "is_default": addr.is_default,
        "created_at": addr.created_at,
    }


def list_addresses(db: Session, user_id: str) -> List[Address]:
    return (
        db.query(Address)
        .filter(Address.user_id == user_id)
        .order_by(Address.is_default.desc(), Address.created_at.desc())
        .all()
    )


def get_address(db: Session, user_id: str, address_id: str) -> Address:
    address = (
        db.query(Address)
        .filter(Address.id == address_id, Address.user_id == user_id)
        .first()
    )
    if not address:
        raise NotFound("Address not found")
    return address


def _clear_other_defaults(db: Session, user_id: str, keep_id: str) -> None:
    db.query(Address).filter(
        Address.user_id == user_id,
        Address.id != keep_id,
        Address.is_default.is_(True),
    ).update({"is_default": False}, synchronize_session="fetch")


def create_address(db: Session, user_id: str, data: dict) -> Address:
    # First address is always the default
    has_any = db.query(Address).filter(Address.user_id == user_id).count() > 0
    address = Address(user_id=user_id, **data)
    if not has_any:
        address.is_default = True

    db.add(address)
    db.flush()
    if address.is_default:
        _clear_other_defaults(db, user_id, address.id)

    commit(db, "address.create", user_id=user_id)
    db.refresh(address)
    return address


def update_address(db: Session, user_id: str, address_id: str, data: dict) -> Address:
    if not data:
        raise InputRejected("No fields provided for update")

    address = get_address(db, user_id, address_id)
    for field, value in data.items():
        setattr(address, field, value)

    if data.get("is_default"):
        _clear_other_defaults(db, user_id, address.id)

    commit(db, "address.update", user_id=user_id, address_id=address_id)
    db.refresh(address)
    return address


def set_default(db: Session, user_id: str, address_id: str) -> Address:
    """Unset every other default and set this one in a single commit."""
    address = get_address(db, user_id, address_id)

    _clear_other_defaults(db, user_id, address.id)
    address.is_default = True

    commit(db, "address.set_default", user_id=user_id, address_id=address_id)
    db.refresh(address)
    logger.info("Default address updated | user_id=%s | address_id=%s", user_id, address_id)
    return address


def delete_address(db: Session, user_id: str, address_id: str) -> None:
    address = get_address(db, user_id, address_id)
    was_default = address.is_default

    db.delete(address)
    db.flush()

    if was_default:
        replacement = (
            db.query(Address)
            .filter(Address.user_id == user_id)
            .order_by(Address.created_at.desc())
            .first()
        )
        if replacement:
            replacement.is_default = True

    commit(db, "address.delete", user_id=user_id, address_id=address_id)
