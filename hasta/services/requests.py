"""
B2B order requests (bulk or customised orders quoted by hand).

    pending --> approved | rejected

The admin note is free text and may change at any time.
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from hasta.errors import NotFound, PreconditionFailed
from hasta.models import OrderRequest, RequestStatus, RequestType
from hasta.store import commit

logger = logging.getLogger(__name__)


def serialize_request(r: OrderRequest) -> dict:
    return {
        "id": r.id,
        "user_id": r.user_id,
        "order_type": r.order_type.value,
        "materials": r.materials or [],
        "requirement_date": r.requirement_date,
        "customer_details": r.customer_details or {},
        "status": r.status.value,
        "admin_note": r.admin_note,
        "created_at": r.created_at,
        "updated_at": r.updated_at,
    }


def create_order_request(
    db: Session,
    user_id: Optional[str],
    order_type: RequestType,
    materials: List[dict],
    requirement_date: str,
    customer_details: dict,
) -> OrderRequest:
    request = OrderRequest(
        user_id=user_id,
        order_type=RequestType(order_type),
        materials=materials,
        requirement_date=requirement_date,
        customer_details=customer_details,
        status=RequestStatus.pending,
    )
    db.add(request)
    commit(db, "request.create", user_id=user_id)
    db.refresh(request)

    logger.info(
        "B2B request submitted | request_id=%s | type=%s | lines=%s",
        request.id,
        request.order_type.value,
        len(materials),
    )
    return request


def list_requests(db: Session, user_id: Optional[str] = None, status: Optional[RequestStatus] = None) -> List[OrderRequest]:
    query = db.query(OrderRequest)
    if user_id is not None:
        query = query.filter(OrderRequest.user_id == user_id)
    if status is not None:
        query = query.filter(OrderRequest.status == RequestStatus(status))
    return query.order_by(OrderRequest.created_at.desc()).all()


def get_request(db: Session, request_id: str) -> OrderRequest:
    request = db.query(OrderRequest).filter(OrderRequest.id == request_id).first()
    if not request:
        raise NotFound("Request not found")
    return request


def decide_request(db: Session, request_id: str, decision: RequestStatus) -> OrderRequest:
    decision = RequestStatus(decision)
    request = get_request(db, request_id)

    if decision == RequestStatus.pending:
        raise PreconditionFailed("A request can only be approved or rejected")
    if request.status != RequestStatus.pending:
        raise PreconditionFailed(f"Request has already been {request.status.value}")

    request.status = decision
    commit(db, "request.decide", request_id=request_id, status=decision.value)
    db.refresh(request)

    logger.info("B2B request decided | request_id=%s | status=%s", request_id, decision.value)
    return request


def set_admin_note(db: Session, request_id: str, note: str) -> OrderRequest:
    request = get_request(db, request_id)
    request.admin_note = note
    commit(db, "request.set_note", request_id=request_id)
    db.refresh(request)
    return request
