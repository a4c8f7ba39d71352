import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from hasta.context import AppContext, get_context
from hasta.database import get_db
from hasta.errors import InputRejected
from hasta.models import OrderRequest, RequestStatus, User
from hasta.schemas import AdminNotePayload, OrderRequestCreate, RequestDecisionPayload
from hasta.security import require_account, require_admin
from hasta.services import requests as request_service
from hasta.services.requests import serialize_request

router = APIRouter(tags=["b2b"])

logger = logging.getLogger(__name__)


# =====================================================
# USER: BULK / CUSTOMISE REQUESTS
# =====================================================

@router.post("/b2b/requests", status_code=status.HTTP_201_CREATED)
def submit_request(
    payload: OrderRequestCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_account),
    ctx: AppContext = Depends(get_context),
):
    data = payload.model_dump(mode="json")
    request = request_service.create_order_request(
        db,
        user_id=user.id,
        order_type=payload.order_type,
        materials=data["materials"],
        requirement_date=data["requirement_date"],
        customer_details=data["customer_details"],
    )

    if ctx.notifier is not None:
        ctx.notifier.b2b_request_received(request)

    return serialize_request(request)


@router.get("/b2b/requests/my")
def my_requests(
    db: Session = Depends(get_db),
    user: User = Depends(require_account),
):
    return [serialize_request(r) for r in request_service.list_requests(db, user_id=user.id)]


# =====================================================
# ADMIN: REQUEST DESK
# =====================================================

@router.get("/admin/requests", dependencies=[Depends(require_admin)])
def admin_requests(
    db: Session = Depends(get_db),
    status_filter: Optional[str] = Query(None, alias="status"),
):
    wanted = None
    if status_filter:
        try:
            wanted = RequestStatus(status_filter)
        except ValueError:
            raise InputRejected(f"Invalid status: '{status_filter}'")
    return [serialize_request(r) for r in request_service.list_requests(db, status=wanted)]


@router.post("/admin/requests/{request_id}/status", dependencies=[Depends(require_admin)])
def decide_request(
    request_id: str,
    payload: RequestDecisionPayload,
    db: Session = Depends(get_db),
):
    request = request_service.decide_request(db, request_id, RequestStatus(payload.status))
    return serialize_request(request)


@router.patch(
    "/admin/requests/{request_id}/note",
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_admin)],
)
def update_admin_note(
    request_id: str,
    payload: AdminNotePayload,
    db: Session = Depends(get_db),
    ctx: AppContext = Depends(get_context),
):
    """
    Notes are saved in the background; the response does not wait for
    the write. Failures reach the writer's error listeners.
    """
    request_service.get_request(db, request_id)
    ctx.writer.set_non_blocking(OrderRequest, request_id, {"admin_note": payload.admin_note})
    return {"message": "Note saved", "request_id": request_id}
