from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from hasta.context import AppContext, get_context
from hasta.database import get_db
from hasta.errors import InputRejected
from hasta.models import ReturnRequest, ReturnStatus, User
from hasta.schemas import CreateReturnPayload, ReviewReturnPayload
from hasta.security import require_account, require_admin
from hasta.services import returns as return_service
from hasta.services.orders import get_order

router = APIRouter(tags=["returns"])


def _serialize_return(r: ReturnRequest) -> dict:
    return {
        "id": str(r.id),
        "order_id": str(r.order_id),
        "user_id": str(r.user_id),
        "request_date": r.request_date,
        "reason": r.reason.value,
        "status": r.status.value,
        "items": r.items or [],
        "customer_comments": r.customer_comments,
        "damage_images": r.damage_images or [],
        "updated_at": r.updated_at,
    }


# =====================================================
# USER: REQUEST A RETURN
# =====================================================

@router.post("/returns", status_code=status.HTTP_201_CREATED)
def create_return(
    payload: CreateReturnPayload,
    db: Session = Depends(get_db),
    user: User = Depends(require_account),
    ctx: AppContext = Depends(get_context),
):
    request = return_service.create_return_request(
        db,
        user_id=user.id,
        order_id=payload.order_id,
        items=[item.model_dump() for item in payload.items],
        reason=payload.reason,
        comments=payload.comments,
        damage_images=payload.damage_images,
        window_days=ctx.settings.return_window_days,
    )

    if ctx.notifier is not None:
        ctx.notifier.return_requested(request, get_order(db, request.order_id))

    return _serialize_return(request)


@router.get("/returns/my")
def my_returns(
    db: Session = Depends(get_db),
    user: User = Depends(require_account),
):
    requests = (
        db.query(ReturnRequest)
        .filter(ReturnRequest.user_id == user.id)
        .order_by(ReturnRequest.request_date.desc())
        .all()
    )
    return [_serialize_return(r) for r in requests]


# =====================================================
# ADMIN: REVIEW RETURNS
# =====================================================

@router.get("/admin/returns", dependencies=[Depends(require_admin)])
def admin_returns(
    db: Session = Depends(get_db),
    status_filter: Optional[str] = Query(None, alias="status"),
):
    query = db.query(ReturnRequest)
    if status_filter:
        try:
            query = query.filter(ReturnRequest.status == ReturnStatus(status_filter))
        except ValueError:
            raise InputRejected(f"Invalid status: '{status_filter}'")
    return [_serialize_return(r) for r in query.order_by(ReturnRequest.request_date.desc()).all()]


@router.post("/admin/returns/{request_id}/status", dependencies=[Depends(require_admin)])
def review_return(
    request_id: str,
    payload: ReviewReturnPayload,
    db: Session = Depends(get_db),
):
    request = return_service.review_return(db, request_id, payload.status)
    return _serialize_return(request)
