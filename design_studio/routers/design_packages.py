import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from design_studio.core.database import get_db
from design_studio.deps import get_current_user, require_admin, require_staff
from design_studio.mail.base import Mailer
from design_studio.mail.service import get_mailer
from design_studio.models.design_package import DesignPackageOrder
from design_studio.models.user import User
from design_studio.services.design_packages import DesignPackageExists, create_package, get_package, update_package
from design_studio.services.email_outbox import dispatch_in_background
from design_studio.services.job_access import JobAccessService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/design-packages", tags=["design-packages"])

StatusField = Optional[str]


class PackageCreate(BaseModel):
    order_id: str = Field(..., min_length=1, max_length=255)
    client_id: int
    payment_id: Optional[int] = None


class PackageUpdate(BaseModel):
    virtual_prototype_status: StatusField = None
    virtual_prototype_job_id: Optional[int] = None
    sell_sheet_status: StatusField = None
    sell_sheet_job_id: Optional[int] = None


def _package_to_dict(package: DesignPackageOrder) -> dict:
    return {
        "id": package.id,
        "order_id": package.order_id,
        "client_id": package.client_id,
        "payment_id": package.payment_id,
        "virtual_prototype_status": package.virtual_prototype_status,
        "virtual_prototype_job_id": package.virtual_prototype_job_id,
        "virtual_prototype_completed_at": package.virtual_prototype_completed_at,
        "sell_sheet_status": package.sell_sheet_status,
        "sell_sheet_job_id": package.sell_sheet_job_id,
        "sell_sheet_completed_at": package.sell_sheet_completed_at,
        "package_status": package.package_status,
        "purchase_date": package.purchase_date,
        "updated_at": package.updated_at,
    }


def _load_package(db: Session, order_id: str, user: User) -> DesignPackageOrder:
    package = get_package(db, order_id)
    if package is None:
        raise HTTPException(status_code=404, detail="Design package not found")
    if not JobAccessService.is_staff(user) and package.client_id != user.id:
        JobAccessService.log_access_denied(reason="not_package_owner", user=user, job_id=None)
        raise HTTPException(status_code=403, detail="Forbidden")
    return package


@router.get("")
def list_packages(
    client_id: Optional[int] = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(DesignPackageOrder)
    if JobAccessService.is_staff(user):
        if client_id is not None:
            query = query.filter(DesignPackageOrder.client_id == client_id)
    else:
        if client_id is not None and client_id != user.id:
            raise HTTPException(status_code=403, detail="Forbidden")
        query = query.filter(DesignPackageOrder.client_id == user.id)
    packages = query.order_by(DesignPackageOrder.purchase_date.desc(), DesignPackageOrder.id.desc()).all()
    return [_package_to_dict(package) for package in packages]


@router.post("", status_code=201)
def create_package_route(payload: PackageCreate, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        package = create_package(
            db,
            order_id=payload.order_id,
            client_id=payload.client_id,
            payment_id=payload.payment_id,
        )
        db.commit()
    except DesignPackageExists as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    db.refresh(package)
    return _package_to_dict(package)


@router.get("/{order_id}")
def get_package_route(order_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _package_to_dict(_load_package(db, order_id, user))


@router.patch("/{order_id}")
def update_package_route(
    order_id: str,
    payload: PackageUpdate,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_staff),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    package = _load_package(db, order_id, user)
    try:
        queued = update_package(db, package, payload.model_dump(exclude_unset=True))
        db.commit()
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    outbox_ids = [entry.id for entry in queued]
    if outbox_ids:
        logger.info("[DESIGN_PACKAGE] notifications queued order_id=%s count=%s", order_id, len(outbox_ids))
        background_tasks.add_task(dispatch_in_background, outbox_ids, mailer)

    db.refresh(package)
    return _package_to_dict(package)
