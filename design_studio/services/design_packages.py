from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from design_studio.core.clock import utcnow
from design_studio.models.design_package import DELIVERABLE_STATUSES, DesignPackageOrder
from design_studio.models.email import EmailOutbox
from design_studio.models.user import User
from design_studio.services.email_outbox import enqueue_event_email
from design_studio.services.email_templates import design_package_link

logger = logging.getLogger(__name__)
PACKAGE_PREFIX = "[DESIGN_PACKAGE]"

DESIGN_PACKAGE_KEY = "design_package"


class DesignPackageExists(ValueError):
    pass


def is_design_package_purchase(department_key: str | None, product_keys: list[str]) -> bool:
    return department_key == DESIGN_PACKAGE_KEY or DESIGN_PACKAGE_KEY in product_keys


def get_package(db: Session, order_id: str) -> DesignPackageOrder | None:
    return db.query(DesignPackageOrder).filter(DesignPackageOrder.order_id == order_id).first()


def create_package(
    db: Session,
    *,
    order_id: str,
    client_id: int,
    payment_id: int | None = None,
) -> DesignPackageOrder:
    if get_package(db, order_id) is not None:
        raise DesignPackageExists("Design package already exists")
    package = DesignPackageOrder(
        order_id=order_id,
        client_id=client_id,
        payment_id=payment_id,
        virtual_prototype_status="not_started",
        sell_sheet_status="locked",
        package_status="active",
    )
    db.add(package)
    db.flush()
    logger.info("%s created order_id=%s client_id=%s", PACKAGE_PREFIX, order_id, client_id)
    return package


def _client_email(db: Session, client_id: int) -> tuple[str | None, str | None]:
    client = db.query(User).filter(User.id == client_id).first()
    if client is None:
        return None, None
    return client.email, client.name


def _validate_status(value: str) -> str:
    if value not in DELIVERABLE_STATUSES:
        raise ValueError(f"Invalid status: {value}")
    return value


def update_package(db: Session, package: DesignPackageOrder, changes: dict[str, Any]) -> list[EmailOutbox]:
    """Apply status changes; returns the notification rows queued on the session."""
    queued: list[EmailOutbox] = []
    now = utcnow()

    vp_status = changes.get("virtual_prototype_status")
    if vp_status:
        was_completed = package.virtual_prototype_status == "completed"
        package.virtual_prototype_status = _validate_status(vp_status)
        if vp_status == "completed" and not was_completed:
            package.virtual_prototype_completed_at = now
            if package.sell_sheet_status == "locked":
                package.sell_sheet_status = "not_started"
            queued.append(_notify(db, package, "virtual_prototype_complete", "Start Sell Sheet"))
    if changes.get("virtual_prototype_job_id") is not None:
        package.virtual_prototype_job_id = changes["virtual_prototype_job_id"]

    sell_sheet_status = changes.get("sell_sheet_status")
    if sell_sheet_status:
        was_completed = package.sell_sheet_status == "completed"
        package.sell_sheet_status = _validate_status(sell_sheet_status)
        if sell_sheet_status == "completed" and not was_completed:
            package.sell_sheet_completed_at = now
            package.package_status = "completed"
            queued.append(_notify(db, package, "design_package_complete", "View Design Package"))
    if changes.get("sell_sheet_job_id") is not None:
        package.sell_sheet_job_id = changes["sell_sheet_job_id"]

    package.updated_at = now
    return [entry for entry in queued if entry is not None]


def _notify(db: Session, package: DesignPackageOrder, trigger_event: str, link_label: str) -> EmailOutbox | None:
    email, name = _client_email(db, package.client_id)
    return enqueue_event_email(
        db,
        recipient=email,
        trigger_event=trigger_event,
        variables={
            "name": name or "there",
            "link": design_package_link(package.order_id),
            "link_label": link_label,
        },
        reference_type="design_package",
        reference_id=package.order_id,
    )
