import json
from decimal import Decimal

import pytest

from design_studio.gateway.base import METADATA_VALUE_LIMIT, MetadataTooLarge, stringify_metadata
from design_studio.gateway.mock_provider import MockPaymentGateway
from design_studio.models.design_package import DesignPackageOrder
from design_studio.models.email import EmailOutbox
from design_studio.models.payment import Payment, PaymentLineItem
from design_studio.models.voucher import VoucherCode, VoucherUsage
from design_studio.services.jobs import create_job
from design_studio.services.pricing import VirtualPrototypeAddOns
from design_studio.services.payments import (
    CheckoutRequest,
    PaymentNotCompleted,
    build_checkout,
    confirm_payment,
    create_payment_intent,
    PaymentOwnershipError,
    build_intent_metadata,
    parse_line_items,
    payment_for_job,
    split_metadata_value,
)
from design_studio.services.vouchers import MSG_INVALID, VoucherRejected
from tests.fixtures_data import seed_catalogue


@pytest.fixture
def gateway():
    return MockPaymentGateway()


@pytest.fixture
def client_user(db, make_user):
    seed_catalogue(db)
    return make_user(email="client@example.com", name="Casey Client")


def _request(user, **fields):
    defaults = {
        "department_key": "sell_sheets",
        "add_ons": ["rush_delivery"],
        "user_id": user.id,
        "customer_email": user.email,
        "customer_name": user.name,
    }
    defaults.update(fields)
    return CheckoutRequest(**defaults)


def _voucher(db, code="SPRING20", **fields):
    voucher = VoucherCode(
        code=code,
        discount_type=fields.pop("discount_type", "percentage"),
        discount_value=fields.pop("discount_value", Decimal("20")),
        used_count=fields.pop("used_count", 0),
        **fields,
    )
    db.add(voucher)
    db.commit()
    return voucher


def test_create_intent_charges_discounted_total(db, gateway, client_user):
    voucher = _voucher(db)

    intent, checkout = create_payment_intent(db, gateway, _request(client_user, voucher_code="spring20"))

    assert checkout.subtotal == Decimal("449.00")
    assert checkout.discount_amount == Decimal("89.80")
    assert intent.amount == 35920
    assert intent.metadata["voucherId"] == str(voucher.id)
    assert intent.metadata["items"] == "Sell Sheets ($299.00), Rush Delivery ($150.00)"
    assert json.loads(intent.metadata["lineItems"])[0] == ["sell_sheets", 1, "299.00", "service"]


def test_checkout_with_unknown_voucher_is_rejected(db, client_user):
    with pytest.raises(VoucherRejected) as exc:
        build_checkout(db, _request(client_user, voucher_code="NOPE"))

    assert exc.value.status_code == 404
    assert exc.value.message == MSG_INVALID


def test_zero_total_cannot_create_an_intent(db, gateway, client_user):
    _voucher(db, code="FREE", discount_type="fixed", discount_value=Decimal("1000"))

    with pytest.raises(ValueError):
        create_payment_intent(db, gateway, _request(client_user, voucher_code="FREE"))


def test_confirm_requires_succeeded_status(db, client_user):
    gateway = MockPaymentGateway(default_status="requires_payment_method")
    intent, _ = create_payment_intent(db, gateway, _request(client_user))

    with pytest.raises(PaymentNotCompleted):
        confirm_payment(db, gateway, payment_intent_id=intent.id, user_id=client_user.id)

    assert db.query(Payment).count() == 0


def test_confirm_records_payment_items_voucher_and_email(db, gateway, client_user):
    voucher = _voucher(db)
    job = create_job(db, client_id=client_user.id, title="Widget", assign=lambda *_: None)
    db.commit()
    intent, _ = create_payment_intent(db, gateway, _request(client_user, voucher_code="SPRING20", job_id=job.id))

    result = confirm_payment(db, gateway, payment_intent_id=intent.id, user_id=client_user.id)

    assert result.created is True
    payment = result.payment
    assert payment.amount == Decimal("359.20")
    assert payment.discount_amount == Decimal("89.80")
    assert payment.voucher_code == "SPRING20"
    assert payment.job_id == job.id
    items = db.query(PaymentLineItem).filter(PaymentLineItem.payment_id == payment.id).all()
    assert [(item.product_key, item.total_price) for item in items] == [
        ("sell_sheets", Decimal("299.00")),
        ("rush_delivery", Decimal("150.00")),
    ]
    db.refresh(voucher)
    assert voucher.used_count == 1
    assert db.query(VoucherUsage).filter(VoucherUsage.order_ref == intent.id).count() == 1
    outbox = db.query(EmailOutbox).all()
    assert [(entry.trigger_event, entry.status, entry.recipient) for entry in outbox] == [
        ("payment_confirmation", "pending", "client@example.com")
    ]
    assert result.outbox_ids == [outbox[0].id]
    assert payment_for_job(db, job.id).id == payment.id


def test_confirm_is_idempotent(db, gateway, client_user):
    intent, _ = create_payment_intent(db, gateway, _request(client_user))

    first = confirm_payment(db, gateway, payment_intent_id=intent.id, user_id=client_user.id)
    second = confirm_payment(db, gateway, payment_intent_id=intent.id, user_id=client_user.id)

    assert (first.created, second.created) == (True, False)
    assert second.payment.id == first.payment.id
    assert second.outbox_ids == []
    assert db.query(Payment).count() == 1
    assert db.query(EmailOutbox).count() == 1


def test_confirm_still_records_payment_when_voucher_ran_out(db, gateway, client_user):
    voucher = _voucher(db, code="LAST1", max_uses=1)
    intent, _ = create_payment_intent(db, gateway, _request(client_user, voucher_code="LAST1"))
    voucher.used_count = 1
    db.commit()

    result = confirm_payment(db, gateway, payment_intent_id=intent.id, user_id=client_user.id)

    assert result.created is True
    db.refresh(voucher)
    assert voucher.used_count == 1
    assert db.query(VoucherUsage).count() == 0


def test_design_package_purchase_opens_package(db, gateway, client_user):
    intent, _ = create_payment_intent(db, gateway, _request(client_user, department_key="design_package", add_ons=[]))

    result = confirm_payment(db, gateway, payment_intent_id=intent.id, user_id=client_user.id)

    package = db.query(DesignPackageOrder).one()
    assert result.design_package.order_id == intent.id == package.order_id
    assert (package.virtual_prototype_status, package.sell_sheet_status, package.package_status) == (
        "not_started",
        "locked",
        "active",
    )
    assert package.payment_id == result.payment.id
    entry = db.query(EmailOutbox).one()
    assert entry.trigger_event == "design_package_purchased"
    assert f"/design-package/{intent.id}" in entry.body


def test_parse_line_items_falls_back_to_item_summary():
    items = parse_line_items({"items": "Sell Sheets ($299.00), Rush Delivery ($1,150.50)"})

    assert [(item["product_key"], item["total_price"], item["item_type"]) for item in items] == [
        ("sell_sheets", Decimal("299.00"), "service"),
        ("rush_delivery", Decimal("1150.50"), "addon"),
    ]


def test_parse_line_items_accepts_camel_case_blob():
    metadata = {"lineItems": json.dumps([{"productName": "Line Drawings", "totalPrice": "130", "quantity": 2}])}

    (item,) = parse_line_items(metadata)

    assert item["product_key"] == "line_drawings"
    assert item["unit_price"] == Decimal("65.00")
    assert item["quantity"] == 2


def test_largest_order_metadata_fits_gateway_limits(db, client_user):
    request = _request(
        client_user,
        department_key="virtual_prototypes",
        add_ons=["rush_delivery", "extra_revision", "source_files"],
        vp_add_ons=VirtualPrototypeAddOns(ar_upgrade=True, ar_virtual_prototype=True, animated_video="both"),
    )

    metadata = build_intent_metadata(request, build_checkout(db, request))

    assert all(len(value) <= METADATA_VALUE_LIMIT for value in metadata.values())
    assert len(json.loads(metadata["lineItems"])) == 7


def test_confirm_rebuilds_names_for_vp_order(db, gateway, client_user):
    request = _request(
        client_user,
        department_key="virtual_prototypes",
        add_ons=["rush_delivery", "source_files"],
        vp_add_ons=VirtualPrototypeAddOns(ar_upgrade=True, animated_video="both"),
    )
    intent, _ = create_payment_intent(db, gateway, request)

    result = confirm_payment(db, gateway, payment_intent_id=intent.id, user_id=client_user.id)

    items = db.query(PaymentLineItem).filter(PaymentLineItem.payment_id == result.payment.id).all()
    assert [(item.product_name, item.item_type) for item in items] == [
        ("Virtual Prototypes", "service"),
        ("Rush Delivery", "addon"),
        ("Source Files", "addon"),
        ("AR Upgrade", "vp_addon"),
        ("Animated Video - Rotation + Exploded", "vp_addon"),
    ]
    assert result.payment.amount == Decimal("1248.00")


def test_long_line_items_are_split_and_rejoined():
    rows = [[f"custom_addon_{index}", 1, "10.00", "addon"] for index in range(40)]
    metadata = split_metadata_value("lineItems", json.dumps(rows, separators=(",", ":")))

    assert list(metadata)[:2] == ["lineItems", "lineItems2"]
    assert all(len(value) <= METADATA_VALUE_LIMIT for value in metadata.values())
    items = parse_line_items(metadata, {"custom_addon_0": "First Add-on"})
    assert len(items) == 40
    assert items[0]["product_name"] == "First Add-on"
    assert items[1]["product_name"] == "Custom Addon 1"


def test_oversized_metadata_value_is_rejected():
    with pytest.raises(MetadataTooLarge):
        stringify_metadata({"customerName": "x" * (METADATA_VALUE_LIMIT + 1)})


def test_confirm_by_another_client_is_refused(db, gateway, client_user, make_user):
    intruder = make_user()
    intent, _ = create_payment_intent(db, gateway, _request(client_user, department_key="design_package", add_ons=[]))

    with pytest.raises(PaymentOwnershipError):
        confirm_payment(db, gateway, payment_intent_id=intent.id, user_id=intruder.id)

    assert db.query(Payment).count() == 0
    assert db.query(DesignPackageOrder).count() == 0


def test_staff_confirm_records_payment_for_intent_owner(db, gateway, client_user, make_user):
    manager = make_user("manager")
    intent, _ = create_payment_intent(db, gateway, _request(client_user, department_key="design_package", add_ons=[]))

    result = confirm_payment(db, gateway, payment_intent_id=intent.id, user_id=manager.id, caller_is_staff=True)

    assert result.payment.user_id == client_user.id
    assert db.query(DesignPackageOrder).one().client_id == client_user.id
