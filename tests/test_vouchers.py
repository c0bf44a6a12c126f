from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from design_studio.models.voucher import VoucherCode, VoucherUsage
from design_studio.services.vouchers import (
    MSG_ALREADY_USED,
    MSG_EXPIRED,
    MSG_INVALID,
    MSG_LIMIT_REACHED,
    MSG_NOT_YET_VALID,
    VoucherChecks,
    VoucherRejected,
    apply_discount,
    evaluate_voucher,
    redeem_voucher,
    validate_voucher,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _voucher(**fields):
    defaults = {
        "id": 1,
        "code": "SPRING20",
        "discount_type": "percentage",
        "discount_value": Decimal("20"),
        "max_uses": None,
        "uses_per_user": None,
        "used_count": 0,
        "valid_from": None,
        "valid_until": None,
        "is_active": True,
    }
    defaults.update(fields)
    return SimpleNamespace(**defaults)


def test_missing_or_inactive_voucher_is_not_found():
    assert evaluate_voucher(None, now=NOW).status_code == 404
    result = evaluate_voucher(_voucher(is_active=False), now=NOW)
    assert result.valid is False
    assert result.message == MSG_INVALID
    assert result.status_code == 404


def test_date_window_is_enforced():
    early = evaluate_voucher(_voucher(valid_from=NOW + timedelta(days=1)), now=NOW)
    late = evaluate_voucher(_voucher(valid_until=NOW - timedelta(seconds=1)), now=NOW)

    assert (early.valid, early.message, early.status_code) == (False, MSG_NOT_YET_VALID, 400)
    assert (late.valid, late.message) == (False, MSG_EXPIRED)


def test_naive_stored_dates_are_treated_as_utc():
    naive_until = (NOW + timedelta(hours=1)).replace(tzinfo=None)

    assert evaluate_voucher(_voucher(valid_until=naive_until), now=NOW).valid is True


def test_total_usage_limit():
    result = evaluate_voucher(_voucher(max_uses=5, used_count=5), now=NOW)

    assert result.message == MSG_LIMIT_REACHED


def test_per_user_limit_only_applies_when_configured():
    limited = _voucher(uses_per_user=1)
    unlimited = _voucher(uses_per_user=None)

    assert evaluate_voucher(limited, user_id=3, user_usage_count=1, now=NOW).message == MSG_ALREADY_USED
    assert evaluate_voucher(unlimited, user_id=3, user_usage_count=7, now=NOW).valid is True


def test_usage_checks_can_be_switched_off_independently():
    voucher = _voucher(max_uses=1, used_count=1, uses_per_user=1)

    only_per_user = VoucherChecks(total_usage=False, per_user_usage=True)
    none = VoucherChecks(total_usage=False, per_user_usage=False)

    assert evaluate_voucher(voucher, user_id=3, user_usage_count=1, now=NOW, checks=only_per_user).message == MSG_ALREADY_USED
    assert evaluate_voucher(voucher, user_id=3, user_usage_count=1, now=NOW, checks=none).valid is True


def test_valid_voucher_result_payload():
    payload = evaluate_voucher(_voucher(), now=NOW).to_dict()

    assert payload == {
        "valid": True,
        "message": "Voucher applied",
        "code": "SPRING20",
        "discount_type": "percentage",
        "discount_value": 20.0,
    }


@pytest.mark.parametrize(
    "discount_type,value,expected",
    [
        ("percentage", "20", Decimal("359.20")),
        ("fixed", "50", Decimal("399.00")),
        ("fixed", "1000", Decimal("0.00")),
        (None, "50", Decimal("449.00")),
    ],
)
def test_apply_discount(discount_type, value, expected):
    assert apply_discount(Decimal("449.00"), discount_type, Decimal(value)) == expected


def test_validate_voucher_lookup_is_case_insensitive(db, make_user):
    user = make_user()
    db.add(VoucherCode(code="WELCOME10", discount_type="fixed", discount_value=Decimal("10"), used_count=0))
    db.commit()

    result = validate_voucher(db, "  welcome10 ", user_id=user.id)

    assert result.valid is True
    assert result.code == "WELCOME10"


def test_validate_voucher_counts_previous_usages(db, make_user):
    user = make_user()
    voucher = VoucherCode(code="ONCE", discount_type="fixed", discount_value=Decimal("10"), uses_per_user=1, used_count=1)
    db.add(voucher)
    db.flush()
    db.add(VoucherUsage(voucher_id=voucher.id, user_id=user.id, order_ref="pi_1"))
    db.commit()

    assert validate_voucher(db, "ONCE", user_id=user.id).message == MSG_ALREADY_USED
    assert validate_voucher(db, "ONCE", user_id=None).valid is True


def test_redeem_voucher_records_usage_and_refuses_past_limit(db, make_user):
    user = make_user()
    voucher = VoucherCode(code="LIMITED", discount_type="fixed", discount_value=Decimal("5"), max_uses=1, used_count=0)
    db.add(voucher)
    db.commit()

    redeem_voucher(db, voucher_id=voucher.id, user_id=user.id, order_ref="pi_a")
    db.commit()

    assert voucher.used_count == 1
    assert db.query(VoucherUsage).filter(VoucherUsage.voucher_id == voucher.id).count() == 1
    with pytest.raises(VoucherRejected) as exc:
        redeem_voucher(db, voucher_id=voucher.id, user_id=user.id, order_ref="pi_b")
    assert exc.value.message == MSG_LIMIT_REACHED
