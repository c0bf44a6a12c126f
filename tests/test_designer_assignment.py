from types import SimpleNamespace

import pytest

from design_studio.models.designer_assignment import DesignerAssignment
from design_studio.services.designer_assignment import (
    HighestPriorityFirst,
    deactivate_assignment,
    find_designer_for_package,
    grouped_assignments,
    map_package_type_to_job_type,
    replace_assignments,
)


@pytest.mark.parametrize(
    "package_type,expected",
    [
        ("sell_sheets", "sell_sheets"),
        ("Sell Sheet Deluxe", "sell_sheets"),
        ("virtual-prototype", "virtual_prototypes"),
        ("3D render", "virtual_prototypes"),
        ("Technical drawing", "line_drawings"),
        ("line_drawing", "line_drawings"),
        ("logo", None),
        ("", None),
        (None, None),
    ],
)
def test_map_package_type_to_job_type(package_type, expected):
    assert map_package_type_to_job_type(package_type) == expected


def test_highest_priority_first_picks_lowest_priority_number():
    rows = [SimpleNamespace(id=1, priority=2), SimpleNamespace(id=2, priority=0), SimpleNamespace(id=3, priority=0)]

    assert HighestPriorityFirst().select(rows).id == 2
    assert HighestPriorityFirst().select([]) is None


def test_replace_assignments_orders_by_list_position(db, make_user):
    first = make_user("designer")
    second = make_user("designer")

    replace_assignments(db, "sell_sheets", [second.id, first.id])

    assert find_designer_for_package(db, "Sell Sheet") == second.id
    grouped = grouped_assignments(db)
    assert [row["designer_id"] for row in grouped["sell_sheets"]] == [second.id, first.id]
    assert grouped["line_drawings"] == []


def test_replace_assignments_deactivates_previous_rows(db, make_user):
    old = make_user("designer")
    new = make_user("designer")
    replace_assignments(db, "line_drawings", [old.id])

    replace_assignments(db, "line_drawings", [new.id])

    rows = db.query(DesignerAssignment).filter(DesignerAssignment.job_type == "line_drawings").all()
    assert {(row.designer_id, row.is_active) for row in rows} == {(old.id, False), (new.id, True)}
    assert find_designer_for_package(db, "line drawings") == new.id


def test_replace_assignments_with_unknown_designer_changes_nothing(db, make_user):
    designer = make_user("designer")
    replace_assignments(db, "virtual_prototypes", [designer.id])

    with pytest.raises(ValueError):
        replace_assignments(db, "virtual_prototypes", [designer.id, 9999])

    active = (
        db.query(DesignerAssignment)
        .filter(DesignerAssignment.job_type == "virtual_prototypes", DesignerAssignment.is_active.is_(True))
        .all()
    )
    assert [row.designer_id for row in active] == [designer.id]


def test_replace_assignments_rejects_unknown_bucket(db):
    with pytest.raises(ValueError):
        replace_assignments(db, "logos", [])


def test_empty_bucket_or_unmapped_package_gives_no_designer(db, make_user):
    designer = make_user("designer")
    replace_assignments(db, "sell_sheets", [designer.id])

    assert find_designer_for_package(db, "virtual prototype") is None
    assert find_designer_for_package(db, "embroidery") is None


def test_lookup_failure_is_swallowed():
    class BrokenDb:
        def query(self, *_args, **_kwargs):
            raise RuntimeError("database is gone")

    assert find_designer_for_package(BrokenDb(), "sell sheet") is None


def test_deactivate_assignment(db, make_user):
    designer = make_user("designer")
    (row,) = replace_assignments(db, "sell_sheets", [designer.id])

    deactivate_assignment(db, row.id)

    assert find_designer_for_package(db, "sell sheet") is None
    with pytest.raises(LookupError):
        deactivate_assignment(db, 4242)
