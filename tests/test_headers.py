from __future__ import annotations

import pytest
from pydantic import ValidationError

import crud
from schemas import HeaderIn, TrackerCreate


@pytest.fixture()
def tracker(db):
    return crud.create_tracker(db, TrackerCreate(name="Phishing"))


def snapshot(db, tracker_id):
    db.expire_all()
    return [
        (h.id, h.key, h.label, h.enabled, h.order)
        for h in crud.list_headers(db, tracker_id)
    ]


def test_initialize_seeds_default_columns(db, tracker):
    assert crud.initialize_headers(db, tracker.id) is True

    headers = crud.list_headers(db, tracker.id)
    assert [(h.key, h.enabled, h.order) for h in headers] == [
        ("name", True, 1),
        ("description", True, 2),
        ("status", True, 3),
        ("owner", True, 4),
        ("date", True, 5),
        ("priority", False, 6),
        ("comments", False, 7),
    ]
    assert [h.label for h in crud.list_headers(db, tracker.id, only_enabled=True)] == [
        "Name", "Description", "Status", "Owner", "Date",
    ]


def test_initialize_twice_is_a_noop(db, tracker):
    crud.initialize_headers(db, tracker.id)
    before = snapshot(db, tracker.id)

    assert crud.initialize_headers(db, tracker.id) is False
    assert snapshot(db, tracker.id) == before


def test_initialize_skips_tracker_with_custom_headers(db, tracker):
    crud.set_headers(db, tracker.id, [HeaderIn(key="host", label="Host")])
    assert crud.initialize_headers(db, tracker.id) is False
    assert [h.key for h in crud.list_headers(db, tracker.id)] == ["host"]


def test_list_orders_by_order_column(db, tracker):
    crud.set_headers(db, tracker.id, [
        HeaderIn(key="c", label="C", order=3),
        HeaderIn(key="a", label="A", order=1),
        HeaderIn(key="b", label="B", order=2, enabled=False),
    ])
    assert [h.key for h in crud.list_headers(db, tracker.id)] == ["a", "b", "c"]
    assert [h.key for h in crud.list_headers(db, tracker.id, only_enabled=True)] == ["a", "c"]


def test_set_headers_inserts_new_and_ignores_foreign_ids(db, tracker):
    other = crud.create_tracker(db, TrackerCreate(name="Other"))
    crud.initialize_headers(db, other.id)
    foreign = crud.list_headers(db, other.id)[0]

    counts = crud.set_headers(db, tracker.id, [
        HeaderIn(key="risk", label="Risk", order=1),
        HeaderIn(id=foreign.id, key="hijacked", label="Hijacked", order=9),
    ])

    assert counts == {"inserted": 1, "updated": 0, "ignored": 1}
    assert [h.key for h in crud.list_headers(db, tracker.id)] == ["risk"]
    db.expire_all()
    assert crud.list_headers(db, other.id)[0].key == "name"


def test_set_headers_updates_in_place_and_leaves_others(db, tracker):
    crud.initialize_headers(db, tracker.id)
    headers = crud.list_headers(db, tracker.id)
    status = next(h for h in headers if h.key == "status")
    priority = next(h for h in headers if h.key == "priority")

    counts = crud.set_headers(db, tracker.id, [
        HeaderIn(id=status.id, key="state", label="State", enabled=False, order=3),
        HeaderIn(id=priority.id, key="priority", label="Priority", enabled=True, order=6),
    ])

    assert counts == {"inserted": 0, "updated": 2, "ignored": 0}
    after = {h.key: h for h in crud.list_headers(db, tracker.id)}
    assert len(after) == 7
    assert after["state"].enabled is False
    assert after["state"].label == "State"
    assert after["priority"].enabled is True
    assert "status" not in after


def test_set_headers_is_idempotent(db, tracker):
    crud.initialize_headers(db, tracker.id)
    payload = [
        HeaderIn(id=h.id, key=h.key, label=h.label.upper(), enabled=not h.enabled, order=10 - h.order)
        for h in crud.list_headers(db, tracker.id)
    ]

    crud.set_headers(db, tracker.id, payload)
    first = snapshot(db, tracker.id)
    crud.set_headers(db, tracker.id, payload)
    assert snapshot(db, tracker.id) == first


def test_blank_key_is_derived_from_label():
    assert HeaderIn(label="Due  Date").key == "due_date"
    assert HeaderIn(key=" owner ", label="Whoever").key == "owner"


def test_duplicate_keys_are_allowed(db, tracker):
    crud.set_headers(db, tracker.id, [
        HeaderIn(key="name", label="Name", order=1),
        HeaderIn(key="name", label="Name again", order=2),
    ])
    assert [h.label for h in crud.list_headers(db, tracker.id)] == ["Name", "Name again"]


@pytest.mark.parametrize("label", ["", "   "])
def test_blank_label_is_rejected(label):
    with pytest.raises(ValidationError):
        HeaderIn(label=label)
