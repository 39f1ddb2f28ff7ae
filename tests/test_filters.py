import pytest

from core.storage.errors import InvalidFilterError, UnknownTableError
from core.storage.filters import OrderBy, QueryFilter, Table, coerce_filter


def test_payload_round_trip_keeps_all_parts():
    query = QueryFilter.where(class_id="c1", status="live").ordered("start_at", ascending=False).limited(5)
    payload = query.to_payload()

    assert payload == {
        "eq": {"class_id": "c1", "status": "live"},
        "orderBy": {"column": "start_at", "ascending": False},
        "limit": 5,
    }
    assert QueryFilter.from_payload(payload) == query


def test_empty_payload_is_full_scan():
    assert QueryFilter.from_payload(None).to_payload() == {}
    assert QueryFilter.from_payload({}).eq == {}
    assert coerce_filter(None) == QueryFilter()


def test_zero_limit_on_the_wire_means_unlimited():
    assert QueryFilter.from_payload({"limit": 0}).limit is None


@pytest.mark.parametrize(
    "payload",
    [
        {"eq": ["session_id", "s1"]},
        {"orderBy": {"ascending": True}},
        {"limit": "ten"},
        {"limit": -3},
        "session_id = 's1'",
    ],
)
def test_malformed_payloads_are_rejected(payload):
    with pytest.raises(InvalidFilterError):
        QueryFilter.from_payload(payload)


def test_matches_requires_field_presence():
    query = QueryFilter.where(ended_at=None)

    assert query.matches({"id": "s1", "ended_at": None})
    assert not query.matches({"id": "s1"})


def test_equality_only_drops_order_and_limit():
    query = QueryFilter(eq={"a": 1}, order_by=OrderBy("a"), limit=2)
    assert query.equality_only() == QueryFilter(eq={"a": 1})


def test_unknown_table_is_rejected():
    with pytest.raises(UnknownTableError) as excinfo:
        Table.parse("grades")

    assert isinstance(excinfo.value, ValueError)
    assert Table.parse("classStudents") is Table.CLASS_STUDENTS
    assert Table.CLASS_STUDENTS.sql_name == "class_students"
    assert Table.SESSIONS.sql_name == "sessions"


@pytest.mark.parametrize("ascending", ["false", 0, 1, None, "desc"])
def test_order_direction_must_be_a_boolean(ascending):
    with pytest.raises(InvalidFilterError):
        QueryFilter.from_payload({"orderBy": {"column": "start_at", "ascending": ascending}})


def test_order_direction_defaults_to_ascending():
    query = QueryFilter.from_payload({"orderBy": {"column": "start_at"}})

    assert query.order_by == OrderBy("start_at", True)
