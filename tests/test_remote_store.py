import pytest

from core.storage.errors import RecordConflictError, RemoteStoreError
from core.storage.filters import QueryFilter, Table
from core.storage.remote_store import RemoteRecordStore


def test_operations_reach_the_service(remote, transport, record_db):
    remote.insert(Table.CLASS_STUDENTS, [
        {"id": "l1", "class_id": "c1", "student_id": "st1"},
        {"id": "l2", "class_id": "c1", "student_id": "st2"},
    ])

    rows = remote.select(Table.CLASS_STUDENTS, QueryFilter.where(class_id="c1").ordered("student_id"))

    assert [row["student_id"] for row in rows] == ["st1", "st2"]
    assert remote.count(Table.CLASS_STUDENTS) == 2
    assert remote.update(Table.CLASS_STUDENTS, QueryFilter.where(id="l2"), {"class_id": "c2"}) == 1
    assert remote.delete(Table.CLASS_STUDENTS, QueryFilter.where(class_id="c2")) == 1
    assert record_db.count(Table.CLASS_STUDENTS) == 1
    assert transport.calls[0][:2] == ("POST", "/api/insert")
    assert transport.calls[0][2]["table"] == "classStudents"


def test_select_single(remote):
    remote.insert(Table.USERS, {"id": "u1", "email": "a@x.io"})

    assert remote.select_single(Table.USERS, QueryFilter.where(email="a@x.io"))["id"] == "u1"
    assert remote.select_single(Table.USERS, QueryFilter.where(email="b@x.io")) is None


def test_conflict_surfaces_as_conflict(remote):
    remote.insert(Table.ATTENDANCE, {"id": "a1", "session_id": "s1", "student_id": "st1"})

    with pytest.raises(RecordConflictError):
        remote.insert(Table.ATTENDANCE, {"id": "a2", "session_id": "s1", "student_id": "st1"})


def test_error_status_is_an_error_not_an_empty_result(remote):
    with pytest.raises(RemoteStoreError) as excinfo:
        remote.select(Table.STUDENTS, QueryFilter.where(nickname="A"))

    assert excinfo.value.status_code == 400
    assert not excinfo.value.is_transport_error
    assert "nickname" in str(excinfo.value)


def test_transport_failure(down_transport):
    store = RemoteRecordStore("http://offline.test", session=down_transport)

    with pytest.raises(RemoteStoreError) as excinfo:
        store.select(Table.SESSIONS)

    assert excinfo.value.is_transport_error
    assert store.health() is False


def test_health_and_info(remote):
    assert remote.health() is True
    assert "accessUrl" in remote.info()


def test_update_sends_changes_under_updates(remote, transport):
    remote.insert(Table.SESSIONS, {"id": "s1", "status": "upcoming"})

    assert remote.update(Table.SESSIONS, QueryFilter.where(id="s1"), {"status": "live"}) == 1

    method, path, body = transport.calls[-1]
    assert (method, path) == ("POST", "/api/update")
    assert body == {"table": "sessions", "filters": {"eq": {"id": "s1"}}, "updates": {"status": "live"}}
