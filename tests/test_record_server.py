import sqlite3

from database import RecordDatabase


def _post(client, action, **body):
    return client.post(f"/api/{action}", json=body)


def test_health_and_info(client):
    health = client.get("/api/health")
    info = client.get("/api/info")

    assert health.status_code == 200
    assert health.get_json()["status"] == "ok"
    assert "timestamp" in health.get_json()
    assert info.status_code == 200
    assert set(info.get_json()) == {"port", "networkAddresses", "accessUrl"}
    assert info.get_json()["accessUrl"].startswith("http://")


def test_insert_then_select_with_filters(client):
    response = _post(
        client,
        "insert",
        table="sessions",
        data=[
            {"id": "s1", "class_id": "c1", "start_at": "2024-03-01", "status": "upcoming"},
            {"id": "s2", "class_id": "c1", "start_at": "2024-03-02", "status": "live"},
            {"id": "s3", "class_id": "c2", "start_at": "2024-03-03", "status": "live"},
        ],
    )
    assert response.get_json() == {"success": True, "count": 3}

    rows = _post(
        client,
        "select",
        table="sessions",
        filters={"eq": {"class_id": "c1"}, "orderBy": {"column": "start_at", "ascending": False}, "limit": 1},
    ).get_json()

    assert [row["id"] for row in rows] == ["s2"]
    assert _post(client, "count", table="sessions", filters={"eq": {"status": "live"}}).get_json() == 2


def test_select_single_returns_null_when_missing(client):
    response = _post(client, "selectSingle", table="students", filters={"eq": {"id": "nobody"}})

    assert response.status_code == 200
    assert response.get_json() is None


def test_descriptor_round_trips_as_a_list(client):
    _post(client, "insert", table="students", data={"id": "st1", "name": "Asha", "descriptor": [0.25, -0.5]})

    row = _post(client, "selectSingle", table="students", filters={"eq": {"id": "st1"}}).get_json()

    assert row["descriptor"] == [0.25, -0.5]


def test_upsert_replaces_every_column(client):
    _post(client, "insert", table="students", data={"id": "st1", "name": "Asha", "usn": "1MS01"})
    _post(client, "insert", table="students", data={"id": "st1", "name": "Asha K"})

    row = _post(client, "selectSingle", table="students", filters={"eq": {"id": "st1"}}).get_json()

    assert row["name"] == "Asha K"
    assert row["usn"] is None


def test_update_and_delete_report_changes(client):
    _post(client, "insert", table="userRoles", data=[
        {"id": "r1", "user_id": "u1", "role": "student"},
        {"id": "r2", "user_id": "u2", "role": "student"},
    ])

    updated = _post(client, "update", table="userRoles", filters={"eq": {"user_id": "u1"}}, updates={"role": "admin"})
    deleted = _post(client, "delete", table="userRoles", filters={"eq": {"role": "student"}})

    assert updated.get_json() == {"success": True, "changes": 1}
    assert deleted.get_json() == {"success": True, "changes": 1}
    assert _post(client, "count", table="userRoles").get_json() == 1


def test_unknown_table_is_a_bad_request(client):
    response = _post(client, "select", table="grades")

    assert response.status_code == 400
    assert "grades" in response.get_json()["error"]


def test_unknown_column_is_a_bad_request(client):
    bad_filter = _post(client, "select", table="students", filters={"eq": {"name; DROP TABLE students": 1}})
    bad_record = _post(client, "insert", table="students", data={"id": "st1", "nickname": "A"})

    assert bad_filter.status_code == 400
    assert bad_record.status_code == 400


def test_duplicate_attendance_is_a_conflict(client):
    first = _post(client, "insert", table="attendance", data={"id": "a1", "session_id": "s1", "student_id": "st1"})
    second = _post(client, "insert", table="attendance", data={"id": "a2", "session_id": "s1", "student_id": "st1"})

    assert first.status_code == 200
    assert second.status_code == 409
    assert "error" in second.get_json()
    assert _post(client, "count", table="attendance").get_json() == 1


def test_legacy_duplicate_attendance_is_collapsed(tmp_path):
    path = tmp_path / "legacy.db"
    conn = sqlite3.connect(path)
    conn.execute(
        "CREATE TABLE attendance (id TEXT PRIMARY KEY, session_id TEXT, student_id TEXT, timestamp TEXT, "
        "method TEXT, confidence REAL, device_id TEXT, marked_by TEXT, created_at TEXT)"
    )
    conn.executemany(
        "INSERT INTO attendance (id, session_id, student_id, timestamp) VALUES (?, ?, ?, ?)",
        [("a1", "s1", "st1", "t1"), ("a2", "s1", "st1", "t2"), ("a3", "s1", "st2", "t3")],
    )
    conn.commit()
    conn.close()

    db = RecordDatabase(path)
    try:
        rows = db.select("attendance", {"orderBy": {"column": "id"}})
        assert [row["id"] for row in rows] == ["a1", "a3"]
        assert "marks" in rows[0]
    finally:
        db.close()


def test_update_reads_changes_from_updates(client):
    _post(client, "insert", table="sessions", data={"id": "s1", "status": "live"})

    response = _post(client, "update", table="sessions", filters={"eq": {"id": "s1"}}, updates={"status": "ended"})
    misplaced = _post(client, "update", table="sessions", filters={"eq": {"id": "s1"}}, data={"status": "live"})

    assert response.get_json() == {"success": True, "changes": 1}
    assert misplaced.status_code == 400
    assert "updates" in misplaced.get_json()["error"]
    row = _post(client, "selectSingle", table="sessions", filters={"eq": {"id": "s1"}}).get_json()
    assert row["status"] == "ended"
