"""
API tests through FastAPI's TestClient against a SQLite-backed store.
"""

import pytest

from conftest import RecordingStore, make_workbook

USER = {"X-User-Id": "user-1"}
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def upload(client, rows, headers=("A", "B"), file_name="data.xlsx", user=USER):
    payload = {"file_name": file_name, "headers": list(headers), "rows": rows}
    return client.post("/api/files/", json=payload, headers=user)


class TestPages:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_index_carries_store_config(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "ExcelView" in response.text
        assert "excelview-test" in response.text


class TestPreview:
    def test_preview_parses_without_storing(self, client):
        content = make_workbook([["Name", "Qty", "C", "D", "E", "F"], ["pen", 3, "", "", "", "dropped"]])
        response = client.post("/api/files/preview", files={"file": ("stock.xlsx", content, XLSX)})

        assert response.status_code == 200
        data = response.json()
        assert data["headers"] == ["Name", "Qty", "C", "D", "E"]
        assert data["rows"] == [["pen", "3", "", "", ""]]
        assert data["row_count"] == 1
        assert client.get("/api/files/", headers=USER).json() == []

    def test_empty_sheet_is_rejected(self, client):
        response = client.post("/api/files/preview", files={"file": ("empty.xlsx", make_workbook([]), XLSX)})
        assert response.status_code == 400
        assert "empty" in response.json()["detail"]

    def test_unsupported_extension_is_rejected(self, client):
        response = client.post("/api/files/preview", files={"file": ("notes.txt", b"hello", "text/plain")})
        assert response.status_code == 400

    def test_corrupt_workbook_is_rejected(self, client):
        response = client.post("/api/files/preview", files={"file": ("bad.xlsx", b"not a zip", XLSX)})
        assert response.status_code == 400


class TestUploadAndRead:
    def test_upload_then_list_and_read(self, client):
        rows = [[f"name {i}", str(i)] for i in range(25)]
        response = upload(client, rows)
        assert response.status_code == 200
        created = response.json()
        assert created["row_count"] == 25

        files = client.get("/api/files/", headers=USER).json()
        assert [f["id"] for f in files] == [created["id"]]
        assert files[0]["upload_date"] is not None

        page = client.get(f"/api/files/{created['id']}/rows", params={"page": 3}, headers=USER).json()
        assert page["rows"] == rows[20:]
        assert page["total_pages"] == 3
        assert page["total_rows"] == 25

    def test_search_filters_rows(self, client):
        rows = [["apple", "red"], ["Banana", "yellow"], ["cherry", "RED"]]
        file_id = upload(client, rows).json()["id"]

        page = client.get(f"/api/files/{file_id}/rows", params={"search": "red"}, headers=USER).json()
        assert page["rows"] == [["apple", "red"], ["cherry", "RED"]]
        assert page["matching_rows"] == 2
        assert page["total_rows"] == 3

    def test_rows_are_projected_to_header_count(self, client):
        file_id = upload(client, [["a", "b", "c"]], headers=("Only",)).json()["id"]
        page = client.get(f"/api/files/{file_id}/rows", headers=USER).json()
        assert page["rows"] == [["a"]]

    def test_files_listed_newest_first(self, client):
        first = upload(client, [], file_name="first.xlsx").json()["id"]
        second = upload(client, [], file_name="second.xlsx").json()["id"]
        assert [f["id"] for f in client.get("/api/files/", headers=USER).json()] == [second, first]

    def test_too_many_headers_is_invalid(self, client):
        response = upload(client, [], headers=("A", "B", "C", "D", "E", "F"))
        assert response.status_code == 422

    def test_too_wide_row_is_invalid(self, client):
        response = upload(client, [["1", "2", "3", "4", "5", "6"]])
        assert response.status_code == 422

    def test_other_users_cannot_see_files(self, client):
        file_id = upload(client, [["x", "y"]]).json()["id"]
        other = {"X-User-Id": "user-2"}
        assert client.get("/api/files/", headers=other).json() == []
        assert client.get(f"/api/files/{file_id}", headers=other).status_code == 404


class TestAuth:
    @pytest.mark.parametrize("method, path", [
        ("get", "/api/files/"),
        ("get", "/api/files/abc"),
        ("get", "/api/files/abc/rows"),
        ("delete", "/api/files/abc"),
    ])
    def test_requests_without_user_are_unauthorized(self, client, method, path):
        assert getattr(client, method)(path).status_code == 401

    def test_upload_without_user_is_unauthorized(self, client):
        assert upload(client, [["a", "b"]], user={}).status_code == 401


class TestDelete:
    def test_delete_removes_file_and_rows(self, client):
        file_id = upload(client, [[str(i), "x"] for i in range(600)]).json()["id"]

        response = client.delete(f"/api/files/{file_id}", headers=USER)
        assert response.status_code == 200
        assert response.json()["rows_deleted"] == 600
        assert client.get(f"/api/files/{file_id}", headers=USER).status_code == 404

    def test_unknown_file_is_not_found(self, client):
        assert client.delete("/api/files/missing", headers=USER).status_code == 404


class TestStoreFailures:
    def test_failed_upload_leaves_file_record(self, client):
        store = RecordingStore(fail_on={"write_row_batch": 2})
        client.app.state.store = store

        response = upload(client, [[str(i), "x"] for i in range(1000)])

        assert response.status_code == 502
        assert len(store.calls_to("write_row_batch")) == 2
        assert len(store.files) == 1

    def test_permission_denied_maps_to_forbidden(self, client):
        client.app.state.store = RecordingStore(fail_on={"create_file": 1}, deny=True)
        assert upload(client, [["a", "b"]]).status_code == 403

    def test_failed_delete_keeps_file(self, client):
        store = RecordingStore()
        client.app.state.store = store
        file_id = upload(client, [[str(i), "x"] for i in range(600)]).json()["id"]
        store.fail_on = {"delete_row_batch": 1}

        assert client.delete(f"/api/files/{file_id}", headers=USER).status_code == 502
        assert client.get(f"/api/files/{file_id}", headers=USER).status_code == 200


class TestUploadWebSocket:
    def test_progress_then_complete(self, client):
        rows = [[str(i), "x"] for i in range(1000)]
        with client.websocket_connect("/api/files/ws/test-client?uid=user-1") as ws:
            ws.send_json({"action": "upload", "file_name": "big.xlsx", "headers": ["A", "B"], "rows": rows})
            messages = []
            while True:
                message = ws.receive_json()
                messages.append(message)
                if message["type"] != "progress":
                    break

        progress = [m["progress"] for m in messages if m["type"] == "progress"]
        assert progress[0] == 0
        assert progress[-1] == 100
        assert progress == sorted(progress)
        assert messages[-1]["type"] == "complete"
        assert messages[-1]["row_count"] == 1000

        files = client.get("/api/files/", headers=USER).json()
        assert files[0]["id"] == messages[-1]["file_id"]

    def test_missing_user_reports_error(self, client):
        with client.websocket_connect("/api/files/ws/test-client") as ws:
            ws.send_json({"action": "upload", "file_name": "a.xlsx", "headers": ["A"], "rows": [["1"]]})
            message = ws.receive_json()
        assert message["type"] == "error"
        assert message["status"] == 401

    def test_unknown_action(self, client):
        with client.websocket_connect("/api/files/ws/test-client?uid=user-1") as ws:
            ws.send_json({"action": "dance"})
            assert ws.receive_json()["type"] == "error"

    def test_malformed_commands_keep_the_socket_open(self, client):
        with client.websocket_connect("/api/files/ws/test-client?uid=user-1") as ws:
            ws.send_text("not json {")
            assert ws.receive_json()["type"] == "error"

            ws.send_json(["upload"])
            assert ws.receive_json()["type"] == "error"

            ws.send_json({"action": "upload", "file_name": "a.xlsx", "headers": ["A"], "rows": [["1"]]})
            messages = [ws.receive_json()]
            while messages[-1]["type"] == "progress":
                messages.append(ws.receive_json())

        assert messages[-1]["type"] == "complete"
        assert messages[-1]["row_count"] == 1
