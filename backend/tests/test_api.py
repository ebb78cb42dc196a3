"""
HTTP API tests (storage overridden to a temporary directory)
"""
import pytest

REPORTS = "/api/v1/reports"

REPORT_INFO = {
    "hospitalName": "Ankara Şehir Hastanesi",
    "reportNumber": "HVAC-2024-001",
    "measurementDate": "2024-11-20",
    "testerName": "Mehmet Yılmaz",
}


@pytest.fixture
def report_id(client):
    response = client.post(REPORTS, json={"reportInfo": REPORT_INFO})
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def room_id(client, report_id):
    response = client.post(f"{REPORTS}/{report_id}/rooms", json={
        "roomNo": "A-101",
        "roomName": "Ameliyathane 1",
        "surfaceArea": 14,
        "height": 3,
        "selectedTests": ["pressureDifference"],
    })
    assert response.status_code == 201
    return response.json()["id"]


class TestHealth:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}
        assert client.get("/healthz").json()["status"] == "ok"


class TestReports:

    def test_create_list_get(self, client, report_id):
        listed = client.get(REPORTS).json()
        assert len(listed) == 1
        assert listed[0]["reportNumber"] == "HVAC-2024-001"
        assert listed[0]["isCompliant"] is False

        report = client.get(f"{REPORTS}/{report_id}").json()
        assert report["reportInfo"]["hospitalName"] == "Ankara Şehir Hastanesi"

    def test_update_info(self, client, report_id):
        response = client.patch(f"{REPORTS}/{report_id}", json={"approvedBy": "Ali Kaya"})
        assert response.status_code == 200
        info = response.json()["reportInfo"]
        assert info["approvedBy"] == "Ali Kaya"
        assert info["reportNumber"] == "HVAC-2024-001"

    def test_missing_report_is_404(self, client):
        response = client.get(f"{REPORTS}/missing")
        assert response.status_code == 404
        assert response.json()["error"]["type"] == "RecordNotFoundError"

    def test_delete(self, client, report_id):
        assert client.delete(f"{REPORTS}/{report_id}").status_code == 204
        assert client.get(f"{REPORTS}/{report_id}").status_code == 404


class TestRoomsAndMeasurements:

    def test_room_created_with_volume(self, client, report_id, room_id):
        room = client.get(f"{REPORTS}/{report_id}").json()["rooms"][0]
        assert room["volume"] == 42.0
        assert room["selectedTests"] == ["pressureDifference"]
        assert "pressureDifference" not in room["tests"]

    def test_measurement_drives_summary(self, client, report_id, room_id):
        url = f"{REPORTS}/{report_id}/rooms/{room_id}/tests/pressureDifference"
        room = client.patch(url, json={"pressure": 7}).json()
        assert room["tests"]["pressureDifference"]["meetsCriteria"] is True

        summary = client.get(f"{REPORTS}/{report_id}/summary").json()
        assert summary["isCompliant"] is True
        assert summary["assessment"] == "Sistem, referans standartlara UYGUNDUR."
        assert summary["rooms"][0]["verdictLabel"] == "UYGUNDUR"

        client.patch(url, json={"pressure": 5})
        summary = client.get(f"{REPORTS}/{report_id}/summary").json()
        assert summary["rooms"][0]["verdictLabel"] == "UYGUN DEĞİL"

    def test_unknown_test_key_rejected(self, client, report_id, room_id):
        response = client.put(f"{REPORTS}/{report_id}/rooms/{room_id}/tests",
                              json={"tests": ["pressureDifference", "ozoneLevel"]})
        assert response.status_code == 422
        assert "ozoneLevel" in response.json()["error"]["message"]

    def test_unselected_measurement_rejected(self, client, report_id, room_id):
        response = client.patch(f"{REPORTS}/{report_id}/rooms/{room_id}/tests/noiseLevel", json={"leq": 40})
        assert response.status_code == 422
        assert response.json()["error"]["type"] == "TestNotSelectedError"

    def test_non_numeric_measurement_is_422(self, client, report_id, room_id):
        url = f"{REPORTS}/{report_id}/rooms/{room_id}/tests/pressureDifference"
        response = client.patch(url, json={"pressure": "abc"})
        assert response.status_code == 422
        assert response.json()["error"]["type"] == "ValidationError"
        assert response.json()["error"]["errors"]

    def test_null_room_name_is_422(self, client, report_id, room_id):
        response = client.patch(f"{REPORTS}/{report_id}/rooms/{room_id}", json={"roomName": None})
        assert response.status_code == 422
        assert client.get(f"{REPORTS}/{report_id}").json()["rooms"][0]["roomName"] == "Ameliyathane 1"

    def test_non_numeric_instance_measurement_is_422(self, client, report_id, room_id):
        client.put(f"{REPORTS}/{report_id}/rooms/{room_id}/tests/pressureDifference/count", json={"count": 1})
        response = client.patch(f"{REPORTS}/{report_id}/rooms/{room_id}/instances/{room_id}-pressureDifference-0",
                                json={"measurements": {"pressure": "abc"}})
        assert response.status_code == 422

    def test_room_volume_follows_dimensions(self, client, report_id, room_id):
        room = client.patch(f"{REPORTS}/{report_id}/rooms/{room_id}", json={"height": 2.5}).json()
        assert room["volume"] == 35.0

    def test_instances_and_devices(self, client, report_id, room_id):
        device = client.post("/api/v1/devices", json={"deviceName": "Mikromanometre"}).json()

        room = client.put(f"{REPORTS}/{report_id}/rooms/{room_id}/tests/pressureDifference/count",
                          json={"count": 2}).json()
        instance_ids = [i["id"] for i in room["testInstances"]]
        assert instance_ids == [f"{room_id}-pressureDifference-0", f"{room_id}-pressureDifference-1"]

        base = f"{REPORTS}/{report_id}/rooms/{room_id}/instances"
        client.patch(f"{base}/{instance_ids[0]}", json={"measurements": {"pressure": 9}, "deviceId": device["id"]})
        room = client.patch(f"{base}/{instance_ids[1]}", json={"measurements": {"pressure": 2}}).json()
        assert room["testInstances"][0]["deviceName"] == "Mikromanometre"

        summary = client.get(f"{REPORTS}/{report_id}/summary").json()
        pressure = summary["rooms"][0]["tests"][1]
        assert pressure["testKey"] == "pressureDifference"
        assert pressure["verdict"] is False
        assert pressure["displayValue"] == "9 Pa / 2 Pa"

    def test_delete_room(self, client, report_id, room_id):
        assert client.delete(f"{REPORTS}/{report_id}/rooms/{room_id}").status_code == 204
        assert client.get(f"{REPORTS}/{report_id}").json()["rooms"] == []


class TestFinalize:

    def test_incomplete_report_lists_errors(self, client, report_id, room_id):
        response = client.post(f"{REPORTS}/{report_id}/finalize")
        assert response.status_code == 422
        errors = response.json()["error"]["errors"]
        assert any("Basınç Farkı" in e for e in errors)

    def test_complete_report(self, client, report_id, room_id):
        client.patch(f"{REPORTS}/{report_id}/rooms/{room_id}/tests/pressureDifference", json={"pressure": 12})
        response = client.post(f"{REPORTS}/{report_id}/finalize")
        assert response.status_code == 200
        assert response.json() == {
            "reportId": report_id,
            "isCompliant": True,
            "assessment": "Sistem, referans standartlara UYGUNDUR.",
        }


class TestExports:

    def test_csv_export_recorded(self, client, report_id, room_id):
        response = client.get(f"{REPORTS}/{report_id}/export/csv")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "HVAC_Raporu_HVAC-2024-001_" in response.headers["content-disposition"]

        files = client.get(f"{REPORTS}/{report_id}/files").json()["files"]
        assert files["csv"]["size"] == len(response.content)

    def test_pdf_export_falls_back_to_html(self, client, report_id, room_id):
        response = client.get(f"{REPORTS}/{report_id}/export/pdf")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")

    def test_xlsx_export(self, client, report_id, room_id):
        response = client.get(f"{REPORTS}/{report_id}/export/xlsx")
        assert response.status_code == 200
        assert response.content[:2] == b"PK"

    def test_unknown_format(self, client, report_id):
        assert client.get(f"{REPORTS}/{report_id}/export/docx").status_code == 422


class TestStatelessEvaluation:

    def test_evaluate_room_payload(self, client):
        response = client.post("/api/v1/compliance/room", json={
            "surfaceArea": 14,
            "height": 3,
            "selectedTests": ["airflowData", "particleCount"],
            "tests": {
                "airflowData": {"totalFlowRate": 500, "meetsCriteria": True},
                "particleCount": {"particle05": 3000},
            },
        })
        assert response.status_code == 200
        body = response.json()
        assert body["volume"] == 42.0
        assert body["overallCompliant"] is False
        airflow = body["tests"][0]
        assert airflow["verdict"] is False
        assert airflow["displayValue"] == "500 m³/h (11.9 ACH)"

    def test_unknown_key(self, client):
        response = client.post("/api/v1/compliance/room", json={"selectedTests": ["ozoneLevel"]})
        assert response.status_code == 422


class TestDevicesApi:

    def test_due_devices(self, client):
        client.post("/api/v1/devices", json={"id": "d1", "deviceName": "EKG", "nextCalibrationDate": "2024-12-20"})
        client.post("/api/v1/devices", json={"id": "d2", "deviceName": "Monitör", "nextCalibrationDate": "2025-06-01"})
        due = client.get("/api/v1/devices/due", params={"days": 30, "today": "2024-12-15"}).json()
        assert [d["device"]["id"] for d in due] == ["d1"]
        assert due[0]["daysLeft"] == 5

    def test_calibration_updates_device(self, client):
        client.post("/api/v1/devices", json={"id": "d1", "deviceName": "EKG"})
        response = client.post("/api/v1/calibrations", json={
            "deviceId": "d1",
            "calibrationDate": "2024-11-01",
            "nextCalibrationDate": "2025-11-01",
            "result": "passed",
        })
        assert response.status_code == 201
        device = client.get("/api/v1/devices/d1").json()
        assert device["lastCalibrationDate"] == "2024-11-01"
        assert device["nextCalibrationDate"] == "2025-11-01"

    def test_patch_device_camel_case(self, client):
        client.post("/api/v1/devices", json={"id": "d1", "deviceName": "EKG"})
        device = client.patch("/api/v1/devices/d1", json={"serialNumber": "PH-2023-001"}).json()
        assert device["serialNumber"] == "PH-2023-001"


class TestCors:

    def test_cors_headers_on_error_response(self, client):
        response = client.get(f"{REPORTS}/missing", headers={"Origin": "http://localhost:3000"})
        assert response.status_code == 404
        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
