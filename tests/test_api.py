from decimal import Decimal
from io import BytesIO

from openpyxl import Workbook

HEADERS = {"X-User-Id": "42", "User-Agent": "marks-desk/1.0"}


def post_mark(client, catalog, student, code, marks, **extra):
    return client.post(
        "/api/v1/results",
        json={
            "student_id": student.id,
            "subject_id": catalog.subjects[code].id,
            "exam_id": catalog.exam.id,
            "marks_obtained": marks,
            **extra,
        },
        headers=HEADERS,
    )


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_record_mark(client, catalog):
    response = post_mark(client, catalog, catalog.o_students[0], "MATH", 77)
    assert response.status_code == 200
    body = response.json()
    assert Decimal(body["marks_obtained"]) == Decimal("77")
    assert body["grade"] == "A"
    assert body["result_model"] == "OLevelResult"
    assert response.headers["X-Request-ID"]


def test_out_of_range_error_body(client, catalog):
    response = post_mark(client, catalog, catalog.o_students[0], "MATH", 150)
    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "OUT_OF_RANGE"


def test_not_eligible_error_body(client, catalog):
    response = post_mark(client, catalog, catalog.a_students[0], "A-HIST", 60, is_principal=True)
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "NOT_ELIGIBLE"


def test_bad_user_header(client, catalog):
    response = client.post(
        "/api/v1/results",
        json={"student_id": 1, "subject_id": 1, "exam_id": 1, "marks_obtained": 50},
        headers={"X-User-Id": "admin"},
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_bulk_endpoint(client, catalog):
    student = catalog.o_students[1]
    entries = [
        {"student_id": student.id, "subject_id": catalog.subjects["BIO"].id, "exam_id": catalog.exam.id, "marks_obtained": 55},
        {"student_id": student.id, "subject_id": catalog.subjects["CHEM"].id, "exam_id": catalog.exam.id, "marks_obtained": -3},
    ]
    response = client.post("/api/v1/results/bulk", json={"entries": entries}, headers=HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert (body["saved"], body["rejected"]) == (1, 1)


def test_workbook_upload_endpoint(client, catalog):
    wb = Workbook()
    ws = wb.active
    ws.append(["Admission Number", "Subject", "Marks"])
    ws.append(["S001", "GEO", 59])
    buffer = BytesIO()
    wb.save(buffer)

    response = client.post(
        "/api/v1/results/bulk/upload",
        data={"exam_id": str(catalog.exam.id)},
        files={"file": ("marks.xlsx", buffer.getvalue(), "application/octet-stream")},
        headers=HEADERS,
    )
    assert response.status_code == 200
    assert response.json()["saved"] == 1


def test_upload_rejects_other_extensions(client, catalog):
    response = client.post(
        "/api/v1/results/bulk/upload",
        data={"exam_id": str(catalog.exam.id)},
        files={"file": ("marks.csv", b"a,b,c", "text/csv")},
        headers=HEADERS,
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "UPLOAD_FAILED"


def test_history_and_revert_flow(client, catalog):
    student = catalog.o_students[0]
    created = post_mark(client, catalog, student, "HIST", 40).json()
    post_mark(client, catalog, student, "HIST", 90)

    response = client.get(
        "/api/v1/history",
        params={"result_id": created["id"], "result_model": "OLevelResult"},
    )
    assert response.status_code == 200
    page = response.json()
    assert page["total"] == 2
    assert page["items"][0]["change_type"] == "UPDATE"
    assert page["items"][0]["user_id"] == 42
    assert page["items"][0]["user_agent"] == "marks-desk/1.0"
    first_id = page["items"][1]["id"]

    reverted = client.post(
        f"/api/v1/history/{first_id}/revert",
        json={"reason": "typo"},
        headers=HEADERS,
    )
    assert reverted.status_code == 200
    assert Decimal(reverted.json()["marks_obtained"]) == Decimal("40")
    assert reverted.json()["grade"] == "D"

    entry = client.get(f"/api/v1/history/{first_id + 2}").json()
    assert entry["reverted_from_id"] == first_id
    assert entry["reason"] == "typo"


def test_history_needs_a_filter(client):
    response = client.get("/api/v1/history")
    assert response.status_code == 422


def test_delete_then_revert(client, catalog):
    created = post_mark(client, catalog, catalog.o_students[2], "CIV", 66).json()
    response = client.delete(f"/api/v1/results/OLevelResult/{created['id']}", params={"reason": "wrong student"})
    assert response.status_code == 200
    assert client.get(f"/api/v1/results/OLevelResult/{created['id']}").status_code == 404

    page = client.get("/api/v1/history", params={"student_id": catalog.o_students[2].id}).json()
    delete_entry = page["items"][0]
    assert delete_entry["change_type"] == "DELETE"

    restored = client.post(f"/api/v1/history/{delete_entry['id']}/revert", headers=HEADERS)
    assert restored.status_code == 200
    assert restored.json()["id"] == created["id"]


def test_reports(client, catalog):
    for student, marks in zip(catalog.o_students[:2], (81, 64)):
        for code in ("MATH", "ENG", "BIO", "CHEM", "PHY", "HIST", "GEO"):
            post_mark(client, catalog, student, code, marks)

    student_report = client.get(
        f"/api/v1/reports/students/{catalog.o_students[1].id}", params={"exam_id": catalog.exam.id}
    )
    assert student_report.status_code == 200
    body = student_report.json()
    assert body["total_points"] == 21
    assert body["division"] == "II"
    assert body["position"] == 2

    class_report = client.get(f"/api/v1/reports/classes/{catalog.form_two.id}", params={"exam_id": catalog.exam.id})
    assert class_report.status_code == 200
    summary = class_report.json()
    assert summary["division_distribution"]["I"] == 1
    assert summary["division_distribution"]["II"] == 1
    assert [s["position"] for s in summary["students"]] == [1, 2, None, None]


def test_report_for_unknown_exam(client, catalog):
    response = client.get(f"/api/v1/reports/classes/{catalog.form_two.id}", params={"exam_id": 999})
    assert response.status_code == 404


def test_combination_upsert_and_assign(client, catalog):
    payload = {
        "code": "pcb",
        "name": "Physics Chemistry Biology",
        "subjects": [catalog.subjects["A-PHY"].id, {"code": "A-CHEM"}],
        "compulsorySubjects": ["General Studies"],
    }
    response = client.post("/api/v1/subject-combinations", json=payload)
    assert response.status_code == 200
    combination = response.json()
    assert combination["code"] == "PCB"
    assert [m["code"] for m in combination["principal_subjects"]] == ["A-PHY", "A-CHEM"]
    assert [m["code"] for m in combination["subsidiary_subjects"]] == ["GS"]

    fetched = client.get(f"/api/v1/subject-combinations/{combination['id']}").json()
    assert fetched == combination

    student = catalog.a_students[1]
    assigned = client.put(
        f"/api/v1/students/{student.id}/subject-combination",
        json={"subject_combination_id": combination["id"]},
    )
    assert assigned.status_code == 200
    assert assigned.json()["combination_code"] == "PCB"

    mark = post_mark(client, catalog, student, "A-PHY", 71)
    assert mark.status_code == 200
    assert mark.json()["is_principal"] is True


def test_combination_with_unknown_subject(client, catalog):
    response = client.post(
        "/api/v1/subject-combinations",
        json={"code": "XYZ", "name": "Unknown", "subjects": ["Astrology"]},
    )
    assert response.status_code == 422
    assert response.json()["error"]["details"]["errors"][0]["error"] == "unknown subject"


def test_o_level_student_cannot_take_combination(client, catalog):
    response = client.put(
        f"/api/v1/students/{catalog.o_students[0].id}/subject-combination",
        json={"subject_combination_id": catalog.pcm.id},
    )
    assert response.status_code == 422


def test_grading_policy_update_applies_to_new_marks(client, catalog):
    current = client.get("/api/v1/grading-policies").json()
    assert current["o_level"]["best_of"] == 7

    update = {
        "grade_bands": [
            {"grade": "A", "min_marks": "60", "points": 1, "remark": "Excellent"},
            {"grade": "F", "min_marks": "0", "points": 5, "remark": "Fail", "is_pass": False},
        ],
        "division_bands": [{"division": "I", "min_points": 7, "max_points": 35}],
        "best_of": 7,
        "min_subjects": 7,
    }
    response = client.put("/api/v1/grading-policies/O_LEVEL", json=update, headers=HEADERS)
    assert response.status_code == 200

    assert client.get("/api/v1/grading-policies").json()["o_level"]["grade_bands"][0]["min_marks"] in ("60", "60.0")
    mark = post_mark(client, catalog, catalog.o_students[3], "BIO", 61).json()
    assert mark["grade"] == "A"


def test_grading_policy_rejects_overlapping_divisions(client):
    update = {
        "grade_bands": [{"grade": "A", "min_marks": "0", "points": 1}],
        "division_bands": [
            {"division": "I", "min_points": 1, "max_points": 5},
            {"division": "II", "min_points": 4, "max_points": 9},
        ],
        "best_of": 1,
    }
    response = client.put("/api/v1/grading-policies/A_LEVEL", json=update, headers=HEADERS)
    assert response.status_code == 422


def test_reading_a_result_uses_the_current_policy(client, catalog):
    created = post_mark(client, catalog, catalog.o_students[3], "BIO", 40).json()
    assert created["grade"] == "D"

    update = {
        "grade_bands": [
            {"grade": "A", "min_marks": "60", "points": 1, "remark": "Excellent"},
            {"grade": "F", "min_marks": "0", "points": 5, "remark": "Fail", "is_pass": False},
        ],
        "division_bands": [{"division": "I", "min_points": 7, "max_points": 35}],
        "best_of": 7,
        "min_subjects": 7,
    }
    assert client.put("/api/v1/grading-policies/O_LEVEL", json=update, headers=HEADERS).status_code == 200

    response = client.get(f"/api/v1/results/OLevelResult/{created['id']}")
    assert response.status_code == 200
    body = response.json()
    assert (body["grade"], body["points"], body["remark"]) == ("F", 5, "Fail")


def test_unhandled_error_body(client):
    from fastapi.testclient import TestClient

    from results_engine.core.dependencies import get_policy_provider
    from results_engine.main import app

    def broken_provider():
        raise RuntimeError("policy cache exploded")

    app.dependency_overrides[get_policy_provider] = broken_provider
    response = TestClient(app, raise_server_exceptions=False).get("/api/v1/grading-policies")

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "INTERNAL_ERROR"
    assert "exploded" not in body["error"]["message"]
