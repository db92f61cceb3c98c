"""Tests for REST API endpoints."""


async def create(async_client, body):
    resp = await async_client.post("/api/patients", json=body)
    assert resp.status_code == 200, resp.text
    return resp.json()["patientId"]


async def test_create_patient(async_client, patient_data):
    resp = await async_client.post("/api/patients", json=patient_data)
    assert resp.status_code == 200
    data = resp.json()
    assert data["message"] == "Patient created successfully"
    assert data["patientId"]


async def test_create_patient_validation_errors(async_client):
    resp = await async_client.post("/api/patients", json={"patientId": "123", "name": "J"})
    assert resp.status_code == 400
    data = resp.json()
    assert data["error"] == "Validation failed"
    assert data["errors"]["patientId"] == "Patient ID must be in format P001-P999999"
    assert data["errors"]["name"] == "Name must be at least 2 characters long"
    assert set(data["errors"]) >= {"dateOfBirth", "gender", "phone", "email", "address"}


async def test_create_duplicate_patient_id(async_client, patient_data, patient_factory):
    await create(async_client, patient_data)
    duplicate = patient_factory(
        contactInfo={"phone": "5551234567", "email": "other@example.com", "address": "99 Other Street, Town"},
    )
    resp = await async_client.post("/api/patients", json=duplicate)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Patient ID already exists"}


async def test_create_non_object_body(async_client):
    resp = await async_client.post("/api/patients", json=["P001"])
    assert resp.status_code == 422


async def test_get_patient_wire_shape(async_client, patient_data):
    record_id = await create(async_client, patient_data)
    resp = await async_client.get(f"/api/patients/{record_id}")
    assert resp.status_code == 200
    data = resp.json()
    assert data["_id"] == record_id
    assert data["patientId"] == "P001"
    assert data["dateOfBirth"] == "1985-04-12"
    assert data["contactInfo"] == patient_data["contactInfo"]
    assert data["allergies"] == ["Penicillin"]
    assert data["medicalHistory"] == ["Asthma"]
    assert data["currentPrescriptions"] == ["Salbutamol inhaler"]
    assert data["doctorNotes"] == "Annual review due."
    assert data["createdAt"] == data["updatedAt"]


async def test_get_patient_not_found(async_client):
    resp = await async_client.get("/api/patients/nonexistent-id")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Patient not found"}


async def test_list_patients_empty(async_client):
    resp = await async_client.get("/api/patients")
    assert resp.status_code == 200
    assert resp.json() == {"patients": [], "currentPage": 1, "totalPages": 0, "total": 0}


async def test_list_patients_search(async_client, patient_data, patient_factory):
    await create(async_client, patient_data)
    await create(async_client, patient_factory(
        patientId="P002",
        name="Sam Carter",
        allergies=["Latex"],
        contactInfo={"phone": "5551234567", "email": "sam@example.com", "address": "99 Other Street, Town"},
    ))

    resp = await async_client.get("/api/patients", params={"search": "PEN", "field": "allergies"})
    data = resp.json()
    assert data["total"] == 1
    assert data["totalPages"] == 1
    assert data["patients"][0]["patientId"] == "P001"

    resp = await async_client.get("/api/patients", params={"search": "carter"})
    assert [p["patientId"] for p in resp.json()["patients"]] == ["P002"]


async def test_list_patients_pagination(async_client, patient_factory):
    for i in range(5):
        await create(async_client, patient_factory(
            patientId=f"P10{i}",
            contactInfo={"phone": "5551234567", "email": f"p{i}@example.com", "address": "99 Other Street, Town"},
        ))
    resp = await async_client.get("/api/patients", params={"page": 2, "limit": 2})
    data = resp.json()
    assert data["currentPage"] == 2
    assert data["totalPages"] == 3
    assert data["total"] == 5
    assert [p["patientId"] for p in data["patients"]] == ["P102", "P101"]


async def test_list_patients_invalid_pagination(async_client):
    assert (await async_client.get("/api/patients", params={"page": 0})).status_code == 422
    assert (await async_client.get("/api/patients", params={"limit": 0})).status_code == 422
    assert (await async_client.get("/api/patients", params={"limit": 10_000})).status_code == 422


async def test_update_patient(async_client, patient_data):
    record_id = await create(async_client, patient_data)
    resp = await async_client.put(f"/api/patients/{record_id}", json={"allergies": ["X"]})
    assert resp.status_code == 200
    assert resp.json() == {"message": "Patient updated successfully", "modifiedCount": 1}

    data = (await async_client.get(f"/api/patients/{record_id}")).json()
    assert data["allergies"] == ["X"]
    assert data["name"] == "Jane Doe"


async def test_update_with_full_record_echo(async_client, patient_data):
    record_id = await create(async_client, patient_data)
    stored = (await async_client.get(f"/api/patients/{record_id}")).json()
    stored["doctorNotes"] = "Reviewed"
    resp = await async_client.put(f"/api/patients/{record_id}", json=stored)
    assert resp.status_code == 200
    assert (await async_client.get(f"/api/patients/{record_id}")).json()["doctorNotes"] == "Reviewed"


async def test_update_patient_not_found(async_client):
    resp = await async_client.put("/api/patients/nonexistent-id", json={"name": "Jane Smith"})
    assert resp.status_code == 404


async def test_update_patient_invalid(async_client, patient_data):
    record_id = await create(async_client, patient_data)
    resp = await async_client.put(f"/api/patients/{record_id}", json={"contactInfo": {"email": "nope"}})
    assert resp.status_code == 400
    assert resp.json()["errors"]["email"] == "Please enter a valid email address"


async def test_delete_patient(async_client, patient_data):
    record_id = await create(async_client, patient_data)
    resp = await async_client.delete(f"/api/patients/{record_id}")
    assert resp.status_code == 200
    assert resp.json() == {"message": "Patient deleted successfully", "deletedCount": 1}
    assert (await async_client.get(f"/api/patients/{record_id}")).status_code == 404


async def test_delete_patient_not_found(async_client):
    resp = await async_client.delete("/api/patients/nonexistent-id")
    assert resp.status_code == 404


async def test_stats(async_client, patient_data):
    record_id = await create(async_client, patient_data)
    await async_client.put(f"/api/patients/{record_id}", json={"doctorNotes": "Seen"})

    resp = await async_client.get("/api/patients/stats")
    assert resp.status_code == 200
    data = resp.json()
    assert data["totalPatients"] == 1
    assert set(data["ageStatistics"]) == {"avgAge", "minAge", "maxAge"}
    assert data["genderDistribution"] == [{"_id": "Female", "count": 1}]
    assert data["commonAllergies"] == [{"_id": "Penicillin", "count": 1}]
    assert [a["action"] for a in data["recentActivity"]] == ["UPDATE_PATIENT", "CREATE_PATIENT"]
    assert data["recentActivity"][0]["details"] == {"updatedFields": ["doctorNotes"], "modifiedCount": 1}


async def test_optimize_requires_query(async_client):
    resp = await async_client.get("/api/patients/optimize")
    assert resp.status_code == 400
    assert resp.json()["error"] == "Query parameter is required"


async def test_optimize(async_client, patient_data):
    await create(async_client, patient_data)
    resp = await async_client.get("/api/patients/optimize", params={"query": "asth"})
    assert resp.status_code == 200
    data = resp.json()
    assert [p["patientId"] for p in data["results"]] == ["P001"]
    performance = data["performance"]
    assert performance["totalDocsReturned"] == 1
    assert set(performance) == {
        "totalDocsExamined", "totalDocsReturned", "executionTimeMillis", "indexesUsed",
    }
    assert data["suggestions"]


async def test_storage_failure_reported_generically(async_client, db):
    await db.execute("DROP TABLE patients")
    await db.commit()

    resp = await async_client.get("/api/patients")
    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal storage error"}

    for path in ("/api/patients/stats", "/api/patients/optimize?query=pen"):
        resp = await async_client.get(path)
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal storage error"}
