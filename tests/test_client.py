import json, pathlib
import pytest, respx, httpx
from hospital_adapter.errors import HospitalApiError
from hospital_adapter.models import AppointmentRequest, DoctorForm, Patient, PatientForm
from hospital_adapter import client as cl


# pin the backend URL regardless of what a local .env says
cl._BASE_URL = "https://localhost:7131/api"

FIX = pathlib.Path(__file__).parent / "fixtures"
BASE = "https://localhost:7131"


@pytest.mark.asyncio
async def test_get_patient_by_tc():
    body = json.loads((FIX / "patient_get.json").read_text())
    with respx.mock(base_url=BASE) as m:
        m.get("/api/Patient/tc/12345678901").respond(200, json=body)

        patient = await cl.get_patient_by_tc("12345678901")
        assert isinstance(patient, Patient)
        assert patient.id == 7
        assert patient.surname == "Yılmaz"


@pytest.mark.asyncio
async def test_success_false_is_logical_failure():
    with respx.mock(base_url=BASE) as m:
        m.get("/api/Patient/tc/12345678901").respond(200, json={"success": False, "data": None, "message": "Hasta yok"})

        with pytest.raises(HospitalApiError) as exc:
            await cl.get_patient_by_tc("12345678901")
        assert exc.value.kind == "logical"
        assert exc.value.describe() == "Hasta yok"


@pytest.mark.asyncio
async def test_missing_data_is_logical_failure():
    with respx.mock(base_url=BASE) as m:
        m.get("/api/Doctor").respond(200, json={"success": True})

        with pytest.raises(HospitalApiError) as exc:
            await cl.list_doctors()
        assert exc.value.kind == "logical"


@pytest.mark.asyncio
async def test_http_error_keeps_status_and_body():
    with respx.mock(base_url=BASE) as m:
        m.get("/api/Patient/tc/00000000000").respond(404, json={"Message": "Patient not found"})

        with pytest.raises(HospitalApiError) as exc:
            await cl.get_patient_by_tc("00000000000")
        assert exc.value.kind == "transport"
        assert exc.value.not_found
        assert exc.value.describe() == "Patient not found"


@pytest.mark.asyncio
async def test_network_error_is_transport_failure():
    with respx.mock(base_url=BASE) as m:
        m.get("/api/Department").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(HospitalApiError) as exc:
            await cl.list_departments()
        assert exc.value.kind == "transport"
        assert exc.value.status_code is None


@pytest.mark.asyncio
async def test_available_slots_sends_date_param():
    slots = [{"id": 1, "time": "09:00"}, {"id": 2, "time": "09:30"}]
    with respx.mock(base_url=BASE) as m:
        route = m.get("/api/Doctor/2/available-slots").respond(200, json={"success": True, "data": slots})

        result = await cl.get_available_slots(2, "2024-06-10")
        assert [s.time for s in result] == ["09:00", "09:30"]
        assert route.calls.last.request.url.params["date"] == "2024-06-10"


@pytest.mark.asyncio
async def test_patient_appointments_are_paginated():
    body = json.loads((FIX / "appointments_page.json").read_text())
    with respx.mock(base_url=BASE) as m:
        route = m.get("/api/Appointment/patient/7").respond(200, json=body)

        page = await cl.list_patient_appointments(7, page_number=1, page_size=10)
        params = route.calls.last.request.url.params
        assert params["PageNumber"] == "1"
        assert params["PageSize"] == "10"
        assert page.total_pages == 3
        # both spellings of the time field are accepted
        assert [a.time for a in page.items] == ["10:30", "14:00"]


@pytest.mark.asyncio
async def test_create_appointment_posts_camel_case_body():
    req = AppointmentRequest(patient_id=7, doctor_id=2, date="2024-06-10", time="09:00")
    created = {"id": 99, "patientId": 7, "doctorId": 2, "date": "2024-06-10", "time": "09:00"}
    with respx.mock(base_url=BASE) as m:
        route = m.post("/api/Appointment").respond(200, json={"success": True, "data": created})

        appt = await cl.create_appointment(req)
        assert appt.id == 99
        sent = json.loads(route.calls.last.request.content)
        assert sent == {"patientId": 7, "doctorId": 2, "date": "2024-06-10", "time": "09:00"}


@pytest.mark.asyncio
async def test_create_doctor_and_patient_bodies():
    with respx.mock(base_url=BASE) as m:
        doc_route = m.post("/api/Doctor").respond(
            200, json={"success": True, "data": {"id": 3, "name": "Can", "surname": "Öz", "departmentId": 1}}
        )
        pat_route = m.post("/api/Patient").respond(
            200, json=json.loads((FIX / "patient_get.json").read_text())
        )

        doctor = await cl.create_doctor(DoctorForm(name="Can", surname="Öz", department_id=1))
        assert doctor.department_id == 1
        assert json.loads(doc_route.calls.last.request.content) == {"name": "Can", "surname": "Öz", "departmentId": 1}

        form = PatientForm(
            tc="12345678901", name="Ayşe", surname="Yılmaz", phone="5551234567", address="Atatürk Cad. No:1 Kadıköy"
        )
        await cl.create_patient(form)
        assert json.loads(pat_route.calls.last.request.content)["tc"] == "12345678901"
