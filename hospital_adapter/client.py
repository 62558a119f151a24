"""Async client for the hospital REST API.

Every response is wrapped in a {success, data, message?} envelope; the helpers
below unwrap it and raise HospitalApiError when it reports a failure.
"""
from __future__ import annotations
import logging
import os
from typing import Any, TypeVar
import httpx
from dotenv import load_dotenv
from pydantic import ValidationError
from .errors import HospitalApiError
from .models import (
    ApiResponse,
    Appointment,
    AppointmentRequest,
    Department,
    DepartmentForm,
    Doctor,
    DoctorForm,
    PaginatedResponse,
    Patient,
    PatientForm,
    Slot,
)

load_dotenv()

logger = logging.getLogger(__name__)

_BASE_URL = os.getenv("HOSPITAL_API_URL", "https://localhost:7131/api").rstrip("/")
# The development backend ships a self-signed certificate.
_VERIFY_TLS = os.getenv("HOSPITAL_API_VERIFY_TLS", "1") != "0"

_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}

T = TypeVar("T")


def _decode(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text or None


async def _call(method: str, path: str, envelope: type[ApiResponse[T]], **kwargs) -> T:
    """Issue one request and return the envelope's data."""
    try:
        async with httpx.AsyncClient(http2=True, verify=_VERIFY_TLS) as client:
            resp = await client.request(method, f"{_BASE_URL}{path}", headers=_HEADERS, **kwargs)
            resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        logger.info("%s %s -> HTTP %s", method, path, e.response.status_code)
        raise HospitalApiError("transport", status_code=e.response.status_code, payload=_decode(e.response)) from e
    except httpx.RequestError as e:
        logger.info("%s %s failed: %s", method, path, e)
        raise HospitalApiError("transport", message=f"Could not reach the hospital service: {e}") from e

    body = _decode(resp)
    try:
        parsed = envelope.model_validate(body)
    except ValidationError as e:
        raise HospitalApiError("logical", message="Unexpected response from the hospital service", payload=body) from e
    if not parsed.ok:
        raise HospitalApiError("logical", message=parsed.message, status_code=resp.status_code)
    return parsed.data  # type: ignore[return-value]


def _page_params(page_number: int, page_size: int) -> dict[str, int]:
    return {"PageNumber": page_number, "PageSize": page_size}


# Patients -------------------------------------------------------------------

async def create_patient(form: PatientForm) -> Patient:
    return await _call("POST", "/Patient", ApiResponse[Patient], json=form.model_dump(by_alias=True))


async def get_patient_by_tc(tc: str) -> Patient:
    """Resolve a patient by 11-digit national ID."""
    return await _call("GET", f"/Patient/tc/{tc}", ApiResponse[Patient])


# Doctors --------------------------------------------------------------------

async def list_doctors() -> list[Doctor]:
    return await _call("GET", "/Doctor", ApiResponse[list[Doctor]])


async def list_doctors_page(page_number: int = 1, page_size: int = 10) -> PaginatedResponse[Doctor]:
    return await _call(
        "GET", "/Doctor/pagination", ApiResponse[PaginatedResponse[Doctor]], params=_page_params(page_number, page_size)
    )


async def list_doctors_by_department(department_id: int) -> list[Doctor]:
    return await _call("GET", f"/Doctor/department/{department_id}", ApiResponse[list[Doctor]])


async def create_doctor(form: DoctorForm) -> Doctor:
    return await _call("POST", "/Doctor", ApiResponse[Doctor], json=form.model_dump(by_alias=True))


async def get_available_slots(doctor_id: int, date_iso: str) -> list[Slot]:
    """Open slots for a doctor on YYYY-MM-DD, as computed by the backend right now."""
    return await _call(
        "GET", f"/Doctor/{doctor_id}/available-slots", ApiResponse[list[Slot]], params={"date": date_iso}
    )


# Departments ----------------------------------------------------------------

async def list_departments() -> list[Department]:
    return await _call("GET", "/Department", ApiResponse[list[Department]])


async def list_departments_page(page_number: int = 1, page_size: int = 10) -> PaginatedResponse[Department]:
    return await _call(
        "GET",
        "/Department/pagination",
        ApiResponse[PaginatedResponse[Department]],
        params=_page_params(page_number, page_size),
    )


async def create_department(form: DepartmentForm) -> Department:
    return await _call("POST", "/Department", ApiResponse[Department], json=form.model_dump())


# Appointments ---------------------------------------------------------------

async def create_appointment(req: AppointmentRequest) -> Appointment:
    return await _call("POST", "/Appointment", ApiResponse[Appointment], json=req.model_dump(by_alias=True))


async def list_patient_appointments(
    patient_id: int, page_number: int = 1, page_size: int = 5
) -> PaginatedResponse[Appointment]:
    return await _call(
        "GET",
        f"/Appointment/patient/{patient_id}",
        ApiResponse[PaginatedResponse[Appointment]],
        params=_page_params(page_number, page_size),
    )
