import os
from datetime import date as date_type
from typing import Optional
from fastapi import FastAPI, HTTPException, Depends, Query
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from .errors import FormValidationError
from .models import (
    Appointment,
    AppointmentForm,
    DaySlots,
    Department,
    DepartmentForm,
    Doctor,
    DoctorForm,
    Notice,
    PaginatedResponse,
    Patient,
    PatientForm,
    Slot,
)
from . import workflows as wf


class MenuItem(BaseModel):
    title: str
    href: str


class SubmitResp(BaseModel):
    notice: Notice
    data: Optional[dict] = None
    redirect_to: Optional[str] = None
    redirect_after: float = 0.0


class PatientHistoryResp(BaseModel):
    patient: Patient
    appointments: list[Appointment]
    page_number: int
    page_size: int
    total_pages: int
    total_count: int


class SlotsResp(BaseModel):
    doctor_id: int
    date: str
    slots: list[Slot]
    selected_time: str = ""


class NearestResp(BaseModel):
    doctor_id: int
    days: list[DaySlots]
    message: Optional[str] = None


MENU = [
    MenuItem(title="Departments & doctors", href="/departments"),
    MenuItem(title="New patient", href="/patients/new"),
    MenuItem(title="New appointment", href="/appointments/new"),
    MenuItem(title="Patient search", href="/patients/search"),
]

API_KEY = os.getenv("FRONTDESK_API_KEY", "")
# HTTPBearer scheme so Swagger-UI can attach the Authorization header globally
auth_scheme = HTTPBearer(auto_error=False)

app = FastAPI(title="Hospital Front Desk")


def verify_key(credentials: HTTPAuthorizationCredentials = Depends(auth_scheme)):
    """Validate Bearer token when FRONTDESK_API_KEY is configured"""
    if not API_KEY:
        return
    if credentials is None or credentials.scheme.lower() != "bearer" or credentials.credentials != API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


def _fail(outcome: wf.Outcome):
    # Upstream 4xx and success=false are the caller's problem; anything else is ours.
    err = outcome.error
    status = 400 if err is not None and (err.kind == "logical" or (err.status_code or 500) < 500) else 502
    raise HTTPException(status_code=status, detail=outcome.notice.message)


def _submitted(outcome: wf.Outcome) -> SubmitResp:
    if not outcome.ok:
        _fail(outcome)
    data = outcome.data.model_dump(by_alias=True, exclude_none=True) if outcome.data is not None else None
    return SubmitResp(
        notice=outcome.notice, data=data, redirect_to=outcome.redirect_to, redirect_after=outcome.redirect_after
    )


def _invalid(e: FormValidationError) -> HTTPException:
    return HTTPException(status_code=422, detail={"message": e.message, "fields": e.field_errors})


def _lookup_failed(screen) -> HTTPException:
    # Only a miss is a 404; an unreachable or failing backend is a bad gateway.
    err = screen.last_error
    status = 404 if err is None or err.kind == "logical" or err.not_found else 502
    return HTTPException(status_code=status, detail=screen.notice.message)


@app.get("/", response_model=list[MenuItem])
async def menu():
    return MENU


# Patients -----------------------------------------------------------------

@app.post("/patients", dependencies=[Depends(verify_key)], response_model=SubmitResp)
async def register_patient(form: PatientForm):
    """Register a new patient, then send the clerk to patient search."""
    try:
        outcome = await wf.RegistrationWorkflow().register(form)
    except FormValidationError as e:
        raise _invalid(e) from e
    return _submitted(outcome)


@app.get("/patients/{tc}", dependencies=[Depends(verify_key)], response_model=PatientHistoryResp)
async def search_patient(
    tc: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(wf.DEFAULT_HISTORY_PAGE_SIZE, ge=1),
):
    """Look a patient up by national ID and return one page of their appointments."""
    screen = wf.PatientSearchWorkflow(page_size=page_size)
    try:
        patient = await screen.search(tc)
    except FormValidationError as e:
        raise _invalid(e) from e
    if patient is None:
        raise _lookup_failed(screen)
    if page != 1 and not await screen.go_to(page):
        raise HTTPException(status_code=404, detail=f"Page {page} is out of range")
    return PatientHistoryResp(
        patient=patient,
        appointments=screen.appointments,
        page_number=screen.current_page,
        page_size=screen.page_size,
        total_pages=screen.total_pages,
        total_count=screen.total_count,
    )


# Directory ----------------------------------------------------------------

@app.get("/doctors", dependencies=[Depends(verify_key)])
async def get_doctors(page: Optional[int] = Query(None, ge=1), page_size: int = Query(10, ge=1)):
    """Full doctor list, or one page of it when `page` is given. Never fails."""
    if page is None:
        return [d.model_dump(by_alias=True, exclude_none=True) for d in await wf.load_doctors()]
    result: PaginatedResponse[Doctor] = await wf.load_doctors_page(page, page_size)
    return result.model_dump(by_alias=True, exclude_none=True)


@app.get("/departments", dependencies=[Depends(verify_key)])
async def get_departments(page: Optional[int] = Query(None, ge=1), page_size: int = Query(10, ge=1)):
    if page is None:
        return [d.model_dump(by_alias=True, exclude_none=True) for d in await wf.load_departments()]
    result: PaginatedResponse[Department] = await wf.load_departments_page(page, page_size)
    return result.model_dump(by_alias=True, exclude_none=True)


@app.get("/departments/{department_id}/doctors", dependencies=[Depends(verify_key)])
async def get_department_doctors(department_id: int):
    return [d.model_dump(by_alias=True, exclude_none=True) for d in await wf.load_doctors_by_department(department_id)]


@app.post("/departments", dependencies=[Depends(verify_key)], response_model=SubmitResp)
async def create_department(form: DepartmentForm):
    return _submitted(await wf.DirectoryWorkflow().create_department(form))


@app.post("/doctors", dependencies=[Depends(verify_key)], response_model=SubmitResp)
async def create_doctor(form: DoctorForm):
    return _submitted(await wf.DirectoryWorkflow().create_doctor(form))


# Booking ------------------------------------------------------------------

@app.get("/doctors/{doctor_id}/slots", dependencies=[Depends(verify_key)], response_model=SlotsResp)
async def doctor_slots(
    doctor_id: int,
    date: str = Query(..., description="YYYY-MM-DD"),
    selected_time: str = Query("", description="Currently chosen time; cleared if no longer offered"),
):
    """Open slots for a doctor on one date."""
    selector = wf.SlotSelector()
    selector.choose_time(selected_time)
    await selector.select(doctor_id, date)
    return SlotsResp(doctor_id=doctor_id, date=date, slots=selector.slots, selected_time=selector.selected_time)


@app.get("/doctors/{doctor_id}/nearest-slots", dependencies=[Depends(verify_key)], response_model=NearestResp)
async def nearest_slots(doctor_id: int, today: Optional[date_type] = Query(None)):
    """Days in the coming week on which the doctor has at least one opening."""
    days = await wf.find_nearest_slots(doctor_id, today=today)
    return NearestResp(doctor_id=doctor_id, days=days, message=None if days else wf.NO_NEAREST_SLOT)


@app.post("/appointments", dependencies=[Depends(verify_key)], response_model=SubmitResp)
async def book_appointment(form: AppointmentForm):
    """Resolve the patient by national ID and book the chosen slot."""
    screen = wf.BookingWorkflow()
    try:
        patient = await screen.search_patient(form.patient_tc)
        if patient is None:
            raise _lookup_failed(screen)
        outcome = await screen.submit(form)
    except FormValidationError as e:
        raise _invalid(e) from e
    return _submitted(outcome)
