"""Front-desk workflows.

Each workflow object owns the state of one screen (resolved patient, slot list,
current notice, paging) and is driven by the API layer or by tests directly.
"""
from __future__ import annotations
import asyncio
import inspect
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Optional, TypeVar
from pydantic import BaseModel, ValidationError
from . import client
from .errors import FormValidationError, HospitalApiError
from .models import (
    Appointment,
    AppointmentForm,
    AppointmentRequest,
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

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)
SlotFetcher = Callable[[int, str], Awaitable[list[Slot]]]

PATIENT_SEARCH_PATH = "/patients/search"
BOOKING_REDIRECT_DELAY = 2.0
REGISTRATION_REDIRECT_DELAY = 1.0
NEAREST_SLOT_WINDOW_DAYS = 7
DEFAULT_HISTORY_PAGE_SIZE = 5
TC_LENGTH = 11

INVALID_TC = "Please enter a valid 11-digit national ID."
PATIENT_NOT_FOUND = "Patient not found. Please check the national ID."
NO_PATIENT_WITH_TC = "No patient is registered with this national ID."
PATIENT_ALREADY_EXISTS = "A patient with this national ID is already registered."
LOOKUP_PATIENT_FIRST = "Please look up the patient first."
NO_NEAREST_SLOT = "No available appointment found in the next 7 days."


@dataclass
class Outcome:
    """Result of a form submission."""
    notice: Notice
    data: Any = None
    redirect_to: Optional[str] = None
    redirect_after: float = 0.0
    error: Optional[HospitalApiError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def follow_redirect(outcome: Outcome, navigate: Callable[[str], Any], sleep=asyncio.sleep) -> bool:
    """Wait out the confirmation delay, then navigate. Returns False when there is nowhere to go."""
    if not outcome.ok or not outcome.redirect_to:
        return False
    await sleep(outcome.redirect_after)
    result = navigate(outcome.redirect_to)
    if inspect.isawaitable(result):
        await result
    return True


def check_form(model: type[M], data: Any) -> M:
    """Run the synchronous schema check of a form."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise FormValidationError.from_pydantic(e) from e


def validate_tc(tc: str) -> str:
    if len(tc) != TC_LENGTH:
        raise FormValidationError(INVALID_TC, {"tc": INVALID_TC})
    return tc


def lookup_failure_message(err: HospitalApiError) -> str:
    if err.kind == "logical":
        return PATIENT_NOT_FOUND
    return err.describe(NO_PATIENT_WITH_TC if err.not_found else PATIENT_NOT_FOUND)


async def ignore_failures(call: Awaitable[T], what: str, default: T) -> T:
    """Collapse a failed read into `default`.

    Directory lists and history pages degrade to "nothing to show" instead of
    surfacing an error; the failure is only logged.
    """
    try:
        return await call
    except HospitalApiError as e:
        logger.warning("Loading %s failed, showing none: %s", what, e)
        return default


# Directory loaders -----------------------------------------------------------

async def load_doctors() -> list[Doctor]:
    return await ignore_failures(client.list_doctors(), "doctors", [])


async def load_departments() -> list[Department]:
    return await ignore_failures(client.list_departments(), "departments", [])


async def load_doctors_by_department(department_id: int) -> list[Doctor]:
    return await ignore_failures(client.list_doctors_by_department(department_id), "department doctors", [])


async def load_doctors_page(page_number: int = 1, page_size: int = 10) -> PaginatedResponse[Doctor]:
    return await ignore_failures(
        client.list_doctors_page(page_number, page_size),
        "doctors page",
        PaginatedResponse[Doctor].empty(page_size, page_number),
    )


async def load_departments_page(page_number: int = 1, page_size: int = 10) -> PaginatedResponse[Department]:
    return await ignore_failures(
        client.list_departments_page(page_number, page_size),
        "departments page",
        PaginatedResponse[Department].empty(page_size, page_number),
    )


# Slots -----------------------------------------------------------------------

def _default_fetch(doctor_id: int, date_iso: str) -> Awaitable[list[Slot]]:
    return client.get_available_slots(doctor_id, date_iso)


class SlotSelector:
    """Slot list for the currently selected doctor and date.

    Every change of doctor or date refetches. Each fetch is tagged with a
    sequence number and its result is dropped if a newer fetch was started
    in the meantime, so the last request issued always wins.
    """

    def __init__(self, fetch: SlotFetcher | None = None):
        self._fetch = fetch or _default_fetch
        self._seq = 0
        self.doctor_id = 0
        self.date = ""
        self.slots: list[Slot] = []
        self.selected_time = ""
        self.loading = False

    @property
    def times(self) -> list[str]:
        return [s.time for s in self.slots]

    async def set_doctor(self, doctor_id: int) -> list[Slot]:
        self.doctor_id = doctor_id
        return await self.refresh()

    async def set_date(self, date_iso: str) -> list[Slot]:
        self.date = date_iso
        return await self.refresh()

    async def select(self, doctor_id: int, date_iso: str) -> list[Slot]:
        self.doctor_id = doctor_id
        self.date = date_iso
        return await self.refresh()

    def choose_time(self, time: str) -> None:
        self.selected_time = time

    async def pick(self, date_iso: str, time: str) -> list[Slot]:
        """Jump to a (date, time) offered by the nearest-slot search."""
        self.selected_time = time
        return await self.set_date(date_iso)

    async def refresh(self) -> list[Slot]:
        self._seq += 1
        seq = self._seq
        if not (self.doctor_id and self.date):
            self.slots = []
            self.selected_time = ""
            self.loading = False
            return self.slots

        self.loading = True
        doctor_id, day = self.doctor_id, self.date
        try:
            slots: Optional[list[Slot]] = await self._fetch(doctor_id, day)
        except HospitalApiError as e:
            logger.debug("Slots for doctor %s on %s unavailable: %s", doctor_id, day, e)
            slots = None

        if seq != self._seq:
            logger.debug("Dropping stale slots for doctor %s on %s", doctor_id, day)
            return self.slots

        self.loading = False
        self.slots = list(slots or [])
        if slots is None or self.selected_time not in self.times:
            self.selected_time = ""
        return self.slots


async def find_nearest_slots(
    doctor_id: int,
    today: date | None = None,
    days: int = NEAREST_SLOT_WINDOW_DAYS,
    fetch: SlotFetcher | None = None,
) -> list[DaySlots]:
    """Probe today and the following days one by one; keep the days with openings.

    A day whose request fails is skipped exactly like a day without slots, so
    an empty result can also mean every probe failed.
    """
    if not doctor_id:
        return []
    fetch = fetch or _default_fetch
    start = today or date.today()
    found: list[DaySlots] = []
    for offset in range(days):
        day = (start + timedelta(days=offset)).isoformat()
        try:
            slots = await fetch(doctor_id, day)
        except HospitalApiError as e:
            logger.debug("Skipping %s for doctor %s: %s", day, doctor_id, e)
            continue
        if slots:
            found.append(DaySlots(date=day, slots=slots))
    return found


# Screens ---------------------------------------------------------------------

class BookingWorkflow:
    """New-appointment screen."""

    def __init__(self, fetch_slots: SlotFetcher | None = None):
        self._fetch_slots = fetch_slots
        self.patient: Optional[Patient] = None
        self.searching_patient = True
        self.notice: Optional[Notice] = None
        self.doctors: list[Doctor] = []
        self.slots = SlotSelector(fetch_slots)
        self.nearest: list[DaySlots] = []
        self.form: Optional[AppointmentForm] = None
        self.last_error: Optional[HospitalApiError] = None

    async def load_doctors(self) -> list[Doctor]:
        self.doctors = await load_doctors()
        return self.doctors

    async def search_patient(self, tc: str) -> Optional[Patient]:
        try:
            validate_tc(tc)
        except FormValidationError as e:
            self.notice = Notice.error(e.message)
            raise
        try:
            patient = await client.get_patient_by_tc(tc)
        except HospitalApiError as e:
            logger.info("Patient lookup failed: %s", e)
            self.last_error = e
            self.notice = Notice.error(lookup_failure_message(e))
            return None
        self.patient = patient
        self.last_error = None
        self.searching_patient = False
        self.notice = Notice.success("Patient details loaded.")
        return patient

    async def find_nearest(self, today: date | None = None) -> list[DaySlots]:
        if not self.slots.doctor_id:
            return []
        self.slots.loading = True
        try:
            self.nearest = await find_nearest_slots(self.slots.doctor_id, today=today, fetch=self._fetch_slots)
        finally:
            self.slots.loading = False
        if not self.nearest:
            self.notice = Notice(level="info", title="No slots", message=NO_NEAREST_SLOT)
        return self.nearest

    async def pick_nearest(self, date_iso: str, time: str) -> None:
        await self.slots.pick(date_iso, time)
        self.nearest = []

    async def submit(self, form: AppointmentForm | dict) -> Outcome:
        if self.patient is None or self.patient.id is None:
            self.notice = Notice.error(LOOKUP_PATIENT_FIRST)
            raise FormValidationError(LOOKUP_PATIENT_FIRST)
        try:
            form = check_form(AppointmentForm, form)
        except FormValidationError as e:
            self.notice = Notice.error(e.message)
            raise
        self.form = form

        req = AppointmentRequest(
            patient_id=self.patient.id, doctor_id=form.doctor_id, date=form.date, time=form.start_time
        )
        try:
            appointment: Appointment = await client.create_appointment(req)
        except HospitalApiError as e:
            logger.info("Booking failed for patient %s: %s", self.patient.id, e)
            self.notice = Notice.error(e.describe("Could not create the appointment."))
            return Outcome(self.notice, error=e)

        self.notice = Notice.success("Appointment created.")
        return Outcome(self.notice, appointment, PATIENT_SEARCH_PATH, BOOKING_REDIRECT_DELAY)

    def reset(self) -> None:
        self.patient = None
        self.searching_patient = True
        self.form = None
        self.nearest = []
        self.slots = SlotSelector(self._fetch_slots)


class RegistrationWorkflow:
    """New-patient screen."""

    def __init__(self):
        self.notice: Optional[Notice] = None

    async def register(self, form: PatientForm | dict) -> Outcome:
        try:
            form = check_form(PatientForm, form)
        except FormValidationError as e:
            self.notice = Notice.error(e.message)
            raise
        try:
            patient = await client.create_patient(form)
        except HospitalApiError as e:
            message = e.describe("Could not register the patient.")
            lowered = message.lower()
            if "already exist" in lowered or "mevcut" in lowered or "zaten" in lowered:
                message = PATIENT_ALREADY_EXISTS
            self.notice = Notice.error(message)
            return Outcome(self.notice, error=e)

        self.notice = Notice.success("Patient registered.")
        return Outcome(self.notice, patient, PATIENT_SEARCH_PATH, REGISTRATION_REDIRECT_DELAY)


class PatientSearchWorkflow:
    """Patient-search screen with paginated appointment history."""

    def __init__(self, page_size: int = DEFAULT_HISTORY_PAGE_SIZE):
        self.page_size = page_size
        self.notice: Optional[Notice] = None
        self.last_error: Optional[HospitalApiError] = None
        self.clear()

    def clear(self) -> None:
        self.patient: Optional[Patient] = None
        self.appointments: list[Appointment] = []
        self.searched = False
        self.current_page = 1
        self.total_pages = 0
        self.total_count = 0

    def _empty_history(self) -> None:
        self.appointments = []
        self.total_pages = 0
        self.total_count = 0

    async def search(self, tc: str) -> Optional[Patient]:
        try:
            validate_tc(tc)
        except FormValidationError as e:
            self.notice = Notice.error(e.message)
            raise
        self.searched = True
        self.current_page = 1
        try:
            patient = await client.get_patient_by_tc(tc)
        except HospitalApiError as e:
            logger.info("Patient lookup failed: %s", e)
            self.last_error = e
            self.patient = None
            self._empty_history()
            self.notice = Notice.error(lookup_failure_message(e))
            return None

        self.last_error = None
        self.patient = patient
        await self.load_appointments(1)
        self.notice = Notice.success("Patient details loaded.")
        return patient

    async def load_appointments(self, page: int = 1, page_size: int | None = None) -> list[Appointment]:
        if self.patient is None or self.patient.id is None:
            return []
        size = page_size or self.page_size
        result = await ignore_failures(
            client.list_patient_appointments(self.patient.id, page, size), "appointment history", None
        )
        if result is None:
            self._empty_history()
            return []
        self.appointments = result.items
        self.total_pages = result.total_pages
        self.total_count = result.total_count
        self.current_page = page
        return self.appointments

    async def go_to(self, page: int) -> bool:
        if self.patient is None or not 1 <= page <= self.total_pages:
            return False
        await self.load_appointments(page)
        return True

    async def set_page_size(self, page_size: int) -> None:
        self.page_size = page_size
        self.current_page = 1
        if self.patient is not None:
            await self.load_appointments(1, page_size)


class DirectoryWorkflow:
    """Departments screen: list and create departments and doctors."""

    def __init__(self):
        self.departments: list[Department] = []
        self.doctors: list[Doctor] = []
        self.notice: Optional[Notice] = None

    async def load(self) -> None:
        self.departments = await load_departments()
        self.doctors = await load_doctors()

    async def create_department(self, form: DepartmentForm | dict) -> Outcome:
        form = check_form(DepartmentForm, form)
        try:
            department = await client.create_department(form)
        except HospitalApiError as e:
            self.notice = Notice.error(e.describe("Could not create the department."))
            return Outcome(self.notice, error=e)
        self.departments = await load_departments()
        self.notice = Notice.success("Department created.")
        return Outcome(self.notice, department)

    async def create_doctor(self, form: DoctorForm | dict) -> Outcome:
        form = check_form(DoctorForm, form)
        try:
            doctor = await client.create_doctor(form)
        except HospitalApiError as e:
            self.notice = Notice.error(e.describe("Could not create the doctor."))
            return Outcome(self.notice, error=e)
        self.doctors = await load_doctors()
        self.notice = Notice.success("Doctor created.")
        return Outcome(self.notice, doctor)
