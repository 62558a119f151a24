import math
from typing import Generic, Literal, Optional, TypeVar

from pydantic import AliasChoices, BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")

# The hospital API speaks camelCase; we keep snake_case attributes.
_WIRE = {"alias_generator": to_camel, "populate_by_name": True}


class Patient(BaseModel):
    model_config = _WIRE

    id: Optional[int] = None
    tc: str  # 11-digit national ID
    name: str
    surname: str
    phone: str
    address: str


class Department(BaseModel):
    model_config = _WIRE

    id: Optional[int] = None
    name: str


class Doctor(BaseModel):
    model_config = _WIRE

    id: Optional[int] = None
    name: str
    surname: str
    department_id: int = 0
    department: Optional[Department] = None
    department_name: Optional[str] = None


class Appointment(BaseModel):
    model_config = _WIRE

    id: Optional[int] = None
    patient_id: Optional[int] = None
    doctor_id: Optional[int] = None
    date: Optional[str] = None  # YYYY-MM-DD
    time: Optional[str] = Field(None, validation_alias=AliasChoices("time", "startTime", "start_time"))
    doctor_name: Optional[str] = None
    department_name: Optional[str] = None
    patient: Optional[Patient] = None
    doctor: Optional[Doctor] = None


class Slot(BaseModel):
    """One bookable opening for a doctor on a given date."""
    id: int
    time: str  # HH:MM


class DaySlots(BaseModel):
    date: str
    slots: list[Slot]


class ApiResponse(BaseModel, Generic[T]):
    """Envelope wrapped around every hospital API payload."""
    success: bool = False
    data: Optional[T] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.success and self.data is not None


class PaginatedResponse(BaseModel, Generic[T]):
    model_config = _WIRE

    items: list[T] = Field(default_factory=list)
    total_count: int = 0
    page_number: int = 1
    page_size: int = 0
    total_pages: int = 0

    @model_validator(mode="after")
    def _derive_total_pages(self):
        if self.page_size > 0 and len(self.items) > self.page_size:
            raise ValueError(f"page holds {len(self.items)} items but page size is {self.page_size}")
        self.total_pages = math.ceil(self.total_count / self.page_size) if self.page_size > 0 else 0
        return self

    @classmethod
    def empty(cls, page_size: int = 0, page_number: int = 1) -> "PaginatedResponse[T]":
        return cls(items=[], total_count=0, page_number=page_number, page_size=page_size)


# Forms ---------------------------------------------------------------------

class PatientForm(BaseModel):
    model_config = _WIRE

    tc: str = Field(min_length=11, max_length=11)
    name: str = Field(min_length=2)
    surname: str = Field(min_length=2)
    phone: str = Field(min_length=10)
    address: str = Field(min_length=10)


class DepartmentForm(BaseModel):
    name: str = Field(min_length=1)


class DoctorForm(BaseModel):
    model_config = _WIRE

    name: str = Field(min_length=1)
    surname: str = Field(min_length=1)
    department_id: int = Field(ge=1)


class AppointmentForm(BaseModel):
    model_config = _WIRE

    patient_tc: str = Field(min_length=11, max_length=11)
    doctor_id: int = Field(ge=1)
    date: str = Field(min_length=1)
    start_time: str = Field(min_length=1)


class AppointmentRequest(BaseModel):
    """Body of POST /Appointment."""
    model_config = _WIRE

    patient_id: int
    doctor_id: int
    date: str
    time: str


class Notice(BaseModel):
    """Transient notification shown to the desk clerk."""
    level: Literal["success", "error", "info", "warning"] = "info"
    title: str = ""
    message: str = ""

    @classmethod
    def success(cls, message: str) -> "Notice":
        return cls(level="success", title="Success", message=message)

    @classmethod
    def error(cls, message: str) -> "Notice":
        return cls(level="error", title="Error", message=message)
