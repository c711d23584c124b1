from __future__ import annotations
from pydantic import BaseModel, Field, ConfigDict, AfterValidator, StrictFloat, StrictInt, field_validator
from pydantic.alias_generators import to_camel
from typing import Annotated, Literal, List, Optional, Union
from datetime import datetime, timezone


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """BSON keeps datetimes as naive UTC; normalise before they hit the store."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def as_aware_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return to_naive_utc(datetime.now(timezone.utc))


# Incoming datetimes are stored naive-UTC, outgoing ones are rendered with "Z"
StoreDatetime = Annotated[datetime, AfterValidator(to_naive_utc)]
UtcDatetime = Annotated[datetime, AfterValidator(as_aware_utc)]
# Booleans are JSON numbers to lax validation; keep them out
Number = Union[StrictInt, StrictFloat]

SessionStatus = Literal["active", "completed", "emergency_stopped", "interrupted"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class StoredModel(CamelModel):
    id: Optional[str] = Field(default=None, alias="_id")


# --- Patient Schemas ---

class EmergencyContact(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    relationship: Optional[str] = None


class PatientCreate(CamelModel):
    patient_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    age: Number
    medical_history: Optional[str] = None
    emergency_contact: Optional[EmergencyContact] = None

    @field_validator("age")
    @classmethod
    def age_not_negative(cls, v):
        if v < 0:
            raise ValueError("age must be >= 0")
        return v


class Patient(StoredModel):
    patient_id: str
    name: str
    age: Number
    medical_history: Optional[str] = None
    emergency_contact: Optional[EmergencyContact] = None
    created_at: UtcDatetime
    updated_at: UtcDatetime


# --- Session Schemas ---

class EmergencyEvent(CamelModel):
    timestamp: UtcDatetime
    type: Optional[str] = None
    magnitude: Optional[float] = None
    response: Optional[str] = None


class EmergencyEventCreate(CamelModel):
    session_id: str = Field(min_length=1)
    type: str
    magnitude: Optional[float] = None
    response: Optional[str] = None


class SessionCreate(CamelModel):
    patient_id: str = Field(min_length=1)
    start_time: StoreDatetime
    end_time: Optional[StoreDatetime] = None
    status: SessionStatus = "active"
    total_duration: Optional[float] = Field(default=None, ge=0)
    dialysis_progress: Optional[float] = Field(default=None, ge=0, le=100)


class SessionUpdate(CamelModel):
    start_time: Optional[StoreDatetime] = None
    end_time: Optional[StoreDatetime] = None
    status: Optional[SessionStatus] = None
    total_duration: Optional[float] = Field(default=None, ge=0)
    dialysis_progress: Optional[float] = Field(default=None, ge=0, le=100)

    # sessionId and patientId are immutable once issued
    model_config = ConfigDict(extra="forbid")

    @field_validator("start_time", "status")
    @classmethod
    def not_null(cls, v):
        # Only reached for explicitly supplied values; a stored session always has both
        if v is None:
            raise ValueError("may be omitted but not null")
        return v


class Session(StoredModel):
    session_id: str
    patient_id: str
    start_time: UtcDatetime
    end_time: Optional[UtcDatetime] = None
    status: SessionStatus = "active"
    total_duration: Optional[float] = None
    dialysis_progress: Optional[float] = None
    emergency_events: List[EmergencyEvent] = Field(default_factory=list)
    created_at: UtcDatetime
    updated_at: Optional[UtcDatetime] = None


class EmergencyLogged(CamelModel):
    success: bool = True
    session: Session


# --- Reading Schemas ---

class VitalSigns(CamelModel):
    heart_rate: Optional[float] = None
    blood_pressure: Optional[str] = None
    dialysis_progress: Optional[float] = None


class FluidManagement(CamelModel):
    flow_rate: Optional[float] = None
    pressure_drop: Optional[float] = None
    ultrafiltration: Optional[float] = None
    fluid_removed: Optional[float] = None


class Stabilization(CamelModel):
    gyro_status: Optional[str] = None
    dampening: Optional[float] = None
    platform_tilt: Optional[float] = None
    emergency_locks: Optional[str] = None


class Environmental(CamelModel):
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    power_supply: Optional[str] = None
    backup_battery: Optional[str] = None


class Seismic(CamelModel):
    magnitude: Optional[float] = None
    p_wave_status: Optional[str] = None
    last_event: Optional[str] = None


class ReadingBase(CamelModel):
    session_id: str = Field(min_length=1)
    patient_id: Optional[str] = None
    vital_signs: Optional[VitalSigns] = None
    fluid_management: Optional[FluidManagement] = None
    stabilization: Optional[Stabilization] = None
    environmental: Optional[Environmental] = None
    seismic: Optional[Seismic] = None


class ReadingCreate(ReadingBase):
    timestamp: StoreDatetime

    @property
    def reported_progress(self) -> Optional[float]:
        if self.vital_signs is None:
            return None
        return self.vital_signs.dialysis_progress


class Reading(StoredModel, ReadingBase):
    timestamp: UtcDatetime


class ReadingStored(CamelModel):
    success: bool = True
    reading_id: str
    # None when the reading carried no progress value
    progress_synced: Optional[bool] = None


# --- Report Schemas ---

class ReportBase(CamelModel):
    patient_id: str = Field(min_length=1)
    session_id: str = Field(min_length=1)
    session_duration: Optional[str] = None
    dialysis_progress: Optional[str] = None
    avg_heart_rate: Optional[str] = None
    avg_blood_pressure: Optional[str] = None
    fluid_removed: Optional[str] = None
    seismic_events: Optional[str] = None
    emergency_incidents: List[str] = Field(default_factory=list)
    recommendations: Optional[str] = None


class ReportCreate(ReportBase):
    timestamp: StoreDatetime


class Report(StoredModel, ReportBase):
    report_id: str
    timestamp: UtcDatetime
    created_at: UtcDatetime


def to_document(model: BaseModel, **extra) -> dict:
    """Dump a request model into the camelCase document shape kept in the store."""
    doc = model.model_dump(by_alias=True, exclude_none=True)
    doc.update(extra)
    return doc


class HealthStatus(BaseModel):
    status: str = "healthy"
    timestamp: UtcDatetime
    database: Literal["connected", "disconnected"]
