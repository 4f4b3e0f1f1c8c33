"""Pydantic models for backend entities.

The backend is inconsistent about shapes (nested ``usuario`` objects,
``fecha_hora`` vs ``fecha`` + ``hora_inicio``, ``aceptada`` vs
``confirmada``). Every variant is absorbed here, in ``mode="before"``
validators, so the rest of the package only sees one canonical form.
"""
from datetime import date, datetime, time, timedelta
from enum import Enum, IntEnum
from typing import Any, List, Optional, Type, TypeVar, Union

from pydantic import (
    BaseModel,
    Field,
    TypeAdapter,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)

from medicitas import config
from medicitas.errors import RemoteRejection

T = TypeVar("T", bound=BaseModel)

TIME_FORMAT = "%H:%M"


class Role(IntEnum):
    """User roles as numbered by the backend."""
    PATIENT = 1
    DOCTOR = 2


class Identity(BaseModel):
    """Authenticated user, as returned by login/register and /auth/me."""
    user_id: Union[int, str]
    email: Optional[str] = None
    role: Role
    name: str = ""
    apellido: Optional[str] = None
    paciente_id: Optional[int] = None
    medico_id: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def _from_backend(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "user_id" not in data:
            data["user_id"] = data.get("userId", data.get("id"))
        if "role" not in data:
            if data.get("roleId") is not None:
                data["role"] = data["roleId"]
            elif data.get("rol_nombre") == "MEDICO":
                data["role"] = Role.DOCTOR
            elif data.get("rol_nombre") == "PACIENTE":
                data["role"] = Role.PATIENT
        if not data.get("name") and data.get("nombre"):
            data["name"] = data["nombre"]
        return data

    @property
    def is_doctor(self) -> bool:
        return self.role == Role.DOCTOR

    @property
    def is_patient(self) -> bool:
        return self.role == Role.PATIENT

    @property
    def display_name(self) -> str:
        return " ".join(part for part in (self.name, self.apellido) if part)


def _flatten_usuario(data: dict) -> dict:
    """Lift nombre/apellido/telefono/email out of a nested ``usuario`` object."""
    usuario = data.get("usuario")
    if isinstance(usuario, dict):
        for key in ("nombre", "apellido", "telefono", "email"):
            if data.get(key) is None and usuario.get(key) is not None:
                data[key] = usuario[key]
    return data


class Doctor(BaseModel):
    """Doctor as listed in the directory. Read-only."""
    id: int
    nombre: str = ""
    apellido: str = ""
    especialidad: str = ""
    descripcion: Optional[str] = None
    foto_perfil: Optional[str] = None
    telefono: Optional[str] = None
    email: Optional[str] = None
    activo: bool = True

    @model_validator(mode="before")
    @classmethod
    def _from_backend(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = _flatten_usuario(dict(data))
        if not data.get("nombre") and data.get("name"):
            data["nombre"] = data["name"]
        # Backend sends explicit nulls for optional text columns
        for key in ("nombre", "apellido", "especialidad"):
            if data.get(key) is None:
                data.pop(key, None)
        if data.get("activo") is None:
            data.pop("activo", None)
        return data

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.nombre, self.apellido) if part)


class PatientSummary(BaseModel):
    """Patient data embedded in a doctor's appointment listing."""
    id: Optional[int] = None
    nombre: str = ""
    apellido: str = ""
    telefono: Optional[str] = None
    email: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _from_backend(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = _flatten_usuario(dict(data))
        for key in ("nombre", "apellido"):
            if data.get(key) is None:
                data.pop(key, None)
        return data

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.nombre, self.apellido) if part)


def _to_date(value: Any) -> Any:
    """Accept '2024-06-10' as well as '2024-06-10T00:00:00.000Z'."""
    if isinstance(value, str) and "T" in value:
        return value.split("T", 1)[0]
    if isinstance(value, datetime):
        return value.date()
    return value


class BlockedInterval(BaseModel):
    """A doctor's unavailability, one day or an inclusive date range."""
    id: Optional[int] = None
    medico_id: Optional[int] = None
    fecha_inicio: date
    fecha_fin: date

    @model_validator(mode="before")
    @classmethod
    def _from_backend(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "fecha" in data:
            data.setdefault("fecha_inicio", data["fecha"])
            data.setdefault("fecha_fin", data["fecha"])
        if "fechaInicio" in data:
            data.setdefault("fecha_inicio", data["fechaInicio"])
        if "fechaFin" in data:
            data.setdefault("fecha_fin", data["fechaFin"])
        for key in ("fecha_inicio", "fecha_fin"):
            if key in data:
                data[key] = _to_date(data[key])
        return data

    @model_validator(mode="after")
    def _check_order(self) -> "BlockedInterval":
        if self.fecha_fin < self.fecha_inicio:
            raise ValueError("fecha_fin must not be before fecha_inicio")
        return self

    @property
    def is_single_day(self) -> bool:
        return self.fecha_inicio == self.fecha_fin

    def covers(self, day: date) -> bool:
        return self.fecha_inicio <= day <= self.fecha_fin


class CalendarDay(BaseModel):
    """One day of a doctor's month calendar. Derived, never persisted."""
    fecha: date
    disponible: bool
    blocked_interval_id: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def _from_backend(cls, data: Any) -> Any:
        if isinstance(data, dict) and "detalleId" in data:
            data = dict(data)
            data.setdefault("blocked_interval_id", data.pop("detalleId"))
        return data

    @field_validator("fecha", mode="before")
    @classmethod
    def _strip_time(cls, value: Any) -> Any:
        return _to_date(value)

    @property
    def weekday(self) -> int:
        """Monday is 0."""
        return self.fecha.weekday()


class MonthCalendar(BaseModel):
    """Availability of a doctor over one calendar month."""
    mes: int = Field(..., ge=1, le=12)
    ano: int
    dias: List[CalendarDay] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _from_backend(cls, data: Any) -> Any:
        # Backend shape: {"mes", "ano", "calendario": {"1": {...}, "2": {...}}}
        if isinstance(data, dict) and isinstance(data.get("calendario"), dict):
            data = dict(data)
            calendario = data.pop("calendario")
            data.setdefault(
                "dias",
                [calendario[key] for key in sorted(calendario, key=int)],
            )
        return data

    @property
    def dias_total(self) -> int:
        return len(self.dias)

    @property
    def dias_disponibles_total(self) -> int:
        return sum(1 for dia in self.dias if dia.disponible)

    @property
    def dias_no_disponibles_total(self) -> int:
        return self.dias_total - self.dias_disponibles_total

    def day(self, fecha: date) -> Optional[CalendarDay]:
        return next((dia for dia in self.dias if dia.fecha == fecha), None)


class TimeSlot(BaseModel):
    """Bookable wall-clock slot. Produced by the backend, never invented here."""
    inicio: time
    fin: Optional[time] = None

    @model_validator(mode="before")
    @classmethod
    def _from_backend(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"inicio": data}
        if isinstance(data, dict):
            data = dict(data)
            for alias in ("hora_inicio", "start_time", "start"):
                if alias in data:
                    data.setdefault("inicio", data.pop(alias))
            for alias in ("hora_fin", "end_time", "end"):
                if alias in data:
                    data.setdefault("fin", data.pop(alias))
        return data

    @model_validator(mode="after")
    def _default_end(self) -> "TimeSlot":
        if self.fin is None:
            end = datetime.combine(date.min, self.inicio) + timedelta(
                minutes=config.DEFAULT_SLOT_MINUTES
            )
            self.fin = end.time()
        return self

    @property
    def label(self) -> str:
        return self.inicio.strftime(TIME_FORMAT)


class SlotAvailability(BaseModel):
    """Answer to "can doctor D be booked on date X", as sent by the backend."""
    disponible: bool
    razon: Optional[str] = None
    horarios: List[TimeSlot] = Field(default_factory=list)

    @field_validator("horarios", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class AppointmentStatus(str, Enum):
    """Canonical appointment states. Backend vocabulary is mapped at the boundary."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"

    @classmethod
    def from_backend(cls, value: Any) -> "AppointmentStatus":
        if isinstance(value, cls):
            return value
        try:
            return BACKEND_STATUS_ALIASES[str(value).strip().lower()]
        except KeyError:
            raise ValueError(f"Unknown appointment state: {value!r}") from None

    def to_backend(self) -> str:
        return BACKEND_STATUS_NAMES[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


BACKEND_STATUS_ALIASES = {
    "pendiente": AppointmentStatus.PENDING,
    "confirmada": AppointmentStatus.CONFIRMED,
    "aceptada": AppointmentStatus.CONFIRMED,
    "completada": AppointmentStatus.COMPLETED,
    "cancelada": AppointmentStatus.CANCELLED,
    "rechazada": AppointmentStatus.REJECTED,
    **{status.value: status for status in AppointmentStatus},
}

BACKEND_STATUS_NAMES = {
    AppointmentStatus.PENDING: "pendiente",
    AppointmentStatus.CONFIRMED: "confirmada",
    AppointmentStatus.COMPLETED: "completada",
    AppointmentStatus.CANCELLED: "cancelada",
    AppointmentStatus.REJECTED: "rechazada",
}

TERMINAL_STATUSES = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.REJECTED,
})


class Appointment(BaseModel):
    """Appointment (cita). Canonical time is ``fecha`` + ``hora_inicio``/``hora_fin``."""
    id: int
    paciente_id: Optional[int] = None
    medico_id: Optional[int] = None
    fecha: date
    hora_inicio: time
    hora_fin: Optional[time] = None
    estado: AppointmentStatus
    motivo: Optional[str] = None
    comentario_medico: Optional[str] = None
    fecha_creacion: Optional[datetime] = None
    medico: Optional[Doctor] = None
    paciente: Optional[PatientSummary] = None

    @model_validator(mode="before")
    @classmethod
    def _from_backend(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        fecha_hora = data.pop("fecha_hora", None)
        if fecha_hora and ("fecha" not in data or "hora_inicio" not in data):
            when = fecha_hora if isinstance(fecha_hora, datetime) else datetime.fromisoformat(
                str(fecha_hora).replace("Z", "+00:00")
            )
            data.setdefault("fecha", when.date())
            data.setdefault("hora_inicio", when.time().replace(second=0, microsecond=0))
        if "hora" in data:
            data.setdefault("hora_inicio", data.pop("hora"))
        if data.get("medico_id") is None and isinstance(data.get("medico"), dict):
            data["medico_id"] = data["medico"].get("id")
        if data.get("paciente_id") is None and isinstance(data.get("paciente"), dict):
            data["paciente_id"] = data["paciente"].get("id")
        return data

    @field_validator("fecha", mode="before")
    @classmethod
    def _strip_time(cls, value: Any) -> Any:
        return _to_date(value)

    @field_validator("estado", mode="before")
    @classmethod
    def _canonical_state(cls, value: Any) -> AppointmentStatus:
        return AppointmentStatus.from_backend(value)

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.fecha, self.hora_inicio)


class AppointmentDraft(BaseModel):
    """Data for a new appointment, validated before it leaves the client."""
    medico_id: int
    fecha: date
    hora_inicio: time
    hora_fin: time
    motivo: Optional[str] = None

    def to_payload(self) -> dict:
        return {
            "medico_id": self.medico_id,
            "fecha": self.fecha.isoformat(),
            "hora_inicio": self.hora_inicio.strftime(TIME_FORMAT),
            "hora_fin": self.hora_fin.strftime(TIME_FORMAT),
            "motivo": self.motivo or "",
        }


class ApiEnvelope(BaseModel):
    """Canonical response envelope produced by the API gateway."""
    success: bool = True
    data: Any = None
    error: Optional[str] = None
    message: Optional[str] = None
    count: Optional[int] = None


def parse(model: Type[T], data: Any) -> T:
    """Validate one backend object; shape errors become a RemoteRejection."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise RemoteRejection(
            f"Unexpected {model.__name__} data from server", payload=data
        ) from e


def parse_list(model: Type[T], data: Any) -> List[T]:
    """Validate a list of backend objects."""
    if data is None:
        return []
    try:
        return TypeAdapter(List[model]).validate_python(data)
    except PydanticValidationError as e:
        raise RemoteRejection(
            f"Unexpected {model.__name__} list from server", payload=data
        ) from e
