"""Input validation for medical data.

Two layers:

* ``validate_payload``: a generic shape/denylist guard applied to anything
  written to secure storage. It keeps hostile HTML/script fragments out of
  persisted records; it is not a substitute for escaping at render time.
* Pydantic schemas for the typed records the app collects (symptom entries,
  medications, vital signs, menopause data, patient profile) with the
  clinical bounds enforced by the Eva forms, plus text sanitizers.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Annotated, Any, Generic, Literal, TypeVar

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Raised when a payload is rejected before encryption."""


_DANGEROUS_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
)


def validate_payload(payload: Any) -> None:
    """Reject payloads that are not objects/arrays or carry script content.

    Raises ValidationError. The message never includes payload content.
    """
    if not isinstance(payload, (dict, list)):
        raise ValidationError(
            f"Payload must be an object or array, got {type(payload).__name__}"
        )
    try:
        serialized = json.dumps(payload, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError, RecursionError) as exc:
        raise ValidationError("Payload is not JSON-serializable") from exc
    for pattern in _DANGEROUS_PATTERNS:
        if pattern.search(serialized):
            raise ValidationError(f"Payload contains forbidden content ({pattern.pattern})")


def is_safe_payload(payload: Any) -> bool:
    try:
        validate_payload(payload)
    except ValidationError:
        return False
    return True


# ---------------------------------------------------------------------------
# Text sanitizers
# ---------------------------------------------------------------------------

MAX_NOTES_LENGTH = 10_000

_CARD_NUMBER_RE = re.compile(r"\b\d{4}[\s\-]?\d{4}[\s\-]?\d{4}[\s\-]?\d{4}\b")
_SSN_RE = re.compile(r"\b\d{3}[\s\-]?\d{2}[\s\-]?\d{4}\b")
_PASSWORD_RE = re.compile(r"\b(password|пароль)\b", re.IGNORECASE)


def sanitize_text(text: Any) -> str:
    """Strip markup-ish fragments, trim and cap at MAX_NOTES_LENGTH."""
    if not isinstance(text, str):
        return ""
    text = re.sub(r"[<>]", "", text)
    text = re.sub(r"javascript:", "", text, flags=re.IGNORECASE)
    text = re.sub(r"on\w+\s*=", "", text, flags=re.IGNORECASE)
    return text.strip()[:MAX_NOTES_LENGTH]


def sanitize_medical_notes(notes: Any) -> str:
    """sanitize_text() plus masking of passwords, card numbers and SSNs."""
    text = sanitize_text(notes)
    text = _PASSWORD_RE.sub("[REMOVED]", text)
    text = _CARD_NUMBER_RE.sub("[CARD NUMBER]", text)
    return _SSN_RE.sub("[SSN]", text)


# ---------------------------------------------------------------------------
# Record schemas
# ---------------------------------------------------------------------------

_MEDICATION_NAME_PATTERN = r"^[a-zA-Zа-яА-ЯёЁ0-9\s\-.]+$"
_DOSAGE_PATTERN = r"^[\d\s.,мгmlIUЕД/]+$"
_PERSON_NAME_PATTERN = r"^[a-zA-Zа-яА-ЯёЁ\s\-]+$"
_PHONE_PATTERN = r"^\+?[1-9][\d\s\-()]{7,15}$"
_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _no_html(value: str) -> str:
    if "<" in value or ">" in value:
        raise ValueError("Medical notes cannot contain HTML tags")
    return value


PainLevel = Annotated[int, Field(ge=0, le=10)]
Score = Annotated[int, Field(ge=1, le=10)]
MedicalNotes = Annotated[str, Field(max_length=MAX_NOTES_LENGTH), AfterValidator(_no_html)]


class _Schema(BaseModel):
    """Records arrive from the web client in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SymptomEntry(_Schema):
    date: dt.date
    symptoms: list[Annotated[str, Field(min_length=1)]]
    severity: PainLevel
    duration: str = Field(min_length=1, max_length=100)
    notes: MedicalNotes | None = None
    mood: Score | None = None
    sleep_quality: Score | None = None

    @field_validator("date")
    @classmethod
    def _not_in_future(cls, value: dt.date) -> dt.date:
        if value > dt.date.today():
            raise ValueError("Date cannot be in the future")
        return value


class Medication(_Schema):
    name: str = Field(min_length=1, max_length=200, pattern=_MEDICATION_NAME_PATTERN)
    dosage: str = Field(min_length=1, max_length=100, pattern=_DOSAGE_PATTERN)
    frequency: str = Field(min_length=1, max_length=100)
    start_date: dt.date
    end_date: dt.date | None = None
    notes: MedicalNotes | None = None
    prescribed_by: str | None = Field(default=None, max_length=100)

    @model_validator(mode="after")
    def _end_after_start(self) -> Medication:
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("End date must be after start date")
        return self


class BloodPressure(_Schema):
    systolic: int = Field(ge=50, le=300)
    diastolic: int = Field(ge=30, le=200)

    @model_validator(mode="after")
    def _systolic_above_diastolic(self) -> BloodPressure:
        if self.systolic <= self.diastolic:
            raise ValueError("Systolic pressure must be higher than diastolic")
        return self


class VitalSigns(_Schema):
    recorded_at: str
    blood_pressure: BloodPressure | None = None
    heart_rate: int | None = Field(default=None, ge=20, le=300)
    body_temperature: float | None = Field(default=None, ge=30, le=50)
    weight: float | None = Field(default=None, ge=1, le=1000)
    height: float | None = Field(default=None, ge=30, le=300)
    notes: MedicalNotes | None = None


class HotFlashes(_Schema):
    frequency: float = Field(ge=0, le=50)
    severity: PainLevel
    triggers: list[str] | None = None


class MoodChanges(_Schema):
    irritability: PainLevel | None = None
    anxiety: PainLevel | None = None
    depression: PainLevel | None = None


class SleepDisturbances(_Schema):
    difficulty_falling: bool | None = None
    night_waking: bool | None = None
    night_sweats: bool | None = None
    average_hours: float | None = Field(default=None, ge=0, le=24)


class MenopauseData(_Schema):
    phase: Literal["premenopause", "perimenopause", "menopause", "postmenopause"]
    last_menstrual_period: str | None = None
    hot_flashes: HotFlashes | None = None
    mood_changes: MoodChanges | None = None
    sleep_disturbances: SleepDisturbances | None = None


class PatientProfile(_Schema):
    first_name: str = Field(min_length=1, max_length=50, pattern=_PERSON_NAME_PATTERN)
    last_name: str = Field(min_length=1, max_length=50)
    date_of_birth: dt.date
    gender: Literal["female", "male", "other"]
    phone: str | None = Field(default=None, pattern=_PHONE_PATTERN)
    email: str = Field(max_length=100, pattern=_EMAIL_PATTERN)

    @field_validator("date_of_birth")
    @classmethod
    def _plausible_age(cls, value: dt.date) -> dt.date:
        age = dt.date.today().year - value.year
        if not 0 <= age <= 150:
            raise ValueError("Invalid date of birth")
        return value


SchemaT = TypeVar("SchemaT", bound=BaseModel)


@dataclass
class SchemaValidationResult(Generic[SchemaT]):
    success: bool
    data: SchemaT | None = None
    errors: list[str] = field(default_factory=list)


class SecureValidator:
    """Validate records against a schema without leaking field values to logs."""

    @staticmethod
    def validate(schema: type[SchemaT], data: Any) -> SchemaValidationResult[SchemaT]:
        try:
            model = schema.model_validate(data)
        except PydanticValidationError as exc:
            errors = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            ]
            logger.warning(
                "Medical data validation failed: %d error(s), types=%s",
                len(errors),
                sorted({err["type"] for err in exc.errors()}),
            )
            return SchemaValidationResult(success=False, errors=errors)
        return SchemaValidationResult(success=True, data=model)
