"""
Request schemas for every client-writable entity.

Create schemas enforce required fields; ``*Update`` schemas make every field
optional and are dumped with ``exclude_unset`` so an omitted field keeps its
stored value while an explicit ``false``/``0`` overwrites it. ``null`` is
accepted only for nullable columns; on required ones it is a validation error.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

TERMS = ("FALL", "WINTER", "SPRING", "SUMMER")
PRIORITIES = ("HIGH", "MEDIUM", "LOW")
SOURCE_TYPES = ("MANUAL", "API", "UPLOAD")


def _split_codes(value):
    """Accept a list of codes or a comma-separated string; drop blanks."""
    if value is None:
        return value
    if isinstance(value, str):
        value = value.split(",")
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return value


def _upper(value):
    return value.strip().upper() if isinstance(value, str) else value


def _not_null(value):
    if value is None:
        raise ValueError("may be omitted but not set to null")
    return value


Units = Union[Annotated[int, Field(ge=0)], Annotated[float, Field(ge=0)]]
CodeList = Annotated[list[str], BeforeValidator(_split_codes)]
Term = Annotated[Literal[TERMS], BeforeValidator(_upper)]
Priority = Annotated[Literal[PRIORITIES], BeforeValidator(_upper)]
SourceType = Annotated[Literal[SOURCE_TYPES], BeforeValidator(_upper)]
NonEmptyStr = Annotated[str, Field(min_length=1)]
Year = Annotated[int, Field(ge=1900, le=2200)]
# Update-only: the key may be left out, but an explicit null is rejected.
NotNull = BeforeValidator(_not_null)


class _Schema(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


# ── Courses ───────────────────────────────────────────────────────────────────
class CourseIn(_Schema):
    course_code: str = Field(min_length=1)
    title: str = Field(min_length=1)
    units: Units
    description: Optional[str] = None
    institution_id: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    prerequisites: CodeList = Field(default_factory=list)
    is_completed: bool = False
    grade: Optional[str] = None
    semester_taken: Optional[str] = None
    year_taken: Optional[int] = None
    transfers_to: Optional[Any] = None


class CourseUpdate(_Schema):
    course_code: Annotated[Optional[NonEmptyStr], NotNull] = None
    title: Annotated[Optional[NonEmptyStr], NotNull] = None
    units: Annotated[Optional[Units], NotNull] = None
    description: Optional[str] = None
    institution_id: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    prerequisites: Annotated[Optional[CodeList], NotNull] = None
    is_completed: Annotated[Optional[bool], NotNull] = None
    grade: Optional[str] = None
    semester_taken: Optional[str] = None
    year_taken: Optional[int] = None
    transfers_to: Optional[Any] = None


class CourseImportIn(_Schema):
    courses: list[dict] = Field(min_length=1)


# ── Plans ─────────────────────────────────────────────────────────────────────
class EducationPlanIn(_Schema):
    name: str = Field(min_length=1)
    target_institution_id: Optional[str] = None
    target_major: Optional[str] = None
    target_transfer_date: Optional[datetime] = None
    is_active: bool = False


class EducationPlanUpdate(_Schema):
    name: Annotated[Optional[NonEmptyStr], NotNull] = None
    target_institution_id: Optional[str] = None
    target_major: Optional[str] = None
    target_transfer_date: Optional[datetime] = None
    is_active: Annotated[Optional[bool], NotNull] = None


class PlannedSemesterIn(_Schema):
    plan_id: str = Field(min_length=1)
    term: Term
    year: Year
    course_ids: list[str] = Field(default_factory=list)
    total_units: Units = 0
    is_completed: bool = False


class PlannedSemesterUpdate(_Schema):
    term: Annotated[Optional[Term], NotNull] = None
    year: Annotated[Optional[Year], NotNull] = None
    course_ids: Annotated[Optional[list[str]], NotNull] = None
    total_units: Annotated[Optional[Units], NotNull] = None
    is_completed: Annotated[Optional[bool], NotNull] = None


# ── Agreements ────────────────────────────────────────────────────────────────
class ArticulationAgreementIn(_Schema):
    sending_institution_id: str = Field(min_length=1)
    receiving_institution_id: str = Field(min_length=1)
    academic_year: str = Field(min_length=1)
    major: Optional[str] = None
    source_type: SourceType = "MANUAL"
    agreement_data: Optional[Any] = None
    assist_org_key: Optional[str] = None


# ── Deadlines ─────────────────────────────────────────────────────────────────
class DeadlineIn(_Schema):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    due_date: datetime
    type: str = Field(min_length=1)
    priority: Priority
    is_completed: bool = False


class DeadlineUpdate(_Schema):
    title: Annotated[Optional[NonEmptyStr], NotNull] = None
    description: Optional[str] = None
    due_date: Annotated[Optional[datetime], NotNull] = None
    type: Annotated[Optional[NonEmptyStr], NotNull] = None
    priority: Annotated[Optional[Priority], NotNull] = None
    is_completed: Annotated[Optional[bool], NotNull] = None


# ── Profile / target schools ──────────────────────────────────────────────────
class ProfileUpdate(_Schema):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    current_institution: Optional[str] = None
    target_major: Optional[str] = None


class TargetSchoolIn(_Schema):
    institution_id: str = Field(min_length=1)
    institution_name: str = Field(min_length=1)
    major: str = Field(min_length=1)
    target_date: datetime
    priority: Priority
    notes: Optional[str] = None


def parse_create(schema: type[BaseModel], payload) -> dict:
    """Validate a create payload; returns a JSON-safe field dict."""
    return schema.model_validate(payload if payload is not None else {}).model_dump(mode="json")


def parse_update(schema: type[BaseModel], payload) -> dict:
    """Validate a partial payload; only the fields the caller sent come back."""
    return schema.model_validate(payload if payload is not None else {}).model_dump(
        mode="json", exclude_unset=True
    )


def error_details(exc: ValidationError) -> list[dict]:
    return [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
