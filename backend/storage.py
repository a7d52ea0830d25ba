"""
In-memory repository for every transfer-planner entity.

Records are plain dicts keyed by generated uuid strings. Handlers only talk to
the ``Storage`` interface, so a durable backend can replace ``MemStorage``
without touching call sites.
"""

import copy
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone


SEED_INSTITUTIONS = [
    {"name": "Sacramento City College", "type": "CCC", "assist_org_id": "SCC", "abbreviation": "SCC"},
    {"name": "University of California, Davis", "type": "UC", "assist_org_id": "76", "abbreviation": "UCD"},
    {"name": "University of California, Berkeley", "type": "UC", "assist_org_id": "77", "abbreviation": "UCB"},
    {"name": "University of California, Los Angeles", "type": "UC", "assist_org_id": "78", "abbreviation": "UCLA"},
    {"name": "California State University, Sacramento", "type": "CSU", "assist_org_id": "138", "abbreviation": "CSUS"},
    {"name": "San Francisco State University", "type": "CSU", "assist_org_id": "139", "abbreviation": "SFSU"},
    {"name": "Cal Poly San Luis Obispo", "type": "CSU", "assist_org_id": "140", "abbreviation": "CPSLO"},
]

# Fields the store owns; an update payload can never overwrite them.
_PROTECTED_FIELDS = {"id", "created_at", "uploaded_at", "timestamp"}


def _new_id() -> str:
    return str(uuid.uuid4())


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class _Table:
    """One entity collection: id -> record dict, insertion ordered."""

    def __init__(self, stamp_field: str | None = None):
        self.stamp_field = stamp_field
        self._rows: dict[str, dict] = {}

    def get(self, record_id: str) -> dict | None:
        row = self._rows.get(record_id)
        return copy.deepcopy(row) if row is not None else None

    def filter(self, field: str, value) -> list[dict]:
        return [copy.deepcopy(r) for r in self._rows.values() if r.get(field) == value]

    def all(self) -> list[dict]:
        return [copy.deepcopy(r) for r in self._rows.values()]

    def insert(self, fields: dict, record_id: str | None = None) -> dict:
        record = copy.deepcopy(fields)
        record["id"] = record_id or _new_id()
        if self.stamp_field:
            record[self.stamp_field] = utc_now_iso()
        self._rows[record["id"]] = record
        return copy.deepcopy(record)

    def update(self, record_id: str, updates: dict) -> dict | None:
        row = self._rows.get(record_id)
        if row is None:
            return None
        merged = {**row, **{k: copy.deepcopy(v) for k, v in updates.items() if k not in _PROTECTED_FIELDS}}
        self._rows[record_id] = merged
        return copy.deepcopy(merged)

    def delete(self, record_id: str) -> bool:
        return self._rows.pop(record_id, None) is not None

    def clear(self) -> None:
        self._rows.clear()

    def __len__(self) -> int:
        return len(self._rows)


class Storage(ABC):
    """Repository interface. ``update_*`` returns None and ``delete_*`` returns
    False when the id is unknown."""

    # Users
    @abstractmethod
    def get_user(self, user_id: str) -> dict | None:
        raise NotImplementedError

    @abstractmethod
    def get_user_by_username(self, username: str) -> dict | None:
        raise NotImplementedError

    @abstractmethod
    def create_user(self, fields: dict, user_id: str | None = None) -> dict:
        raise NotImplementedError

    @abstractmethod
    def update_user(self, user_id: str, updates: dict) -> dict | None:
        raise NotImplementedError

    def ensure_user(self, user_id: str, defaults: dict) -> dict:
        user = self.get_user(user_id)
        if user is None:
            user = self.create_user(defaults, user_id=user_id)
        return user

    # Institutions
    @abstractmethod
    def list_institutions(self) -> list[dict]:
        raise NotImplementedError

    @abstractmethod
    def get_institution(self, institution_id: str) -> dict | None:
        raise NotImplementedError

    @abstractmethod
    def create_institution(self, fields: dict) -> dict:
        raise NotImplementedError

    # Courses
    @abstractmethod
    def list_courses(self, user_id: str) -> list[dict]:
        raise NotImplementedError

    @abstractmethod
    def get_course(self, course_id: str) -> dict | None:
        raise NotImplementedError

    @abstractmethod
    def create_course(self, fields: dict) -> dict:
        raise NotImplementedError

    @abstractmethod
    def update_course(self, course_id: str, updates: dict) -> dict | None:
        raise NotImplementedError

    @abstractmethod
    def delete_course(self, course_id: str) -> bool:
        raise NotImplementedError

    # Education plans
    @abstractmethod
    def list_education_plans(self, user_id: str) -> list[dict]:
        raise NotImplementedError

    @abstractmethod
    def get_education_plan(self, plan_id: str) -> dict | None:
        raise NotImplementedError

    @abstractmethod
    def create_education_plan(self, fields: dict) -> dict:
        raise NotImplementedError

    @abstractmethod
    def update_education_plan(self, plan_id: str, updates: dict) -> dict | None:
        raise NotImplementedError

    @abstractmethod
    def delete_education_plan(self, plan_id: str) -> bool:
        raise NotImplementedError

    # Planned semesters
    @abstractmethod
    def list_planned_semesters(self, plan_id: str) -> list[dict]:
        raise NotImplementedError

    @abstractmethod
    def get_planned_semester(self, semester_id: str) -> dict | None:
        raise NotImplementedError

    @abstractmethod
    def create_planned_semester(self, fields: dict) -> dict:
        raise NotImplementedError

    @abstractmethod
    def update_planned_semester(self, semester_id: str, updates: dict) -> dict | None:
        raise NotImplementedError

    @abstractmethod
    def delete_planned_semester(self, semester_id: str) -> bool:
        raise NotImplementedError

    # Documents
    @abstractmethod
    def list_documents(self, user_id: str) -> list[dict]:
        raise NotImplementedError

    @abstractmethod
    def get_document(self, document_id: str) -> dict | None:
        raise NotImplementedError

    @abstractmethod
    def create_document(self, fields: dict) -> dict:
        raise NotImplementedError

    @abstractmethod
    def delete_document(self, document_id: str) -> bool:
        raise NotImplementedError

    # Articulation agreements
    @abstractmethod
    def list_articulation_agreements(self, user_id: str) -> list[dict]:
        raise NotImplementedError

    @abstractmethod
    def create_articulation_agreement(self, fields: dict) -> dict:
        raise NotImplementedError

    # Deadlines
    @abstractmethod
    def list_deadlines(self, user_id: str) -> list[dict]:
        raise NotImplementedError

    @abstractmethod
    def create_deadline(self, fields: dict) -> dict:
        raise NotImplementedError

    @abstractmethod
    def update_deadline(self, deadline_id: str, updates: dict) -> dict | None:
        raise NotImplementedError

    # Target schools
    @abstractmethod
    def list_target_schools(self, user_id: str) -> list[dict]:
        raise NotImplementedError

    @abstractmethod
    def create_target_school(self, fields: dict) -> dict:
        raise NotImplementedError

    @abstractmethod
    def delete_target_school(self, target_id: str) -> bool:
        raise NotImplementedError

    # Activity log
    @abstractmethod
    def list_activity(self, user_id: str) -> list[dict]:
        raise NotImplementedError

    @abstractmethod
    def create_activity(self, fields: dict) -> dict:
        raise NotImplementedError


class MemStorage(Storage):
    """Process-memory store. State is lost on restart."""

    def __init__(self):
        self._users = _Table(stamp_field="created_at")
        self._institutions = _Table()
        self._courses = _Table()
        self._plans = _Table(stamp_field="created_at")
        self._semesters = _Table()
        self._documents = _Table(stamp_field="uploaded_at")
        self._agreements = _Table(stamp_field="created_at")
        self._deadlines = _Table()
        self._target_schools = _Table(stamp_field="created_at")
        self._activity = _Table(stamp_field="timestamp")
        self._seed_institutions()

    def _seed_institutions(self) -> None:
        for inst in SEED_INSTITUTIONS:
            self.create_institution(inst)

    def reset(self) -> None:
        for table in (
            self._users, self._institutions, self._courses, self._plans,
            self._semesters, self._documents, self._agreements,
            self._deadlines, self._target_schools, self._activity,
        ):
            table.clear()
        self._seed_institutions()

    # ── Users ─────────────────────────────────────────────────────────────────
    def get_user(self, user_id):
        return self._users.get(user_id)

    def get_user_by_username(self, username):
        matches = self._users.filter("username", username)
        return matches[0] if matches else None

    def create_user(self, fields, user_id=None):
        return self._users.insert(fields, record_id=user_id)

    def update_user(self, user_id, updates):
        return self._users.update(user_id, updates)

    # ── Institutions ──────────────────────────────────────────────────────────
    def list_institutions(self):
        return self._institutions.all()

    def get_institution(self, institution_id):
        return self._institutions.get(institution_id)

    def create_institution(self, fields):
        return self._institutions.insert(fields)

    # ── Courses ───────────────────────────────────────────────────────────────
    def list_courses(self, user_id):
        return self._courses.filter("user_id", user_id)

    def get_course(self, course_id):
        return self._courses.get(course_id)

    def create_course(self, fields):
        return self._courses.insert(fields)

    def update_course(self, course_id, updates):
        return self._courses.update(course_id, updates)

    def delete_course(self, course_id):
        return self._courses.delete(course_id)

    # ── Education plans ───────────────────────────────────────────────────────
    def list_education_plans(self, user_id):
        return self._plans.filter("user_id", user_id)

    def get_education_plan(self, plan_id):
        return self._plans.get(plan_id)

    def create_education_plan(self, fields):
        return self._plans.insert(fields)

    def update_education_plan(self, plan_id, updates):
        return self._plans.update(plan_id, updates)

    def delete_education_plan(self, plan_id):
        return self._plans.delete(plan_id)

    # ── Planned semesters ─────────────────────────────────────────────────────
    def list_planned_semesters(self, plan_id):
        return self._semesters.filter("plan_id", plan_id)

    def get_planned_semester(self, semester_id):
        return self._semesters.get(semester_id)

    def create_planned_semester(self, fields):
        return self._semesters.insert(fields)

    def update_planned_semester(self, semester_id, updates):
        return self._semesters.update(semester_id, updates)

    def delete_planned_semester(self, semester_id):
        return self._semesters.delete(semester_id)

    # ── Documents ─────────────────────────────────────────────────────────────
    def list_documents(self, user_id):
        return self._documents.filter("user_id", user_id)

    def get_document(self, document_id):
        return self._documents.get(document_id)

    def create_document(self, fields):
        return self._documents.insert(fields)

    def delete_document(self, document_id):
        return self._documents.delete(document_id)

    # ── Articulation agreements ───────────────────────────────────────────────
    def list_articulation_agreements(self, user_id):
        return self._agreements.filter("user_id", user_id)

    def create_articulation_agreement(self, fields):
        return self._agreements.insert(fields)

    # ── Deadlines ─────────────────────────────────────────────────────────────
    def list_deadlines(self, user_id):
        return self._deadlines.filter("user_id", user_id)

    def create_deadline(self, fields):
        return self._deadlines.insert(fields)

    def update_deadline(self, deadline_id, updates):
        return self._deadlines.update(deadline_id, updates)

    # ── Target schools ────────────────────────────────────────────────────────
    def list_target_schools(self, user_id):
        return self._target_schools.filter("user_id", user_id)

    def create_target_school(self, fields):
        return self._target_schools.insert(fields)

    def delete_target_school(self, target_id):
        return self._target_schools.delete(target_id)

    # ── Activity log ──────────────────────────────────────────────────────────
    def list_activity(self, user_id):
        """Newest first; entries stamped in the same instant keep newest-inserted first."""
        rows = list(reversed(self._activity.filter("user_id", user_id)))
        return sorted(rows, key=lambda r: r.get("timestamp") or "", reverse=True)

    def create_activity(self, fields):
        return self._activity.insert(fields)
