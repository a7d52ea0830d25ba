import os
import sys
import time

# Ensure backend/ is on sys.path so sibling imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import pandas as pd
from flask import Flask, g, jsonify, request
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge
from dotenv import load_dotenv

from storage import MemStorage
from models import (
    ArticulationAgreementIn,
    CourseImportIn,
    CourseIn,
    CourseUpdate,
    DeadlineIn,
    DeadlineUpdate,
    EducationPlanIn,
    EducationPlanUpdate,
    PlannedSemesterIn,
    PlannedSemesterUpdate,
    ProfileUpdate,
    TargetSchoolIn,
    error_details,
    parse_create,
    parse_update,
)
from course_parser import draft_to_course_fields, parse_bulk_courses, parse_course_csv
from prereq_chain import build_prerequisite_chain
from dashboard import DEFAULT_TARGET_UNITS, categorize_courses, compute_dashboard_stats, sort_semesters
from assist_client import AssistError, agreement_url, fetch_agreements, fetch_institution_agreements
from uploads import DEFAULT_DOCUMENT_TYPE, UploadRejected, save_upload, validate_upload

load_dotenv()

app = Flask(__name__)

# ── Paths ─────────────────────────────────────────────────────────────────────
BACKEND_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(BACKEND_DIR)
_DEFAULT_UPLOAD_DIR = os.path.join(PROJECT_ROOT, "uploads")
_env_upload_dir = os.environ.get("UPLOAD_DIR")
if not _env_upload_dir:
    UPLOAD_DIR = _DEFAULT_UPLOAD_DIR
elif not os.path.isabs(_env_upload_dir):
    UPLOAD_DIR = os.path.join(PROJECT_ROOT, _env_upload_dir)
else:
    UPLOAD_DIR = _env_upload_dir


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, float(raw))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, int(raw))
    except (TypeError, ValueError):
        return default


_SLOW_REQUEST_LOG_MS = _env_float("SLOW_REQUEST_LOG_MS", 750.0, minimum=0.0)
_MAX_UPLOAD_BYTES = _env_int("MAX_UPLOAD_MB", 10) * 1024 * 1024

app.config["DEMO_USER_ID"] = os.environ.get("DEMO_USER_ID", "demo-user-id")
app.config["UPLOAD_DIR"] = UPLOAD_DIR
app.config["MAX_UPLOAD_BYTES"] = _MAX_UPLOAD_BYTES
app.config["TARGET_UNITS"] = _env_int("TARGET_UNITS", DEFAULT_TARGET_UNITS)
# Headroom for multipart framing; the per-file limit is enforced in uploads.py.
app.config["MAX_CONTENT_LENGTH"] = _MAX_UPLOAD_BYTES + 1024 * 1024

DEMO_USER_DEFAULTS = {
    "username": "demo",
    "first_name": "John",
    "last_name": "Doe",
    "email": "john.doe@example.com",
    "current_institution": "De Anza College",
    "target_major": "Computer Science Transfer",
}
PROFILE_FIELDS = ("first_name", "last_name", "email", "current_institution", "target_major")

# ── Store ──────────────────────────────────────────────────────────────────────
_store = MemStorage()
print(f"[OK] In-memory store ready with {len(_store.list_institutions())} seeded institutions")


class ApiError(Exception):
    def __init__(self, status: int, error_code: str, message: str, details=None):
        super().__init__(message)
        self.status = status
        self.error_code = error_code
        self.message = message
        self.details = details


def _current_user_id() -> str:
    return app.config["DEMO_USER_ID"]


def _json_body() -> dict:
    body = request.get_json(force=True, silent=True)
    if not isinstance(body, dict):
        raise ApiError(400, "INVALID_INPUT", "Request body must be a JSON object.")
    return body


def _validate(schema, payload, label: str, partial: bool = False) -> dict:
    try:
        if partial:
            return parse_update(schema, payload)
        return parse_create(schema, payload)
    except ValidationError as exc:
        raise ApiError(400, "INVALID_INPUT", f"Invalid {label} data", error_details(exc)) from exc


def _not_found(label: str) -> ApiError:
    return ApiError(404, "NOT_FOUND", f"{label} not found")


def _log_activity(user_id: str, action: str, description: str,
                  entity_type: str | None = None, entity_id: str | None = None) -> dict:
    return _store.create_activity({
        "user_id": user_id,
        "action": action,
        "description": description,
        "entity_type": entity_type,
        "entity_id": entity_id,
    })


# -- Request timing / security headers -------------------------------------
@app.before_request
def _start_request_timer():
    g._request_start_time = time.perf_counter()


@app.after_request
def _add_security_headers(response):
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "same-origin"

    started = getattr(g, "_request_start_time", None)
    if started is not None:
        duration_ms = (time.perf_counter() - started) * 1000.0
        if duration_ms >= _SLOW_REQUEST_LOG_MS:
            endpoint = request.endpoint or "unknown"
            print(
                f"[SLOW] {request.method} {request.path} "
                f"endpoint={endpoint} status={response.status_code} duration_ms={duration_ms:.1f}"
            )
    return response


# -- Health endpoint --------------------------------------------------------
@app.route("/health", methods=["GET"])
def health_endpoint():
    return jsonify({
        "status": "ok",
        "version": "1.0.0",
        "institutions": len(_store.list_institutions()),
    })


# ── Error handlers ─────────────────────────────────────────────────────────────
def _error_response(status: int, error_code: str, message: str, details=None):
    payload = {"error": {"error_code": error_code, "message": message}}
    if details is not None:
        payload["error"]["details"] = details
    return jsonify(payload), status


@app.errorhandler(ApiError)
def handle_api_error(e):
    return _error_response(e.status, e.error_code, e.message, e.details)


@app.errorhandler(UploadRejected)
def handle_upload_rejected(e):
    return _error_response(e.status, e.error_code, e.message)


@app.errorhandler(RequestEntityTooLarge)
def handle_request_too_large(e):
    return _error_response(413, "FILE_TOO_LARGE", "Upload exceeds the maximum allowed size.")


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return _error_response(e.code or 500, e.name.upper().replace(" ", "_"), e.description or e.name)
    print(f"[WARN] Unhandled error on {request.method} {request.path}: {e!r}", file=sys.stderr)
    return _error_response(500, "SERVER_ERROR", "An unexpected server error occurred.")


# ── User / institutions ────────────────────────────────────────────────────────
@app.route("/api/user", methods=["GET"])
def get_user():
    user = _store.ensure_user(_current_user_id(), DEMO_USER_DEFAULTS)
    return jsonify(user)


@app.route("/api/user/profile", methods=["PUT"])
def update_profile():
    user_id = _current_user_id()
    updates = _validate(ProfileUpdate, _json_body(), "profile", partial=True)
    user = _store.update_user(user_id, updates)
    if user is None:
        raise _not_found("User")

    name = f"{updates.get('first_name') or ''} {updates.get('last_name') or ''}".strip()
    _log_activity(
        user_id,
        "UPDATE_PROFILE",
        f"Updated profile: {name}" if name else "Updated profile",
        "USER",
        user_id,
    )
    return jsonify({field: user.get(field) for field in PROFILE_FIELDS})


@app.route("/api/institutions", methods=["GET"])
def get_institutions():
    return jsonify(_store.list_institutions())


# ── Courses ────────────────────────────────────────────────────────────────────
@app.route("/api/courses", methods=["GET"])
def list_courses():
    return jsonify(_store.list_courses(_current_user_id()))


def _create_course(user_id: str, payload) -> dict:
    fields = _validate(CourseIn, payload, "course")
    fields["user_id"] = user_id
    course = _store.create_course(fields)
    _log_activity(
        user_id,
        "CREATE_COURSE",
        f"Added course {course['course_code']} - {course['title']}",
        "COURSE",
        course["id"],
    )
    return course


@app.route("/api/courses", methods=["POST"])
def create_course():
    return jsonify(_create_course(_current_user_id(), _json_body()))


@app.route("/api/courses/categorized", methods=["GET"])
def get_categorized_courses():
    return jsonify(categorize_courses(_store.list_courses(_current_user_id())))


@app.route("/api/courses/prerequisite-chain", methods=["GET"])
def get_prerequisite_chain():
    return jsonify(build_prerequisite_chain(_store.list_courses(_current_user_id())))


@app.route("/api/courses/<course_id>", methods=["GET"])
def get_course(course_id):
    course = _store.get_course(course_id)
    if course is None or course.get("user_id") != _current_user_id():
        raise _not_found("Course")
    return jsonify(course)


@app.route("/api/courses/<course_id>", methods=["PUT"])
def update_course(course_id):
    user_id = _current_user_id()
    updates = _validate(CourseUpdate, _json_body(), "course", partial=True)
    course = _store.update_course(course_id, updates)
    if course is None:
        raise _not_found("Course")
    _log_activity(user_id, "UPDATE_COURSE", f"Updated course {course['course_code']}", "COURSE", course["id"])
    return jsonify(course)


@app.route("/api/courses/<course_id>", methods=["DELETE"])
def delete_course(course_id):
    user_id = _current_user_id()
    existing = _store.get_course(course_id)
    if not _store.delete_course(course_id):
        raise _not_found("Course")
    code = (existing or {}).get("course_code")
    _log_activity(user_id, "DELETE_COURSE", f"Deleted course {code}" if code else "Deleted course", "COURSE", course_id)
    return jsonify({"success": True})


# -- Bulk import: preview, then confirm ------------------------------------
@app.route("/api/courses/import/preview", methods=["POST"])
def preview_course_import():
    text = str(_json_body().get("text") or "")
    if not text.strip():
        raise ApiError(400, "INVALID_INPUT", "Course data is required")
    drafts = parse_bulk_courses(text)
    return jsonify({"courses": drafts, "count": len(drafts)})


@app.route("/api/courses/import/csv", methods=["POST"])
def preview_course_csv():
    file_storage = request.files.get("file")
    validate_upload(file_storage, app.config["MAX_UPLOAD_BYTES"])
    if (file_storage.mimetype or "").lower() not in {"text/csv", "text/plain"}:
        raise UploadRejected("INVALID_FILE_TYPE", "Course import accepts CSV or TXT files only.")
    try:
        drafts = parse_course_csv(file_storage.stream)
    except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as exc:
        raise ApiError(400, "INVALID_INPUT", f"Could not read CSV: {exc}") from exc
    return jsonify({"courses": drafts, "count": len(drafts)})


@app.route("/api/courses/import", methods=["POST"])
def confirm_course_import():
    """Persist reviewed drafts one at a time. Earlier successes are kept if a later draft fails."""
    user_id = _current_user_id()
    body = _validate(CourseImportIn, _json_body(), "import")
    created = []
    failed = 0
    for draft in body["courses"]:
        try:
            created.append(_create_course(user_id, draft_to_course_fields(draft)))
        except ApiError as exc:
            failed += 1
            print(f"[WARN] Course import skipped {draft.get('course_code')!r}: {exc.message}", file=sys.stderr)

    if created:
        _log_activity(user_id, "IMPORT_COURSES", f"Imported {len(created)} course(s)", "COURSE", None)
    print(f"[INFO] Course import: {len(created)} imported, {failed} failed")
    return jsonify({"imported": len(created), "failed": failed, "courses": created})


# ── Education plans / semesters ────────────────────────────────────────────────
@app.route("/api/education-plans", methods=["GET"])
def list_education_plans():
    return jsonify(_store.list_education_plans(_current_user_id()))


@app.route("/api/education-plans", methods=["POST"])
def create_education_plan():
    user_id = _current_user_id()
    fields = _validate(EducationPlanIn, _json_body(), "plan")
    fields["user_id"] = user_id
    plan = _store.create_education_plan(fields)
    _log_activity(user_id, "CREATE_PLAN", f"Created education plan: {plan['name']}", "PLAN", plan["id"])
    return jsonify(plan)


@app.route("/api/education-plans/<plan_id>", methods=["PUT"])
def update_education_plan(plan_id):
    user_id = _current_user_id()
    updates = _validate(EducationPlanUpdate, _json_body(), "plan", partial=True)
    plan = _store.update_education_plan(plan_id, updates)
    if plan is None:
        raise _not_found("Education plan")
    _log_activity(user_id, "UPDATE_PLAN", f"Updated education plan: {plan['name']}", "PLAN", plan_id)
    return jsonify(plan)


@app.route("/api/education-plans/<plan_id>", methods=["DELETE"])
def delete_education_plan(plan_id):
    user_id = _current_user_id()
    if not _store.delete_education_plan(plan_id):
        raise _not_found("Education plan")
    _log_activity(user_id, "DELETE_PLAN", "Deleted education plan", "PLAN", plan_id)
    return jsonify({"success": True})


@app.route("/api/education-plans/<plan_id>/semesters", methods=["GET"])
def list_plan_semesters(plan_id):
    return jsonify(sort_semesters(_store.list_planned_semesters(plan_id)))


@app.route("/api/planned-semesters", methods=["GET"])
def list_planned_semesters():
    """Semesters of one plan with ``?plan_id=``, otherwise of every plan the user owns."""
    plan_id = (request.args.get("plan_id") or "").strip()
    if plan_id:
        return jsonify(sort_semesters(_store.list_planned_semesters(plan_id)))
    semesters = []
    for plan in _store.list_education_plans(_current_user_id()):
        semesters.extend(_store.list_planned_semesters(plan["id"]))
    return jsonify(sort_semesters(semesters))


@app.route("/api/planned-semesters", methods=["POST"])
def create_planned_semester():
    user_id = _current_user_id()
    fields = _validate(PlannedSemesterIn, _json_body(), "semester")
    semester = _store.create_planned_semester(fields)
    _log_activity(
        user_id,
        "CREATE_SEMESTER",
        f"Planned {semester['term'].title()} {semester['year']}",
        "SEMESTER",
        semester["id"],
    )
    return jsonify(semester)


@app.route("/api/planned-semesters/<semester_id>", methods=["PUT"])
def update_planned_semester(semester_id):
    updates = _validate(PlannedSemesterUpdate, _json_body(), "semester", partial=True)
    semester = _store.update_planned_semester(semester_id, updates)
    if semester is None:
        raise _not_found("Planned semester")
    return jsonify(semester)


@app.route("/api/planned-semesters/<semester_id>", methods=["DELETE"])
def delete_planned_semester(semester_id):
    if not _store.delete_planned_semester(semester_id):
        raise _not_found("Planned semester")
    return jsonify({"success": True})


# ── Documents ──────────────────────────────────────────────────────────────────
@app.route("/api/upload", methods=["POST"])
def upload_document():
    user_id = _current_user_id()
    file_storage = request.files.get("file")
    meta = save_upload(file_storage, app.config["UPLOAD_DIR"], app.config["MAX_UPLOAD_BYTES"])
    meta["user_id"] = user_id
    meta["type"] = (request.form.get("type") or DEFAULT_DOCUMENT_TYPE).strip().upper()
    document = _store.create_document(meta)
    _log_activity(user_id, "UPLOAD_DOCUMENT", f"Uploaded {document['original_name']}", "DOCUMENT", document["id"])
    return jsonify(document)


@app.route("/api/documents", methods=["GET"])
def list_documents():
    return jsonify(_store.list_documents(_current_user_id()))


@app.route("/api/documents/<document_id>", methods=["DELETE"])
def delete_document(document_id):
    user_id = _current_user_id()
    existing = _store.get_document(document_id)
    if not _store.delete_document(document_id):
        raise _not_found("Document")
    _log_activity(
        user_id,
        "DELETE_DOCUMENT",
        f"Deleted {existing['original_name']}" if existing else "Deleted document",
        "DOCUMENT",
        document_id,
    )
    return jsonify({"success": True})


# ── Articulation agreements ────────────────────────────────────────────────────
@app.route("/api/articulation-agreements", methods=["GET"])
def list_articulation_agreements():
    return jsonify(_store.list_articulation_agreements(_current_user_id()))


@app.route("/api/articulation-agreements", methods=["POST"])
def create_articulation_agreement():
    user_id = _current_user_id()
    fields = _validate(ArticulationAgreementIn, _json_body(), "agreement")
    fields["user_id"] = user_id
    agreement = _store.create_articulation_agreement(fields)
    _log_activity(user_id, "CREATE_AGREEMENT", "Added articulation agreement", "AGREEMENT", agreement["id"])
    return jsonify(agreement)


def _assist_failure(exc: AssistError):
    print(f"[WARN] Assist.org request failed: {exc}", file=sys.stderr)
    return jsonify({"message": "Failed to fetch Assist.org data", "error": str(exc)}), 500


@app.route("/api/assist/institutions/<institution_id>/agreements", methods=["GET"])
def assist_institution_agreements(institution_id):
    try:
        return jsonify(fetch_institution_agreements(institution_id))
    except AssistError as exc:
        return _assist_failure(exc)


@app.route("/api/assist/agreements", methods=["GET"])
def assist_agreements():
    try:
        return jsonify(fetch_agreements(
            receiving_institution_id=request.args.get("receivingInstitutionId"),
            sending_institution_id=request.args.get("sendingInstitutionId"),
            academic_year_id=request.args.get("academicYearId"),
            category_code=request.args.get("categoryCode"),
        ))
    except AssistError as exc:
        return _assist_failure(exc)


@app.route("/api/assist/url", methods=["GET"])
def assist_url():
    return jsonify({"url": agreement_url(
        request.args.get("sending"),
        request.args.get("receiving"),
        request.args.get("major"),
        request.args.get("academic_year"),
    )})


# ── Deadlines ──────────────────────────────────────────────────────────────────
@app.route("/api/deadlines", methods=["GET"])
def list_deadlines():
    return jsonify(_store.list_deadlines(_current_user_id()))


@app.route("/api/deadlines", methods=["POST"])
def create_deadline():
    user_id = _current_user_id()
    fields = _validate(DeadlineIn, _json_body(), "deadline")
    fields["user_id"] = user_id
    deadline = _store.create_deadline(fields)
    _log_activity(user_id, "CREATE_DEADLINE", f"Added deadline: {deadline['title']}", "DEADLINE", deadline["id"])
    return jsonify(deadline)


@app.route("/api/deadlines/<deadline_id>", methods=["PUT"])
def update_deadline(deadline_id):
    user_id = _current_user_id()
    updates = _validate(DeadlineUpdate, _json_body(), "deadline", partial=True)
    deadline = _store.update_deadline(deadline_id, updates)
    if deadline is None:
        raise _not_found("Deadline")
    _log_activity(user_id, "UPDATE_DEADLINE", f"Updated deadline: {deadline['title']}", "DEADLINE", deadline_id)
    return jsonify(deadline)


# ── Activity / target schools / dashboard ──────────────────────────────────────
@app.route("/api/activity", methods=["GET"])
def list_activity():
    return jsonify(_store.list_activity(_current_user_id()))


@app.route("/api/target-schools", methods=["GET"])
def list_target_schools():
    return jsonify(_store.list_target_schools(_current_user_id()))


@app.route("/api/target-schools", methods=["POST"])
def create_target_school():
    user_id = _current_user_id()
    fields = _validate(TargetSchoolIn, _json_body(), "target school")
    fields["user_id"] = user_id
    target = _store.create_target_school(fields)
    _log_activity(
        user_id,
        "ADD_TARGET_SCHOOL",
        f"Added target school: {target['institution_name']}",
        "TARGET_SCHOOL",
        target["id"],
    )
    return jsonify(target)


@app.route("/api/target-schools/<target_id>", methods=["DELETE"])
def delete_target_school(target_id):
    user_id = _current_user_id()
    if not _store.delete_target_school(target_id):
        raise _not_found("Target school")
    _log_activity(user_id, "DELETE_TARGET_SCHOOL", "Removed target school", "TARGET_SCHOOL", target_id)
    return jsonify({"success": True})


@app.route("/api/dashboard/stats", methods=["GET"])
def dashboard_stats():
    user_id = _current_user_id()
    return jsonify(compute_dashboard_stats(
        _store.list_courses(user_id),
        _store.list_education_plans(user_id),
        _store.list_deadlines(user_id),
        target_units=app.config["TARGET_UNITS"],
    ))


app.add_url_rule("/api/health", endpoint="api_health", view_func=health_endpoint, methods=["GET"])


# -- API catch-all (404 for unknown /api/* routes) -------------------
# GET only: a wrong method on a real route must still surface as 405.
@app.route("/api/<path:rest>", methods=["GET"])
def api_catch_all(rest):
    return _error_response(404, "NOT_FOUND", f"/api/{rest} not found")


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)
