"""
Prerequisite-chain view over a user's own course list.

Prerequisites are stored as course codes and resolved here by exact string
match against ``course_code``. A code with no matching course is reported as
unresolved and otherwise ignored. Only direct prerequisites are looked up;
there is no transitive traversal, so cycles are harmless.
"""

COMPLETED = "completed"
IN_PROGRESS = "in_progress"
PLANNED = "planned"


def course_status(course: dict) -> str:
    if course.get("is_completed"):
        return COMPLETED
    if course.get("semester_taken"):
        return IN_PROGRESS
    return PLANNED


def build_code_index(courses: list[dict]) -> dict[str, dict]:
    """course_code -> first course record carrying that code."""
    index: dict[str, dict] = {}
    for course in courses:
        code = course.get("course_code")
        if code is not None and code not in index:
            index[code] = course
    return index


def resolve_prerequisites(course: dict, code_index: dict[str, dict]) -> tuple[list[dict], list[str]]:
    """Returns (resolved course records, unresolved codes) in listed order."""
    resolved: list[dict] = []
    unresolved: list[str] = []
    for code in course.get("prerequisites") or []:
        match = code_index.get(code)
        if match is None:
            unresolved.append(code)
        else:
            resolved.append(match)
    return resolved, unresolved


def _summary(course: dict) -> dict:
    return {
        "id": course.get("id"),
        "course_code": course.get("course_code"),
        "title": course.get("title"),
        "units": course.get("units"),
        "category": course.get("category"),
        "is_completed": bool(course.get("is_completed")),
        "status": course_status(course),
    }


def build_prerequisite_chain(courses: list[dict]) -> dict:
    """
    One entry per course that lists at least one prerequisite.

    ``ready`` is True when every resolved prerequisite is completed. The
    ``satisfied``/``pending`` tallies only count courses with at least one
    resolved prerequisite.
    """
    code_index = build_code_index(courses)
    chains = []
    satisfied = 0
    pending = 0

    for course in courses:
        if not course.get("prerequisites"):
            continue
        resolved, unresolved = resolve_prerequisites(course, code_index)
        ready = all(p.get("is_completed") for p in resolved)
        if resolved:
            if ready:
                satisfied += 1
            else:
                pending += 1
        chains.append({
            "course": _summary(course),
            "prerequisites": [_summary(p) for p in resolved],
            "unresolved_codes": unresolved,
            "ready": ready,
        })

    return {
        "chains": chains,
        "total_with_prerequisites": satisfied + pending,
        "satisfied": satisfied,
        "pending": pending,
    }
