import re
import sys

import pandas as pd

DEFAULT_UNITS = 3
DEFAULT_CATEGORY = "MAJOR_PREP"

# "Prerequisite: MATH 120" / "prerequisites:MATH 120" -> "MATH 120"
PREREQ_LABEL_RE = re.compile(r'^\s*prerequisites?:\s*', re.IGNORECASE)
# "(4 units)", "(3.5 unit)" inside a dash-format title
PAREN_UNITS_RE = re.compile(r'\((\d+(?:\.\d+)?)\s*units?\)', re.IGNORECASE)
NUMBER_RE = re.compile(r'\d+(?:\.\d+)?')

CSV_COLUMNS = ["course_code", "title", "units", "prerequisites", "description", "category", "subcategory"]


def _to_units(raw) -> int | float:
    """First number in ``raw``; whole numbers come back as int. Defaults to 3."""
    match = NUMBER_RE.search(str(raw or ""))
    if not match:
        return DEFAULT_UNITS
    value = float(match.group(0))
    if value <= 0:
        return DEFAULT_UNITS
    return int(value) if value.is_integer() else value


def _strip_prereq_label(raw) -> str:
    return PREREQ_LABEL_RE.sub("", str(raw or "")).strip()


def _draft(course_code: str, title: str, units, prerequisites: str = "") -> dict | None:
    course_code = course_code.strip()
    title = title.strip()
    if not course_code or not title:
        return None
    return {
        "course_code": course_code,
        "title": title,
        "units": units,
        "description": "",
        "category": DEFAULT_CATEGORY,
        "subcategory": course_code.split()[0],
        "prerequisites": prerequisites,
    }


def match_pipe(line: str) -> dict | None:
    """``MATH 300|College Algebra|4|MATH 120``"""
    if "|" not in line:
        return None
    parts = [p.strip() for p in line.split("|")]
    parts += [""] * (4 - len(parts))
    return _draft(parts[0], parts[1], _to_units(parts[2]), _strip_prereq_label(parts[3]))


def match_dash(line: str) -> dict | None:
    """``ENGL 101 - English Composition (3 units)``"""
    if " - " not in line:
        return None
    code_section, rest = line.split(" - ", 1)
    units_match = PAREN_UNITS_RE.search(rest)
    units = _to_units(units_match.group(1)) if units_match else DEFAULT_UNITS
    title = PAREN_UNITS_RE.sub("", rest, count=1)
    return _draft(code_section, title, units)


def match_comma(line: str) -> dict | None:
    """``BIOL 400, Human Anatomy, 4 units, Prerequisites: BIOL 310``"""
    if "," not in line:
        return None
    parts = [p.strip() for p in line.split(",")]
    parts += [""] * (4 - len(parts))
    # Anything after the fourth field is more prerequisites: "PHYS 350, MATH 400"
    prereqs = ", ".join(p for p in parts[3:] if p)
    return _draft(parts[0], parts[1], _to_units(parts[2]), _strip_prereq_label(prereqs))


# Tried in order; the first matcher that recognizes its delimiter owns the line.
LINE_MATCHERS = [
    ("pipe", "|", match_pipe),
    ("dash", " - ", match_dash),
    ("comma", ",", match_comma),
]


def parse_course_line(line: str) -> dict | None:
    """Parse one line into a course draft, or None when it is not usable."""
    line = line.strip()
    if not line:
        return None
    for _name, delimiter, matcher in LINE_MATCHERS:
        if delimiter in line:
            return matcher(line)
    return None


def parse_bulk_courses(text: str) -> list[dict]:
    """
    Split free text into course drafts for review before import.

    Lines with no recognized delimiter, or missing a code or title, are
    skipped with a warning; they never raise.
    """
    drafts: list[dict] = []
    for lineno, raw_line in enumerate(str(text or "").splitlines(), start=1):
        if not raw_line.strip():
            continue
        draft = parse_course_line(raw_line)
        if draft is None:
            print(f"[WARN] Skipping unparseable course line {lineno}: {raw_line.strip()!r}", file=sys.stderr)
            continue
        drafts.append(draft)
    return drafts


def parse_course_csv(stream) -> list[dict]:
    """
    Read a course CSV (header row required) into drafts shaped like
    ``parse_bulk_courses`` output. Rows without a code or title are skipped.
    """
    df = pd.read_csv(stream, dtype=str, keep_default_na=False)
    df.columns = [str(c).strip().lower().replace(" ", "_") for c in df.columns]
    if "code" in df.columns and "course_code" not in df.columns:
        df = df.rename(columns={"code": "course_code"})
    for col in CSV_COLUMNS:
        if col not in df.columns:
            df[col] = ""

    drafts: list[dict] = []
    for idx, row in df.iterrows():
        draft = _draft(
            str(row["course_code"]),
            str(row["title"]),
            _to_units(row["units"]),
            _strip_prereq_label(row["prerequisites"]),
        )
        if draft is None:
            print(f"[WARN] Skipping CSV row {idx + 2}: missing course_code or title", file=sys.stderr)
            continue
        if str(row["description"]).strip():
            draft["description"] = str(row["description"]).strip()
        if str(row["category"]).strip():
            draft["category"] = str(row["category"]).strip().upper()
        if str(row["subcategory"]).strip():
            draft["subcategory"] = str(row["subcategory"]).strip()
        drafts.append(draft)
    return drafts


def draft_to_course_fields(draft: dict) -> dict:
    """Turn a reviewed draft into a course create payload (prereq string -> list)."""
    fields = dict(draft)
    prereqs = fields.get("prerequisites")
    if isinstance(prereqs, str):
        fields["prerequisites"] = [p.strip() for p in prereqs.split(",") if p.strip()]
    return fields
