import io

import pytest
from course_parser import (
    LINE_MATCHERS,
    draft_to_course_fields,
    match_comma,
    match_dash,
    match_pipe,
    parse_bulk_courses,
    parse_course_csv,
    parse_course_line,
)


class TestPipeFormat:
    def test_full_line(self):
        draft = parse_course_line("MATH 300|College Algebra|4|MATH 120")
        assert draft["course_code"] == "MATH 300"
        assert draft["title"] == "College Algebra"
        assert draft["units"] == 4
        assert draft["prerequisites"] == "MATH 120"

    def test_prereq_label_stripped(self):
        draft = match_pipe("MATH 300|College Algebra|4|Prerequisites: MATH 120")
        assert draft["prerequisites"] == "MATH 120"

    def test_empty_trailing_prereq(self):
        draft = match_pipe("ENGL 101|English Composition|3|")
        assert draft["prerequisites"] == ""

    def test_missing_units_defaults_to_three(self):
        assert match_pipe("ART 300|Art Appreciation")["units"] == 3

    def test_zero_units_defaults_to_three(self):
        assert match_pipe("ART 300|Art Appreciation|0|")["units"] == 3

    def test_multiple_prereqs_kept_as_string(self):
        draft = match_pipe("PHYS 360|General Physics II|4|PHYS 350, MATH 400")
        assert draft["prerequisites"] == "PHYS 350, MATH 400"

    def test_missing_title_rejected(self):
        assert match_pipe("MATH 300||4|") is None

    def test_draft_defaults(self):
        draft = match_pipe("MATH 300|College Algebra|4|")
        assert draft["category"] == "MAJOR_PREP"
        assert draft["subcategory"] == "MATH"
        assert draft["description"] == ""


class TestDashFormat:
    def test_parenthetical_units(self):
        draft = match_dash("ENGL 101 - English Composition (3 units)")
        assert draft["course_code"] == "ENGL 101"
        assert draft["title"] == "English Composition"
        assert draft["units"] == 3

    def test_fractional_units(self):
        assert match_dash("KINE 100 - Yoga (1.5 units)")["units"] == 1.5

    def test_singular_unit(self):
        assert match_dash("KINE 101 - Fitness (1 unit)")["units"] == 1

    def test_no_units_defaults(self):
        draft = match_dash("HIST 307 - History of the United States I")
        assert draft["units"] == 3
        assert draft["title"] == "History of the United States I"

    def test_no_prereqs(self):
        assert match_dash("ENGL 101 - English Composition (3 units)")["prerequisites"] == ""


class TestCommaFormat:
    def test_full_line(self):
        draft = match_comma("BIOL 400, Human Anatomy, 4 units, Prerequisites: BIOL 310")
        assert draft["course_code"] == "BIOL 400"
        assert draft["title"] == "Human Anatomy"
        assert draft["units"] == 4
        assert draft["prerequisites"] == "BIOL 310"

    def test_units_text_without_number(self):
        assert match_comma("BIOL 400, Human Anatomy, units")["units"] == 3

    def test_extra_prereq_fields_joined(self):
        draft = match_comma("PHYS 360, Physics II, 4 units, PHYS 350, MATH 400")
        assert draft["prerequisites"] == "PHYS 350, MATH 400"


class TestMatcherOrder:
    def test_order_is_pipe_dash_comma(self):
        assert [name for name, _, _ in LINE_MATCHERS] == ["pipe", "dash", "comma"]

    def test_pipe_wins_over_comma(self):
        draft = parse_course_line("PHYS 360|General Physics II|4|PHYS 350, MATH 400")
        assert draft["title"] == "General Physics II"

    def test_dash_wins_over_comma(self):
        draft = parse_course_line("ECON 302 - Macro, Money and Banking (3 units)")
        assert draft["course_code"] == "ECON 302"
        assert draft["title"] == "Macro, Money and Banking"


class TestBulkParse:
    def test_single_pipe_line(self):
        drafts = parse_bulk_courses("MATH 300|College Algebra|4|MATH 120")
        assert len(drafts) == 1
        assert {k: drafts[0][k] for k in ("course_code", "title", "units", "prerequisites")} == {
            "course_code": "MATH 300",
            "title": "College Algebra",
            "units": 4,
            "prerequisites": "MATH 120",
        }

    def test_unrecognized_line_skipped(self, capsys):
        assert parse_bulk_courses("not a recognized format") == []
        assert "[WARN]" in capsys.readouterr().err

    def test_mixed_formats_and_blank_lines(self):
        text = "\n".join([
            "MATH 300|College Algebra|4|MATH 120",
            "",
            "ENGL 101 - English Composition (3 units)",
            "garbage",
            "BIOL 400, Human Anatomy, 4 units, Prerequisites: BIOL 310",
        ])
        codes = [d["course_code"] for d in parse_bulk_courses(text)]
        assert codes == ["MATH 300", "ENGL 101", "BIOL 400"]

    def test_empty_and_none(self):
        assert parse_bulk_courses("") == []
        assert parse_bulk_courses(None) == []


class TestCsv:
    def test_basic_csv(self):
        csv_text = "course_code,title,units,prerequisites\nMATH 400,Calculus I,5,MATH 310\nENGL 101,Composition,3,\n"
        drafts = parse_course_csv(io.StringIO(csv_text))
        assert [d["course_code"] for d in drafts] == ["MATH 400", "ENGL 101"]
        assert drafts[0]["units"] == 5
        assert drafts[0]["prerequisites"] == "MATH 310"
        assert drafts[1]["prerequisites"] == ""

    def test_header_aliases_and_optional_columns(self):
        csv_text = "Code,Title,Units,Category\nCHEM 305,General Chemistry I,5,general_ed\n"
        drafts = parse_course_csv(io.BytesIO(csv_text.encode("utf-8")))
        assert drafts[0]["course_code"] == "CHEM 305"
        assert drafts[0]["category"] == "GENERAL_ED"

    def test_rows_without_title_skipped(self):
        csv_text = "course_code,title,units\nMATH 1,,3\nMATH 2,Real,3\n"
        drafts = parse_course_csv(io.StringIO(csv_text))
        assert [d["course_code"] for d in drafts] == ["MATH 2"]


class TestDraftToCourseFields:
    def test_splits_prereq_string(self):
        fields = draft_to_course_fields({"course_code": "X", "prerequisites": "PHYS 350, MATH 400"})
        assert fields["prerequisites"] == ["PHYS 350", "MATH 400"]

    def test_empty_prereq_string(self):
        assert draft_to_course_fields({"prerequisites": ""})["prerequisites"] == []

    def test_list_untouched(self):
        assert draft_to_course_fields({"prerequisites": ["A"]})["prerequisites"] == ["A"]
