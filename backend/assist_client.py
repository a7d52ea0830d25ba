"""
Best-effort client for the public Assist.org articulation API.

Access is restricted to member institutions, so calls are expected to fail in
most deployments. Every failure is raised as ``AssistError`` with the upstream
message and is never retried.
"""

import os
from urllib.parse import quote

import requests

DEFAULT_BASE_URL = "https://assist.org/api"
PUBLIC_SITE_URL = "https://assist.org"

# Assist.org identifies academic years by numeric id.
ACADEMIC_YEAR_IDS = {
    "2023-2024": "74",
    "2022-2023": "73",
    "2021-2022": "72",
    "2020-2021": "71",
}
DEFAULT_ACADEMIC_YEAR_ID = "74"


class AssistError(Exception):
    """Upstream articulation service call failed."""


def _base_url() -> str:
    return os.environ.get("ASSIST_BASE_URL", DEFAULT_BASE_URL).rstrip("/")


def _timeout() -> float:
    try:
        return max(0.1, float(os.environ.get("ASSIST_TIMEOUT_SECONDS", "10")))
    except ValueError:
        return 10.0


def _get_json(url: str, params: dict | None = None):
    try:
        response = requests.get(url, params=params, timeout=_timeout())
        response.raise_for_status()
        return response.json()
    except requests.RequestException as exc:
        raise AssistError(str(exc)) from exc
    except ValueError as exc:
        raise AssistError(f"Invalid JSON from {url}: {exc}") from exc


def fetch_institution_agreements(institution_id: str):
    return _get_json(f"{_base_url()}/institutions/{quote(str(institution_id), safe='')}/agreements")


def fetch_agreements(
    receiving_institution_id: str | None = None,
    sending_institution_id: str | None = None,
    academic_year_id: str | None = None,
    category_code: str | None = None,
):
    params = {
        "receivingInstitutionId": receiving_institution_id,
        "sendingInstitutionId": sending_institution_id,
        "academicYearId": academic_year_id,
        "categoryCode": category_code,
    }
    return _get_json(f"{_base_url()}/agreements", params={k: v for k, v in params.items() if v})


def academic_year_id(academic_year: str | None) -> str:
    return ACADEMIC_YEAR_IDS.get(str(academic_year or "").strip(), DEFAULT_ACADEMIC_YEAR_ID)


def agreement_url(
    sending_code: str | None = None,
    receiving_code: str | None = None,
    major: str | None = None,
    academic_year: str | None = None,
) -> str:
    """Public transfer-results page for a sending/receiving pair."""
    if not (sending_code and receiving_code):
        return PUBLIC_SITE_URL
    url = (
        f"{PUBLIC_SITE_URL}/transfer/results?year={academic_year_id(academic_year)}"
        f"&institution={quote(sending_code, safe='')}&agreement={quote(receiving_code, safe='')}"
    )
    if major:
        url += f"&agreementType=major&major={quote(major, safe='')}"
    return url
