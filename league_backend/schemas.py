"""
Typed, versioned structures stored as JSON text columns.

leagues.rules_json holds LeagueRules; payments.metadata_json holds EnrollmentMetadata.
The dump_/load_ functions below are the only place these blobs are (de)serialized.
Rows written before versioning carry no "version" key and are read as version 1.
"""
from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from league_backend.errors import ValidationError
from league_backend.models import LEAGUE_JOIN_PURPOSE_TYPE

RULES_VERSION = 1
ENROLLMENT_METADATA_VERSION = 1


class LeagueRules(BaseModel):
    """Free-form league rules as configured by the admin."""
    model_config = ConfigDict(extra="forbid")

    version: Literal[1] = RULES_VERSION
    description: str = ""
    match_format: str | None = Field(None, description="e.g. 'bo1', 'bo3'")
    roster_size: int | None = Field(None, ge=1)
    zones: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)


class EnrollmentMetadata(BaseModel):
    """What a league-join payment pays for. Written at checkout."""
    model_config = ConfigDict(extra="ignore")

    version: Literal[1] = ENROLLMENT_METADATA_VERSION
    type: Literal["league_join"] = LEAGUE_JOIN_PURPOSE_TYPE
    league_id: int = Field(..., ge=1)
    league_name: str | None = None
    gang_code: str = Field(..., min_length=1)
    gang_name: str | None = None


def _load_versioned(raw: str | None, label: str) -> dict[str, Any] | None:
    if raw is None or not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"{label} is not valid JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise ValidationError(f"{label} must be a JSON object")
    data.setdefault("version", 1)
    return data


def dump_rules(rules: LeagueRules | None) -> str | None:
    if rules is None:
        return None
    return rules.model_dump_json()


def load_rules(raw: str | None) -> LeagueRules | None:
    data = _load_versioned(raw, "League rules")
    if data is None:
        return None
    try:
        return LeagueRules.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"League rules are invalid: {e.errors()[0]['msg']}") from e


def dump_enrollment_metadata(metadata: EnrollmentMetadata) -> str:
    return metadata.model_dump_json()


def load_enrollment_metadata(raw: str | None) -> EnrollmentMetadata | None:
    data = _load_versioned(raw, "Enrollment metadata")
    if data is None:
        return None
    try:
        return EnrollmentMetadata.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Enrollment metadata is invalid: {e.errors()[0]['msg']}") from e
