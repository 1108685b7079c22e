"""
RadCatalog Backend - Upstream Record Schemas
==============================================

What:  Pydantic models describing the raw records sent by the RadReport API.
How:   The upstream client returns plain dicts; the reconciler and refresher
       validate them one item at a time with these models so a single
       malformed row is reported without failing the whole batch.

Field names follow the upstream JSON (camelCase aliases such as `specCode`,
`radlexID`, `TLAP_Approved`); attributes are snake_case. Unknown keys are ignored.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


def _to_count(value: Any) -> int:
    """Parse an upstream counter, mapping unparseable values to 0 and clamping at 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        parsed = int(float(str(value).strip()))
    except (TypeError, ValueError):
        return 0
    return max(parsed, 0)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class RawSubspecialty(BaseModel):
    """One element of `GET /subspecialty/` → `DATA`."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    code: str = Field(min_length=1, max_length=10)
    short_name: str = Field(alias="shortName", min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=100)
    radlex_id: Optional[str] = Field(default=None, alias="radlexID", max_length=50)

    @field_validator("radlex_id", mode="before")
    @classmethod
    def _normalize_radlex(cls, v: Any) -> Any:
        return _blank_to_none(v)


class RawTemplate(BaseModel):
    """
    One element of `GET /templates` → `DATA`, optionally merged with its detail
    record (detailed sync).

    Coercions:
        - `template_id` / `template_version`: numbers become strings
        - `views` / `downloads`: parsed leniently, never negative
        - `created`: naive timestamps are taken as UTC; missing → None
          (the reconciler substitutes the ingest time)
        - `specCode`: missing → ""
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    template_id: str = Field(min_length=1, max_length=50)
    template_version: str = Field(min_length=1, max_length=100)
    title: str = Field(min_length=1, max_length=200)
    lang: str = Field(default="English", max_length=50)
    created: Optional[datetime] = None
    specialty: str = Field(default="", max_length=200)
    spec_code: str = Field(default="", alias="specCode", max_length=100)
    tlap_approved: Optional[str] = Field(default=None, alias="TLAP_Approved", max_length=10)

    views: int = 0
    downloads: int = 0

    description: Optional[str] = None
    author: Optional[str] = Field(default=None, max_length=100)
    firstname: Optional[str] = Field(default=None, max_length=100)
    lastname: Optional[str] = Field(default=None, max_length=100)

    data_type: Optional[str] = Field(default=None, alias="dataType", max_length=20)
    template_data: Optional[str] = Field(default=None, alias="templateData")

    @field_validator("template_id", "template_version", "tlap_approved", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        if isinstance(v, bool):
            return str(v).lower()
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @field_validator("lang", "spec_code", "specialty", mode="before")
    @classmethod
    def _default_when_null(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None:
            return "English" if info.field_name == "lang" else ""
        return v

    @field_validator("views", "downloads", mode="before")
    @classmethod
    def _parse_counter(cls, v: Any) -> int:
        return _to_count(v)

    @field_validator(
        "description", "author", "firstname", "lastname", "data_type", "template_data",
        mode="before",
    )
    @classmethod
    def _normalize_optional(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("created", mode="before")
    @classmethod
    def _parse_created(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        if isinstance(v, str):
            try:
                return datetime.fromisoformat(v.replace("Z", "+00:00"))
            except ValueError:
                return v
        return v

    @field_validator("created")
    @classmethod
    def _assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class RawTemplateDetail(BaseModel):
    """
    `GET /templates/{id}/details` → `DATA`.

    Every field is optional; the refresher only writes back fields that are present.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    template_data: Optional[str] = Field(default=None, alias="templateData")
    description: Optional[str] = None
    author: Optional[str] = None
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    downloads: Optional[int] = None

    @field_validator("template_data", "description", "author", "firstname", "lastname", mode="before")
    @classmethod
    def _normalize_optional(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("downloads", mode="before")
    @classmethod
    def _parse_downloads(cls, v: Any) -> Optional[int]:
        if v is None or v == "":
            return None
        return _to_count(v)
