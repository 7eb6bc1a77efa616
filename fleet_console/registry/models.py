"""Wire models for the mission registry's REST API."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fleet_console.mission.models import RegistryModel


class EnvelopeStatus(StrEnum):
    """Outcome flag carried by every registry response."""

    SUCCESS = "success"
    ERROR = "error"


class ResponseEnvelope(BaseModel):
    """The ``{status, message?, data?}`` wrapper around every response.

    Auth endpoints put ``token`` and ``user`` next to ``status`` instead of
    under ``data``; those land in the model's extra fields.
    """

    model_config = ConfigDict(extra="allow")

    status: EnvelopeStatus
    message: str | None = None
    data: Any = None

    @property
    def is_success(self) -> bool:
        """Return whether the registry reported success."""
        return self.status == EnvelopeStatus.SUCCESS

    def get_field(self, key: str) -> Any:
        """Look a field up under ``data`` first, then at the top level."""
        if isinstance(self.data, dict) and key in self.data:
            return self.data[key]
        return (self.model_extra or {}).get(key)

    def get_item(self, key: str) -> dict[str, Any]:
        """Return a single resource, e.g. ``data.mission``.

        Falls back to ``data`` itself when the registry returns the bare
        resource.
        """
        item = self.get_field(key)
        if isinstance(item, dict):
            return item
        if isinstance(self.data, dict):
            return self.data
        return {}

    def get_items(self, key: str) -> list[dict[str, Any]]:
        """Return a resource list, e.g. ``data.missions``."""
        items = self.get_field(key)
        if isinstance(items, list):
            return [item for item in items if isinstance(item, dict)]
        if isinstance(self.data, list):
            return [item for item in self.data if isinstance(item, dict)]
        return []


class UserProfile(RegistryModel):
    """Signed-in operator."""

    id: str = Field(alias="_id", min_length=1)
    name: str = Field(default="")
    email: str = Field(default="")
    role: str | None = None
    organization_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def normalize_payload(cls, data: Any) -> Any:
        """Accept ``id`` for ``_id`` and an embedded organization object."""
        if not isinstance(data, dict):
            return data
        normalized = dict(data)
        if "_id" not in normalized and "id" in normalized:
            normalized["_id"] = normalized.pop("id")
        organization = normalized.pop("organization", None)
        if isinstance(organization, dict):
            organization = organization.get("_id") or organization.get("id")
        if organization and "organizationId" not in normalized:
            normalized["organizationId"] = str(organization)
        return normalized


class AuthResult(BaseModel):
    """Outcome of login or registration."""

    token: str = Field(min_length=1)
    user: UserProfile


class ReportMissionReference(RegistryModel):
    """Mission summary embedded in a report."""

    id: str = Field(alias="_id")
    name: str = Field(default="")
    mission_type: str | None = None


class Report(RegistryModel):
    """Post-mission report."""

    id: str = Field(alias="_id", min_length=1)
    title: str = Field(default="")
    summary: str = Field(default="")
    status: str = Field(default="draft")
    mission: ReportMissionReference | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def normalize_mission_reference(cls, data: Any) -> Any:
        """The registry sends either an embedded mission or its id."""
        if isinstance(data, dict) and isinstance(data.get("mission"), str):
            normalized = dict(data)
            normalized["mission"] = {"_id": normalized["mission"]}
            return normalized
        return data


class OrganizationStats(RegistryModel):
    """Organization-wide totals from ``/reports/stats/organization``."""

    total_missions: int = Field(default=0, ge=0)
    total_flight_time: float = Field(default=0.0, ge=0)
    total_distance: float = Field(default=0.0, ge=0)
    total_area_covered: float = Field(default=0.0, ge=0)
    total_drones: int = Field(default=0, ge=0)
    active_drones: int = Field(default=0, ge=0)
    total_reports: int = Field(default=0, ge=0)
