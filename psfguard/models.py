"""Records stored in the scheduler database and the grading status codes."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import IntEnum
from typing import Any, Mapping


class GradingStatus(IntEnum):
    """Grading state of an acquired image as stored in the database."""

    PENDING = 0
    ACCEPTED = 1
    REJECTED = 2


def status_name(value: int) -> str:
    """Return the display name for a raw grading status code."""
    try:
        return GradingStatus(value).name.capitalize()
    except ValueError:
        return "Unknown"


def _require(data: Mapping[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise ValueError(f"missing field `{key}`") from None


@dataclass
class Project:
    """A scheduler project."""

    id: int
    profile_id: str
    name: str
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Project:
        return cls(
            id=int(_require(data, "id")),
            profile_id=str(_require(data, "profile_id")),
            name=str(_require(data, "name")),
            description=data.get("description"),
        )


@dataclass
class Target:
    """An imaging target belonging to a project."""

    id: int
    name: str
    active: bool
    ra: float | None
    dec: float | None
    project_id: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Target:
        ra = data.get("ra")
        dec = data.get("dec")
        return cls(
            id=int(_require(data, "id")),
            name=str(_require(data, "name")),
            active=bool(_require(data, "active")),
            ra=None if ra is None else float(ra),
            dec=None if dec is None else float(dec),
            project_id=int(_require(data, "project_id")),
        )


@dataclass
class AcquiredImage:
    """An image recorded by the scheduler, with its grading state."""

    id: int
    project_id: int
    target_id: int
    acquired_date: int | None
    filter_name: str
    grading_status: int
    metadata: str
    reject_reason: str | None = None
    profile_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AcquiredImage:
        acquired = data.get("acquired_date")
        return cls(
            id=int(_require(data, "id")),
            project_id=int(_require(data, "project_id")),
            target_id=int(_require(data, "target_id")),
            acquired_date=None if acquired is None else int(acquired),
            filter_name=str(_require(data, "filter_name")),
            grading_status=int(_require(data, "grading_status")),
            metadata=str(_require(data, "metadata")),
            reject_reason=data.get("reject_reason"),
            profile_id=data.get("profile_id"),
        )