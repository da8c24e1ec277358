"""Queries and updates against the scheduler's SQLite database."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from psfguard.models import AcquiredImage, GradingStatus, Project, Target

_IMAGE_COLUMNS = (
    "Id, projectId, targetId, acquireddate, filtername, "
    "gradingStatus, metadata, rejectreason, profileId"
)

_AUTOMATIC_ONLY = " AND (gradingStatus != 2 OR rejectreason NOT LIKE '%Manual%')"

_UPDATE_STATUS = "UPDATE acquiredimage SET gradingStatus = ?, rejectreason = ? WHERE Id = ?"


class ProjectNotFoundError(LookupError):
    """Raised when no project carries the requested name."""


def _image_from_row(row: Sequence[Any]) -> AcquiredImage:
    return AcquiredImage(
        id=row[0],
        project_id=row[1],
        target_id=row[2],
        acquired_date=row[3],
        filter_name=row[4],
        grading_status=row[5],
        metadata=row[6],
        reject_reason=row[7],
        profile_id=row[8],
    )


def _reset_filters(
    mode: str,
    date_cutoff: int,
    project_filter: str | None,
    target_filter: str | None,
) -> tuple[str, list[Any]]:
    clause = ""
    params: list[Any] = [date_cutoff]
    if project_filter is not None:
        clause += " AND projectId IN (SELECT Id FROM project WHERE name LIKE ?)"
        params.append(f"%{project_filter}%")
    if target_filter is not None:
        clause += " AND targetId IN (SELECT Id FROM target WHERE name LIKE ?)"
        params.append(f"%{target_filter}%")
    if mode == "automatic":
        clause += _AUTOMATIC_ONLY
    return clause, params


class Database:
    """Access layer over an open SQLite connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block in a transaction: commit on success, roll back on error."""
        conn = self._conn
        if conn.isolation_level is None and not conn.in_transaction:
            conn.execute("BEGIN")
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        conn.commit()

    def get_all_projects(self) -> list[Project]:
        rows = self._conn.execute(
            "SELECT Id, profileId, name, description FROM project ORDER BY name"
        )
        return [
            Project(id=r[0], profile_id=r[1], name=r[2], description=r[3]) for r in rows
        ]

    def find_project_id_by_name(self, name: str) -> int:
        row = self._conn.execute("SELECT Id FROM project WHERE name = ?", (name,)).fetchone()
        if row is None:
            raise ProjectNotFoundError(f"Project '{name}' not found")
        return row[0]

    def get_targets_with_stats(self, project_id: int) -> list[tuple[Target, int, int, int]]:
        """Return each target of a project with its image, accepted and rejected counts."""
        rows = self._conn.execute(
            """SELECT t.Id, t.name, t.active, t.ra, t.dec,
                      COUNT(ai.Id) AS image_count,
                      SUM(CASE WHEN ai.gradingStatus = 1 THEN 1 ELSE 0 END) AS accepted_count,
                      SUM(CASE WHEN ai.gradingStatus = 2 THEN 1 ELSE 0 END) AS rejected_count
               FROM target t
               LEFT JOIN acquiredimage ai ON t.Id = ai.targetId
               WHERE t.projectid = ?
               GROUP BY t.Id, t.name, t.active, t.ra, t.dec
               ORDER BY t.name""",
            (project_id,),
        )
        return [
            (
                Target(
                    id=r[0],
                    name=r[1],
                    active=bool(r[2]),
                    ra=r[3],
                    dec=r[4],
                    project_id=project_id,
                ),
                r[5],
                r[6],
                r[7],
            )
            for r in rows
        ]

    def query_images(
        self,
        status_filter: GradingStatus | None = None,
        project_filter: str | None = None,
        target_filter: str | None = None,
        date_cutoff: int | None = None,
    ) -> list[tuple[AcquiredImage, str, str]]:
        """Return matching images, newest first, with project and target names."""
        query = (
            "SELECT ai.Id, ai.projectId, ai.targetId, ai.acquireddate, ai.filtername, "
            "ai.gradingStatus, ai.metadata, ai.rejectreason, ai.profileId, "
            "p.name AS project_name, t.name AS target_name "
            "FROM acquiredimage ai "
            "JOIN project p ON ai.projectId = p.Id "
            "JOIN target t ON ai.targetId = t.Id "
            "WHERE 1=1"
        )
        params: list[Any] = []
        if status_filter is not None:
            query += " AND ai.gradingStatus = ?"
            params.append(int(status_filter))
        if project_filter is not None:
            query += " AND p.name LIKE ?"
            params.append(f"%{project_filter}%")
        if target_filter is not None:
            query += " AND t.name LIKE ?"
            params.append(f"%{target_filter}%")
        if date_cutoff is not None:
            query += " AND ai.acquireddate >= ?"
            params.append(date_cutoff)
        query += " ORDER BY ai.acquireddate DESC"

        return [
            (_image_from_row(r), r[9], r[10]) for r in self._conn.execute(query, params)
        ]

    def get_images_by_ids(self, ids: Sequence[int]) -> list[AcquiredImage]:
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        query = f"SELECT {_IMAGE_COLUMNS} FROM acquiredimage WHERE Id IN ({placeholders})"
        return [_image_from_row(r) for r in self._conn.execute(query, list(ids))]

    def update_grading_status(
        self,
        image_id: int,
        status: GradingStatus,
        reject_reason: str | None = None,
    ) -> None:
        with self.transaction() as conn:
            conn.execute(_UPDATE_STATUS, (int(status), reject_reason, image_id))

    def batch_update_grading_status(
        self, updates: Iterable[tuple[int, GradingStatus, str | None]]
    ) -> None:
        """Apply several status updates in a single transaction."""
        with self.transaction() as conn:
            conn.executemany(
                _UPDATE_STATUS,
                ((int(status), reason, image_id) for image_id, status, reason in updates),
            )

    def reset_grading_status(
        self,
        mode: str,
        date_cutoff: int,
        project_filter: str | None = None,
        target_filter: str | None = None,
    ) -> int:
        """Set matching images back to pending and return how many rows changed.

        In "automatic" mode, manual rejections are left alone.
        """
        clause, params = _reset_filters(mode, date_cutoff, project_filter, target_filter)
        query = (
            "UPDATE acquiredimage SET gradingStatus = 0, rejectreason = NULL "
            "WHERE acquireddate >= ?" + clause
        )
        with self.transaction() as conn:
            return conn.execute(query, params).rowcount

    def count_images_to_reset(
        self,
        mode: str,
        date_cutoff: int,
        project_filter: str | None = None,
        target_filter: str | None = None,
    ) -> int:
        """Count graded images that a reset with the same arguments would affect."""
        clause, params = _reset_filters(mode, date_cutoff, project_filter, target_filter)
        query = (
            "SELECT COUNT(*) FROM acquiredimage WHERE acquireddate >= ?"
            + clause
            + " AND gradingStatus != 0"
        )
        return self._conn.execute(query, params).fetchone()[0]