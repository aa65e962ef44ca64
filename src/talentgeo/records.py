from __future__ import annotations

import logging
import re
import sqlite3
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from talentgeo.geo import BoundingBox, Coordinate, haversine_miles
from talentgeo.zipcode import normalize_zip

if TYPE_CHECKING:
    from talentgeo.resolver import ZipCoordinateResolver

LOG = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SpatialQueryError(RuntimeError):
    """The records store rejected or failed a spatial query."""


@dataclass(slots=True)
class ProfileRecord:
    record_id: str
    name: str | None
    zip_code: str | None
    coordinate: Coordinate | None


@dataclass(slots=True)
class CandidateRow:
    record_id: str
    distance_miles: float


@dataclass(slots=True)
class TargetStats:
    total: int
    with_points: int
    spatial_index: bool


def validate_identifier(name: str) -> str:
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ValueError(f"invalid table name: {name!r}")
    return name


def _sql_distance(
    lat1: float | None, lon1: float | None, lat2: float | None, lon2: float | None
) -> float | None:
    if None in (lat1, lon1, lat2, lon2):
        return None
    if lat1 == lat2 and lon1 == lon2:
        return 0.0
    return haversine_miles(lat1, lon1, lat2, lon2)


class RecordStore:
    """SQLite table(s) of candidate profiles, each with an optional point.

    Each target table may carry an R*Tree companion ``<target>_geo`` keyed by
    the profile rowid. Points are stored as degenerate boxes.
    """

    def __init__(self, db_path: str | Path) -> None:
        in_memory = str(db_path) == ":memory:"
        self.db_path = ":memory:" if in_memory else Path(db_path)
        # A private in-memory database lives only as long as its connection.
        self._memory_conn: sqlite3.Connection | None = self._open(":memory:") if in_memory else None

    def _open(self, path: str | Path) -> sqlite3.Connection:
        conn = sqlite3.connect(path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.create_function("distance_miles", 4, _sql_distance, deterministic=True)
        return conn

    def _connect(self) -> sqlite3.Connection:
        if self._memory_conn is not None:
            return self._memory_conn
        return self._open(self.db_path)

    def _run(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        try:
            conn = self._connect()
            try:
                rows = conn.execute(sql, params).fetchall()
                conn.commit()
            finally:
                if conn is not self._memory_conn:
                    conn.close()
        except sqlite3.Error as exc:
            raise SpatialQueryError(str(exc)) from exc
        return rows

    @staticmethod
    def rtree_supported() -> bool:
        conn = sqlite3.connect(":memory:")
        try:
            conn.execute("CREATE VIRTUAL TABLE probe USING rtree(id, a, b)")
            return True
        except sqlite3.OperationalError:
            return False
        finally:
            conn.close()

    def create_table(self, target: str, spatial_index: bool = True) -> bool:
        """Create ``target`` if missing; return whether it has a spatial index."""
        table = validate_identifier(target)
        self._run(
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                record_id TEXT NOT NULL UNIQUE,
                name TEXT,
                zip_code TEXT,
                latitude REAL,
                longitude REAL
            )
            """
        )
        self._run(f"CREATE INDEX IF NOT EXISTS {table}_lat_lon ON {table} (latitude, longitude)")
        if not spatial_index:
            return False
        try:
            self._run(
                f"""
                CREATE VIRTUAL TABLE IF NOT EXISTS {table}_geo
                USING rtree(id, min_lat, max_lat, min_lon, max_lon)
                """
            )
        except SpatialQueryError as exc:
            LOG.warning("spatial index unavailable for %s: %s", table, exc)
            return False
        return True

    def table_exists(self, target: str) -> bool:
        rows = self._run(
            "SELECT name FROM sqlite_master WHERE name = ? AND type = 'table'",
            (validate_identifier(target),),
        )
        return bool(rows)

    def has_spatial_index(self, target: str) -> bool:
        return self.table_exists(f"{validate_identifier(target)}_geo")

    def add_record(
        self,
        target: str,
        record_id: str,
        zip_code: str | None = None,
        coordinate: Coordinate | None = None,
        name: str | None = None,
    ) -> None:
        table = validate_identifier(target)
        lat = coordinate.latitude if coordinate else None
        lon = coordinate.longitude if coordinate else None
        self._run(
            f"""
            INSERT INTO {table} (record_id, name, zip_code, latitude, longitude)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(record_id)
            DO UPDATE SET name = excluded.name, zip_code = excluded.zip_code,
                          latitude = excluded.latitude, longitude = excluded.longitude
            """,
            (record_id, name, zip_code, lat, lon),
        )
        self._sync_index(table, record_id, coordinate)

    def set_coordinate(self, target: str, record_id: str, coordinate: Coordinate | None) -> None:
        table = validate_identifier(target)
        self._run(
            f"UPDATE {table} SET latitude = ?, longitude = ? WHERE record_id = ?",
            (
                coordinate.latitude if coordinate else None,
                coordinate.longitude if coordinate else None,
                record_id,
            ),
        )
        self._sync_index(table, record_id, coordinate)

    def _sync_index(self, table: str, record_id: str, coordinate: Coordinate | None) -> None:
        if not self.has_spatial_index(table):
            return
        rows = self._run(f"SELECT rowid FROM {table} WHERE record_id = ?", (record_id,))
        if not rows:
            return
        rowid = rows[0]["rowid"]
        self._run(f"DELETE FROM {table}_geo WHERE id = ?", (rowid,))
        if coordinate is not None:
            self._run(
                f"INSERT INTO {table}_geo (id, min_lat, max_lat, min_lon, max_lon) VALUES (?, ?, ?, ?, ?)",
                (
                    rowid,
                    coordinate.latitude,
                    coordinate.latitude,
                    coordinate.longitude,
                    coordinate.longitude,
                ),
            )

    def attach_coordinates(self, target: str, resolver: ZipCoordinateResolver) -> int:
        """Fill missing points from already-cached zip centroids."""
        table = validate_identifier(target)
        rows = self._run(
            f"""
            SELECT record_id, zip_code FROM {table}
            WHERE latitude IS NULL AND zip_code IS NOT NULL
            ORDER BY rowid
            """
        )
        attached = 0
        for row in rows:
            zip_code = normalize_zip(row["zip_code"])
            coordinate = resolver.cache.get(zip_code) if zip_code else None
            if isinstance(coordinate, Coordinate):
                self.set_coordinate(table, row["record_id"], coordinate)
                attached += 1
        LOG.info("attached coordinates table=%s records=%d without=%d", table, attached, len(rows) - attached)
        return attached

    def stats(self, target: str) -> TargetStats:
        table = validate_identifier(target)
        row = self._run(
            f"""
            SELECT COUNT(*) AS total,
                   COUNT(CASE WHEN latitude IS NOT NULL AND longitude IS NOT NULL THEN 1 END) AS with_points
            FROM {table}
            """
        )[0]
        return TargetStats(
            total=row["total"],
            with_points=row["with_points"],
            spatial_index=self.has_spatial_index(table),
        )

    def count_with_points(self, target: str) -> int:
        return self.stats(target).with_points

    def count_indexed(self, target: str) -> int:
        table = validate_identifier(target)
        if not self.has_spatial_index(table):
            return 0
        return self._run(f"SELECT COUNT(*) AS n FROM {table}_geo")[0]["n"]

    def query_spatial_index(
        self, target: str, center: Coordinate, window: BoundingBox, radius_miles: float
    ) -> list[CandidateRow]:
        table = validate_identifier(target)
        rows = self._run(
            f"""
            SELECT p.record_id,
                   distance_miles(?, ?, p.latitude, p.longitude) AS distance
            FROM {table}_geo AS g
            JOIN {table} AS p ON p.rowid = g.id
            WHERE g.max_lat >= ? AND g.min_lat <= ?
              AND g.max_lon >= ? AND g.min_lon <= ?
              AND distance_miles(?, ?, p.latitude, p.longitude) <= ?
            ORDER BY p.rowid
            """,
            (
                center.latitude,
                center.longitude,
                window.min_lat,
                window.max_lat,
                window.min_lon,
                window.max_lon,
                center.latitude,
                center.longitude,
                radius_miles,
            ),
        )
        return [CandidateRow(row["record_id"], row["distance"]) for row in rows]

    def query_bounding_box(
        self, target: str, center: Coordinate, box: BoundingBox, radius_miles: float
    ) -> list[CandidateRow]:
        table = validate_identifier(target)
        rows = self._run(
            f"""
            SELECT record_id, distance
            FROM (
                SELECT rowid AS rid, record_id,
                       distance_miles(?, ?, latitude, longitude) AS distance
                FROM {table}
                WHERE latitude BETWEEN ? AND ?
                  AND longitude BETWEEN ? AND ?
            )
            WHERE distance <= ?
            ORDER BY rid
            """,
            (
                center.latitude,
                center.longitude,
                box.min_lat,
                box.max_lat,
                box.min_lon,
                box.max_lon,
                radius_miles,
            ),
        )
        return [CandidateRow(row["record_id"], row["distance"]) for row in rows]

    def iter_records(self, target: str) -> Iterator[ProfileRecord]:
        table = validate_identifier(target)
        rows = self._run(
            f"SELECT record_id, name, zip_code, latitude, longitude FROM {table} ORDER BY rowid"
        )
        for row in rows:
            coordinate = None
            if row["latitude"] is not None and row["longitude"] is not None:
                coordinate = Coordinate(row["latitude"], row["longitude"])
            yield ProfileRecord(
                record_id=row["record_id"],
                name=row["name"],
                zip_code=row["zip_code"],
                coordinate=coordinate,
            )

    def close(self) -> None:
        if self._memory_conn is not None:
            self._memory_conn.close()
            self._memory_conn = None
