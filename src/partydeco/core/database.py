"""SQLite persistence for projects, iterations, and their images."""

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    createdAt TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS iterations (
    id TEXT PRIMARY KEY,
    projectId TEXT NOT NULL,
    theme TEXT NOT NULL,
    details TEXT,
    decorationTypes TEXT NOT NULL,
    imageCount INTEGER NOT NULL,
    size TEXT NOT NULL,
    aspectRatio TEXT,
    prompt TEXT NOT NULL,
    createdAt TEXT NOT NULL,
    FOREIGN KEY (projectId) REFERENCES projects (id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS images (
    id TEXT PRIMARY KEY,
    iterationId TEXT NOT NULL,
    data TEXT NOT NULL,
    type TEXT NOT NULL CHECK(type IN ('generated', 'reference')),
    decorationType TEXT,
    position INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (iterationId) REFERENCES iterations (id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_iterations_project ON iterations(projectId, createdAt DESC);
CREATE INDEX IF NOT EXISTS idx_images_iteration ON images(iterationId, position);
"""


class NotFoundError(Exception):
    """Raised when a project or iteration does not exist."""

    pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PartyStore:
    """Manage the party project database using SQLite.

    Each public method opens a short-lived connection, runs inside a single
    transaction, and closes the connection again.  Foreign keys are enabled
    on every connection so deleting a project removes its iterations and
    images.
    """

    def __init__(self, db_path: Path):
        """Initialize the store and create the schema if needed.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_db()
        logger.info(f"Initialized party database at {self.db_path}")

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _initialize_db(self) -> None:
        """Create database schema if it doesn't exist."""
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    # ------------------------------------------------------------------
    # Projects.
    # ------------------------------------------------------------------

    def list_projects(self) -> list[dict]:
        """Return all projects, newest first, with their iteration counts."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT p.id, p.name, p.createdAt, COUNT(i.id) AS iterationCount
                FROM projects p
                LEFT JOIN iterations i ON i.projectId = p.id
                GROUP BY p.id
                ORDER BY p.createdAt DESC, p.rowid DESC
                """
            ).fetchall()
        return [dict(row) for row in rows]

    def create_project(self, name: str) -> dict:
        """Create a project.

        Args:
            name: Already validated project name

        Returns:
            The new project with an empty ``iterations`` list
        """
        project = {"id": str(uuid.uuid4()), "name": name, "createdAt": _now()}
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO projects (id, name, createdAt) VALUES (?, ?, ?)",
                (project["id"], project["name"], project["createdAt"]),
            )
        logger.info(f"Created project {project['id']} ({name!r})")
        return {**project, "iterations": []}

    def get_project(self, project_id: str) -> dict:
        """Return a project with all iterations and their images.

        Iterations are ordered newest first.  Generated images keep the order
        they were saved in.

        Raises:
            NotFoundError: If the project does not exist
        """
        with self._connect() as conn:
            project = conn.execute(
                "SELECT id, name, createdAt FROM projects WHERE id = ?", (project_id,)
            ).fetchone()
            if project is None:
                raise NotFoundError("Project not found")

            iterations = conn.execute(
                "SELECT * FROM iterations WHERE projectId = ? ORDER BY createdAt DESC, rowid DESC",
                (project_id,),
            ).fetchall()

            full_iterations = []
            for iteration in iterations:
                images = conn.execute(
                    """
                    SELECT data, type, decorationType FROM images
                    WHERE iterationId = ? ORDER BY position
                    """,
                    (iteration["id"],),
                ).fetchall()
                generated = [img for img in images if img["type"] == "generated"]
                full_iterations.append(
                    {
                        **dict(iteration),
                        "decorationTypes": json.loads(iteration["decorationTypes"]),
                        "images": [img["data"] for img in generated],
                        "imageDecorationTypes": [img["decorationType"] for img in generated],
                        "referenceImages": [
                            img["data"] for img in images if img["type"] == "reference"
                        ],
                    }
                )

        return {**dict(project), "iterations": full_iterations}

    def rename_project(self, project_id: str, name: str) -> dict:
        """Rename a project.

        Raises:
            NotFoundError: If the project does not exist
        """
        with self._connect() as conn:
            cursor = conn.execute("UPDATE projects SET name = ? WHERE id = ?", (name, project_id))
            if cursor.rowcount == 0:
                raise NotFoundError("Project not found")
            row = conn.execute(
                "SELECT id, name, createdAt FROM projects WHERE id = ?", (project_id,)
            ).fetchone()
        logger.info(f"Renamed project {project_id} to {name!r}")
        return dict(row)

    def delete_project(self, project_id: str) -> None:
        """Delete a project together with its iterations and images.

        Raises:
            NotFoundError: If the project does not exist
        """
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
            if cursor.rowcount == 0:
                raise NotFoundError("Project not found")
        logger.info(f"Deleted project {project_id}")

    # ------------------------------------------------------------------
    # Iterations.
    # ------------------------------------------------------------------

    def create_iteration(
        self,
        project_id: str,
        *,
        theme: str,
        details: str | None,
        decoration_types: list[str],
        image_count: int,
        size: str,
        aspect_ratio: str | None,
        prompt: str,
        images: list[str],
        image_decoration_types: list[str | None] | None = None,
        reference_images: list[str] | None = None,
    ) -> str:
        """Store one generation run and its images in a single transaction.

        ``image_decoration_types[i]`` labels ``images[i]``; missing labels
        are stored as NULL.

        Returns:
            The new iteration id

        Raises:
            NotFoundError: If the project does not exist
        """
        iteration_id = str(uuid.uuid4())
        labels = image_decoration_types or []

        with self._connect() as conn:
            exists = conn.execute("SELECT 1 FROM projects WHERE id = ?", (project_id,)).fetchone()
            if exists is None:
                raise NotFoundError("Project not found")

            conn.execute(
                """
                INSERT INTO iterations (
                    id, projectId, theme, details, decorationTypes, imageCount,
                    size, aspectRatio, prompt, createdAt
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    iteration_id,
                    project_id,
                    theme,
                    details,
                    json.dumps(decoration_types),
                    image_count,
                    size,
                    aspect_ratio,
                    prompt,
                    _now(),
                ),
            )

            rows = [
                (
                    str(uuid.uuid4()),
                    iteration_id,
                    data,
                    "generated",
                    labels[position] if position < len(labels) else None,
                    position,
                )
                for position, data in enumerate(images)
            ]
            rows += [
                (str(uuid.uuid4()), iteration_id, data, "reference", None, position)
                for position, data in enumerate(reference_images or [])
            ]
            conn.executemany(
                """
                INSERT INTO images (id, iterationId, data, type, decorationType, position)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                rows,
            )

        logger.info(
            f"Saved iteration {iteration_id} for project {project_id} with {len(images)} image(s)"
        )
        return iteration_id

    def delete_iteration(self, project_id: str, iteration_id: str) -> None:
        """Delete one iteration of a project and its images.

        Raises:
            NotFoundError: If no such iteration belongs to the project
        """
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM iterations WHERE id = ? AND projectId = ?",
                (iteration_id, project_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Iteration not found")
        logger.info(f"Deleted iteration {iteration_id} from project {project_id}")
