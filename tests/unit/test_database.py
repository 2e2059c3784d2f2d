"""Tests for the SQLite project store."""

import sqlite3
import uuid

import pytest

from partydeco.core.database import NotFoundError, PartyStore


def _save_iteration(store: PartyStore, project_id: str, **overrides) -> str:
    fields = {
        "theme": "Space adventure",
        "details": "silver stars",
        "decoration_types": ["Cake topper", "Welcome banner"],
        "image_count": 2,
        "size": "1024x1024",
        "aspect_ratio": "1:1",
        "prompt": "Space adventure party decorations",
        "images": ["data:image/png;base64,AAA", "data:image/png;base64,BBB"],
        "image_decoration_types": ["Cake topper", "Welcome banner"],
        "reference_images": ["data:image/png;base64,REF"],
    }
    fields.update(overrides)
    return store.create_iteration(project_id, **fields)


def _count(store: PartyStore, table: str) -> int:
    with sqlite3.connect(store.db_path) as conn:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


class TestPartyStoreInit:
    """Tests for PartyStore initialization."""

    def test_creates_database_file(self, temp_dir):
        """Opening a store should create the file and its parents."""
        db_path = temp_dir / "nested" / "party.db"
        PartyStore(db_path)
        assert db_path.exists()

    def test_reopening_keeps_data(self, store):
        """Data should survive reopening the same file."""
        project = store.create_project("Keep me")
        reopened = PartyStore(store.db_path)
        assert reopened.get_project(project["id"])["name"] == "Keep me"


class TestProjects:
    """Tests for project CRUD."""

    def test_create_project(self, store):
        """A new project should get a UUID4 id and no iterations."""
        project = store.create_project("Birthday")
        assert uuid.UUID(project["id"]).version == 4
        assert project["name"] == "Birthday"
        assert project["iterations"] == []
        assert project["createdAt"]

    def test_list_projects_newest_first_with_counts(self, store):
        """Projects should list newest first with iteration counts."""
        older = store.create_project("Older")
        newer = store.create_project("Newer")
        _save_iteration(store, older["id"])
        _save_iteration(store, older["id"])

        projects = store.list_projects()
        assert [p["id"] for p in projects] == [newer["id"], older["id"]]
        assert projects[0]["iterationCount"] == 0
        assert projects[1]["iterationCount"] == 2

    def test_get_missing_project_raises(self, store):
        """Fetching an unknown project should raise NotFoundError."""
        with pytest.raises(NotFoundError, match="Project not found"):
            store.get_project(str(uuid.uuid4()))

    def test_rename_project(self, store):
        """Renaming should update the name and return the project."""
        project = store.create_project("Old name")
        renamed = store.rename_project(project["id"], "New name")
        assert renamed == {"id": project["id"], "name": "New name", "createdAt": project["createdAt"]}

    def test_rename_missing_project_raises(self, store):
        """Renaming an unknown project should raise NotFoundError."""
        with pytest.raises(NotFoundError):
            store.rename_project(str(uuid.uuid4()), "Nope")

    def test_delete_missing_project_raises(self, store):
        """Deleting an unknown project should raise NotFoundError."""
        with pytest.raises(NotFoundError):
            store.delete_project(str(uuid.uuid4()))


class TestIterations:
    """Tests for iteration persistence."""

    def test_round_trip(self, store):
        """Test that a saved iteration is returned with the same data."""
        project = store.create_project("Space party")
        iteration_id = _save_iteration(store, project["id"])

        fetched = store.get_project(project["id"])
        assert len(fetched["iterations"]) == 1
        iteration = fetched["iterations"][0]
        assert iteration["id"] == iteration_id
        assert iteration["projectId"] == project["id"]
        assert iteration["theme"] == "Space adventure"
        assert iteration["details"] == "silver stars"
        assert iteration["decorationTypes"] == ["Cake topper", "Welcome banner"]
        assert iteration["imageCount"] == 2
        assert iteration["size"] == "1024x1024"
        assert iteration["aspectRatio"] == "1:1"
        assert iteration["images"] == ["data:image/png;base64,AAA", "data:image/png;base64,BBB"]
        assert iteration["imageDecorationTypes"] == ["Cake topper", "Welcome banner"]
        assert iteration["referenceImages"] == ["data:image/png;base64,REF"]

    def test_image_order_is_preserved(self, store):
        """Images should come back in the order they were saved."""
        project = store.create_project("Order")
        images = [f"data:image/png;base64,{c}" for c in "ZYXWV"]
        _save_iteration(store, project["id"], images=images, image_decoration_types=None)

        iteration = store.get_project(project["id"])["iterations"][0]
        assert iteration["images"] == images
        assert iteration["imageDecorationTypes"] == [None] * 5

    def test_short_label_list_pads_with_none(self, store):
        """Missing per-image labels should come back as None."""
        project = store.create_project("Labels")
        _save_iteration(store, project["id"], image_decoration_types=["Cake topper"])

        iteration = store.get_project(project["id"])["iterations"][0]
        assert iteration["imageDecorationTypes"] == ["Cake topper", None]

    def test_iterations_newest_first(self, store):
        """Iterations should be returned newest first."""
        project = store.create_project("Many")
        first = _save_iteration(store, project["id"], theme="First")
        second = _save_iteration(store, project["id"], theme="Second")

        iterations = store.get_project(project["id"])["iterations"]
        assert [i["id"] for i in iterations] == [second, first]

    def test_iteration_for_missing_project_raises(self, store):
        """Saving to an unknown project should raise NotFoundError."""
        with pytest.raises(NotFoundError, match="Project not found"):
            _save_iteration(store, str(uuid.uuid4()))
        assert _count(store, "iterations") == 0

    def test_delete_iteration_removes_images(self, store):
        """Deleting an iteration should remove only its images."""
        project = store.create_project("Delete one")
        keep = _save_iteration(store, project["id"])
        drop = _save_iteration(store, project["id"])

        store.delete_iteration(project["id"], drop)

        iterations = store.get_project(project["id"])["iterations"]
        assert [i["id"] for i in iterations] == [keep]
        assert _count(store, "images") == 3

    def test_delete_iteration_of_other_project_raises(self, store):
        """An iteration cannot be deleted through another project."""
        owner = store.create_project("Owner")
        other = store.create_project("Other")
        iteration_id = _save_iteration(store, owner["id"])

        with pytest.raises(NotFoundError, match="Iteration not found"):
            store.delete_iteration(other["id"], iteration_id)
        assert len(store.get_project(owner["id"])["iterations"]) == 1


class TestCascade:
    """Tests for cascading deletes."""

    def test_delete_project_removes_iterations_and_images(self, store):
        """Deleting a project should cascade to its iterations and images."""
        project = store.create_project("Cascade")
        survivor = store.create_project("Survivor")
        _save_iteration(store, project["id"])
        _save_iteration(store, project["id"])
        _save_iteration(store, survivor["id"])

        store.delete_project(project["id"])

        assert _count(store, "projects") == 1
        assert _count(store, "iterations") == 1
        assert _count(store, "images") == 3
        with pytest.raises(NotFoundError):
            store.get_project(project["id"])
