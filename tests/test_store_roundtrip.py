"""
Tests for ProjectStore CRUD operations.
"""

import os
import pytest

from labelbench.errors import NotFoundError
from labelbench.models import NewAnnotation, ProjectType, RoleType
from labelbench.store import ProjectStore


class TestProjectStore:
    """Tests for ProjectStore operations."""

    def test_create_project(self, temp_project_dir, temp_image_dir):
        """Test creating a new project."""
        project = ProjectStore.create_project(
            project_dir=os.path.join(temp_project_dir, "project"),
            image_dir=temp_image_dir,
            name="Test Project",
            task_type=ProjectType.OBJECT_DETECTION,
        )

        assert project.id == 1
        assert project.name == "Test Project"
        assert project.task_type == ProjectType.OBJECT_DETECTION
        assert os.path.exists(project.db_path)

    def test_load_project(self, make_project):
        """Test loading an existing project."""
        _, project = make_project(ProjectType.SEGMENTATION)

        loaded = ProjectStore.load_project(project.root_dir)

        assert loaded.name == "Test Project"
        assert loaded.task_type == ProjectType.SEGMENTATION
        assert loaded.settings["image_dir"].endswith("images")

    def test_schema_tables(self, make_project):
        """The database holds the project tables and nothing else."""
        store, _ = make_project()

        rows = store.conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
        ).fetchall()

        assert sorted(row[0] for row in rows) == [
            "annotations", "datasets", "images", "project_classes", "projects", "roles", "schema_version",
        ]

    def test_load_missing_project(self, temp_project_dir):
        """Loading a directory without a database fails."""
        with pytest.raises(FileNotFoundError):
            ProjectStore.load_project(temp_project_dir)

    def test_get_unknown_project(self, make_project):
        store, _ = make_project()
        with pytest.raises(NotFoundError):
            store.get_project(999)

    def test_list_images(self, make_project):
        """Test listing images of the project's dataset."""
        store, project = make_project()

        images = store.list_images(project.dataset_id)

        assert [image.name for image in images] == [f"image_{i:02d}.png" for i in range(5)]
        assert (images[2].width, images[2].height) == (120, 120)

    def test_get_image_by_name_ignores_case(self, make_project):
        store, project = make_project()

        image = store.get_image_by_name(project.dataset_id, "IMAGE_03.PNG")

        assert image is not None
        assert image.name == "image_03.png"
        assert store.get_image_by_name(project.dataset_id, "missing.png") is None

    def test_roles_created_eagerly(self, make_project):
        """Every image gets a None role when the project is created."""
        store, project = make_project()

        roles = store.list_roles(project.id)

        assert len(roles) == 5
        assert all(role.role_type == RoleType.NONE for role in roles)

    def test_set_role_creates_missing_row(self, make_project):
        store, project = make_project()
        image = store.list_images(project.dataset_id)[0]
        store.conn.execute("DELETE FROM roles WHERE image_id = ?", (image.id,))

        created = store.set_role(project.id, image.id, RoleType.TEST)

        assert created is True
        assert store.get_role(project.id, image.id).role_type == RoleType.TEST
        assert store.set_role(project.id, image.id, RoleType.TRAIN) is False

    def test_classes(self, make_project):
        """Test creating and listing classes."""
        store, project = make_project()

        dog = store.add_class(project.id, 1, "dog", "#00FF00")
        cat = store.add_class(project.id, 0, "cat", "#FF0000")

        assert [c.name for c in store.list_classes(project.id)] == ["cat", "dog"]
        assert [c.name for c in store.list_classes_by_id(project.id)] == ["dog", "cat"]
        assert store.get_class_by_name(project.id, "CAT").id == cat.id

        store.update_class_index(dog.id, 5)
        assert store.get_class_by_id(dog.id).class_idx == 5

    def test_annotation_batch(self, make_project):
        """Annotations added in a batch come back in creation order."""
        store, project = make_project(ProjectType.OBJECT_DETECTION)
        cls = store.add_class(project.id, 0, "car", "#FF0000")
        images = store.list_images(project.dataset_id)

        added = store.add_annotations([
            NewAnnotation(images[1].id, project.id, cls.id, "[[1,2],[3,4]]"),
            NewAnnotation(images[0].id, project.id, cls.id, "[[5,6],[7,8]]"),
            NewAnnotation(images[1].id, project.id, cls.id, None),
        ])

        assert added == 3
        grouped = store.annotations_by_image(project.id)
        assert [a.information for a in grouped[images[1].id]] == ["[[1,2],[3,4]]", None]
        assert grouped[images[0].id][0].points == [(5, 6), (7, 8)]

    def test_delete_class_cascades(self, make_project):
        """Deleting a class removes its annotations."""
        store, project = make_project()
        cls = store.add_class(project.id, 0, "cat", "#FF0000")
        image = store.list_images(project.dataset_id)[0]
        store.create_annotation(image.id, project.id, cls.id)

        store.delete_class(cls.id)

        assert store.list_annotations(project.id) == []


class TestTransactions:
    """Writes are committed once per transaction or discarded together."""

    def test_commit(self, make_project):
        store, project = make_project()

        with store.transaction():
            store.add_class(project.id, 0, "cat", "#FF0000")

        reopened = ProjectStore(project.db_path)
        try:
            assert [c.name for c in reopened.list_classes(project.id)] == ["cat"]
        finally:
            reopened.close()

    def test_rollback_on_error(self, make_project):
        store, project = make_project()

        with pytest.raises(RuntimeError):
            with store.transaction():
                store.add_class(project.id, 0, "cat", "#FF0000")
                raise RuntimeError("boom")

        assert store.list_classes(project.id) == []
