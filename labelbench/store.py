"""
ProjectStore - persistence for datasets, images, projects, classes,
annotations and roles.

Write methods never commit on their own. Callers group the writes of one
operation with `transaction()`, which commits once or rolls everything back.
"""

import os
import re
import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from datetime import datetime
from typing import Iterable, Iterator, Optional
from PIL import Image

from labelbench.db import DB_FILENAME, init_db, migrate_db, get_connection
from labelbench.errors import NotFoundError
from labelbench.models import (
    Dataset, ImageRecord, Project, ProjectType, ProjectClass,
    Annotation, NewAnnotation, Role, RoleType,
)

logger = logging.getLogger(__name__)

# Supported image extensions
IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.bmp', '.tiff', '.tif', '.webp'}


def natural_sort_key(s: str):
    """
    Key function for natural sorting of strings.
    E.g., sorts "img2.jpg" before "img10.jpg"
    """
    return [
        int(text) if text.isdigit() else text.lower()
        for text in re.split(r'(\d+)', s)
    ]


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _placeholders(count: int) -> str:
    return ", ".join("?" * count)


class ProjectStore:
    """
    Handles all database operations for a project workspace.
    """

    def __init__(self, db_path: str):
        """
        Initialize store with database path.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = get_connection(self.db_path)
        return self._conn

    def close(self):
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def commit(self):
        """Commit current transaction."""
        self.conn.commit()

    def rollback(self):
        """Discard every write since the last commit."""
        self.conn.rollback()

    @contextmanager
    def transaction(self) -> Iterator['ProjectStore']:
        """
        Run a block of store writes as one unit.

        Commits once when the block finishes and rolls back every write
        made inside it when the block raises.
        """
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        else:
            self.commit()

    # ==================== Project Operations ====================

    @classmethod
    def create_project(
        cls,
        project_dir: str,
        image_dir: str,
        name: str,
        task_type: ProjectType = ProjectType.CLASSIFICATION,
    ) -> Project:
        """
        Create a new project from an image directory.

        The images become a dataset, and every image receives a role of
        None for the new project.

        Args:
            project_dir: Directory where project files will be stored
            image_dir: Directory containing images to import
            name: Name of the project
            task_type: Task type of the project

        Returns:
            Created Project instance
        """
        project_dir = os.path.abspath(project_dir)
        image_dir = os.path.abspath(image_dir)

        os.makedirs(project_dir, exist_ok=True)
        db_path = os.path.join(project_dir, DB_FILENAME)
        init_db(db_path)

        store = cls(db_path)
        try:
            with store.transaction():
                dataset = store.create_dataset(image_dir, name=os.path.basename(image_dir) or name)
                project = store.add_project(
                    dataset_id=dataset.id,
                    name=name,
                    task_type=ProjectType(task_type),
                    root_dir=project_dir,
                    settings={"image_dir": image_dir},
                )
            return project
        finally:
            store.close()

    @classmethod
    def load_project(cls, project_dir: str) -> Project:
        """
        Load an existing project.

        Args:
            project_dir: Directory containing the project

        Returns:
            Loaded Project instance
        """
        project_dir = os.path.abspath(project_dir)
        db_path = os.path.join(project_dir, DB_FILENAME)

        if not os.path.exists(db_path):
            raise FileNotFoundError(f"No project database found at {db_path}")

        # Run any pending migrations
        migrate_db(db_path)

        store = cls(db_path)
        try:
            cursor = store.conn.execute(
                "SELECT * FROM projects ORDER BY id LIMIT 1"
            )
            row = cursor.fetchone()
            if not row:
                raise NotFoundError("No project found in database")

            return store._row_to_project(row)
        finally:
            store.close()

    def add_project(
        self,
        dataset_id: int,
        name: str,
        task_type: ProjectType,
        root_dir: str,
        settings: Optional[dict] = None,
    ) -> Project:
        """Create a project over a dataset with a None role for every image."""
        cursor = self.conn.execute(
            """
            INSERT INTO projects (dataset_id, name, task_type, root_dir, db_path, settings_json)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (dataset_id, name, int(task_type), root_dir, self.db_path,
             json.dumps(settings) if settings else None)
        )
        project_id = cursor.lastrowid

        # Roles are created eagerly so later operations only ever update
        self.conn.execute(
            """
            INSERT INTO roles (image_id, project_id, role_type)
            SELECT id, ?, ? FROM images WHERE dataset_id = ?
            """,
            (project_id, int(RoleType.NONE), dataset_id)
        )
        logger.info(f"Created project '{name}' ({task_type.wire_name}) with id {project_id}")
        return self.get_project(project_id)

    def get_project(self, project_id: int) -> Project:
        """Get project by ID."""
        cursor = self.conn.execute(
            "SELECT * FROM projects WHERE id = ?",
            (project_id,)
        )
        row = cursor.fetchone()
        if not row:
            raise NotFoundError(f"Project {project_id} not found")
        return self._row_to_project(row)

    def _row_to_project(self, row: sqlite3.Row) -> Project:
        """Convert database row to Project object."""
        return Project(
            id=row['id'],
            dataset_id=row['dataset_id'],
            name=row['name'],
            task_type=ProjectType(row['task_type']),
            root_dir=row['root_dir'],
            db_path=row['db_path'],
            created_at=_parse_timestamp(row['created_at']) or datetime.now(),
            settings_json=row['settings_json']
        )

    # ==================== Dataset / Image Operations ====================

    def create_dataset(self, image_dir: str, name: str) -> Dataset:
        """Register a dataset and all images found in a directory."""
        cursor = self.conn.execute(
            "INSERT INTO datasets (name, root_dir) VALUES (?, ?)",
            (name, os.path.abspath(image_dir))
        )
        dataset_id = cursor.lastrowid
        self._import_images(dataset_id, image_dir)
        return self.get_dataset(dataset_id)

    def get_dataset(self, dataset_id: int) -> Dataset:
        cursor = self.conn.execute("SELECT * FROM datasets WHERE id = ?", (dataset_id,))
        row = cursor.fetchone()
        if not row:
            raise NotFoundError(f"Dataset {dataset_id} not found")
        return Dataset(
            id=row['id'],
            name=row['name'],
            root_dir=row['root_dir'],
            created_at=_parse_timestamp(row['created_at']) or datetime.now(),
        )

    def _import_images(self, dataset_id: int, image_dir: str) -> None:
        """Import all images from a directory."""
        image_dir = Path(image_dir)

        image_files = []
        for ext in IMAGE_EXTENSIONS:
            image_files.extend(image_dir.glob(f"*{ext}"))
            image_files.extend(image_dir.glob(f"*{ext.upper()}"))

        image_files = sorted(set(image_files), key=lambda p: natural_sort_key(p.name))

        for img_path in image_files:
            try:
                with Image.open(img_path) as img:
                    width, height = img.size
            except OSError as e:
                logger.warning(f"Could not read image {img_path}: {e}")
                continue

            self.conn.execute(
                """
                INSERT OR IGNORE INTO images (dataset_id, name, path, width, height)
                VALUES (?, ?, ?, ?, ?)
                """,
                (dataset_id, img_path.name, str(img_path), width, height)
            )

    def list_images(self, dataset_id: int) -> list[ImageRecord]:
        """
        List all images in a dataset.

        Args:
            dataset_id: ID of the dataset

        Returns:
            List of ImageRecord objects ordered by name
        """
        cursor = self.conn.execute(
            """
            SELECT * FROM images
            WHERE dataset_id = ?
            ORDER BY name COLLATE BINARY, id
            """,
            (dataset_id,)
        )
        return [self._row_to_image(row) for row in cursor.fetchall()]

    def get_image_by_id(self, image_id: int) -> Optional[ImageRecord]:
        """Get image by its ID."""
        cursor = self.conn.execute(
            "SELECT * FROM images WHERE id = ?",
            (image_id,)
        )
        row = cursor.fetchone()
        return self._row_to_image(row) if row else None

    def get_image_by_name(self, dataset_id: int, name: str) -> Optional[ImageRecord]:
        """Get image by file name, ignoring case."""
        cursor = self.conn.execute(
            "SELECT * FROM images WHERE dataset_id = ? AND name = ?",
            (dataset_id, name)
        )
        row = cursor.fetchone()
        return self._row_to_image(row) if row else None

    def get_image_count(self, dataset_id: int) -> int:
        """Get total number of images in a dataset."""
        cursor = self.conn.execute(
            "SELECT COUNT(*) FROM images WHERE dataset_id = ?",
            (dataset_id,)
        )
        return cursor.fetchone()[0]

    def _row_to_image(self, row: sqlite3.Row) -> ImageRecord:
        """Convert database row to ImageRecord object."""
        return ImageRecord(
            id=row['id'],
            dataset_id=row['dataset_id'],
            name=row['name'],
            path=row['path'],
            width=row['width'],
            height=row['height'],
        )

    # ==================== Class Operations ====================

    def add_class(self, project_id: int, class_idx: int, name: str, color_hex: str) -> ProjectClass:
        """Insert a taxonomy entry. Index bookkeeping belongs to the caller."""
        cursor = self.conn.execute(
            """
            INSERT INTO project_classes (project_id, class_idx, name, color_hex)
            VALUES (?, ?, ?, ?)
            """,
            (project_id, class_idx, name, color_hex)
        )
        return self.get_class_by_id(cursor.lastrowid)

    def list_classes(self, project_id: int) -> list[ProjectClass]:
        """
        List all classes of a project.

        Returns:
            ProjectClass objects ordered by class_idx
        """
        cursor = self.conn.execute(
            "SELECT * FROM project_classes WHERE project_id = ? ORDER BY class_idx, id",
            (project_id,)
        )
        return [self._row_to_class(row) for row in cursor.fetchall()]

    def list_classes_by_id(self, project_id: int) -> list[ProjectClass]:
        """List classes ordered by their persisted id."""
        cursor = self.conn.execute(
            "SELECT * FROM project_classes WHERE project_id = ? ORDER BY id",
            (project_id,)
        )
        return [self._row_to_class(row) for row in cursor.fetchall()]

    def get_class_by_id(self, class_id: int) -> Optional[ProjectClass]:
        """Get class by its ID."""
        cursor = self.conn.execute(
            "SELECT * FROM project_classes WHERE id = ?",
            (class_id,)
        )
        row = cursor.fetchone()
        return self._row_to_class(row) if row else None

    def get_class_by_name(self, project_id: int, name: str) -> Optional[ProjectClass]:
        """Get class by its name, ignoring case."""
        cursor = self.conn.execute(
            "SELECT * FROM project_classes WHERE project_id = ? AND name = ?",
            (project_id, name)
        )
        row = cursor.fetchone()
        return self._row_to_class(row) if row else None

    def update_class_index(self, class_id: int, class_idx: int) -> None:
        self.conn.execute(
            "UPDATE project_classes SET class_idx = ? WHERE id = ?",
            (class_idx, class_id)
        )

    def update_class(self, class_id: int, name: str, color_hex: str) -> Optional[ProjectClass]:
        self.conn.execute(
            "UPDATE project_classes SET name = ?, color_hex = ? WHERE id = ?",
            (name, color_hex, class_id)
        )
        return self.get_class_by_id(class_id)

    def delete_class(self, class_id: int) -> None:
        self.conn.execute("DELETE FROM project_classes WHERE id = ?", (class_id,))

    def _row_to_class(self, row: sqlite3.Row) -> ProjectClass:
        """Convert database row to ProjectClass object."""
        return ProjectClass(
            id=row['id'],
            project_id=row['project_id'],
            class_idx=row['class_idx'],
            name=row['name'],
            color_hex=row['color_hex'],
        )

    # ==================== Annotation Operations ====================

    def create_annotation(
        self,
        image_id: int,
        project_id: int,
        class_id: int,
        information: Optional[str] = None,
    ) -> Annotation:
        """
        Create a single annotation.

        Args:
            image_id: ID of the image
            project_id: ID of the project
            class_id: ID of the project class
            information: Stored geometry JSON, or None

        Returns:
            Created Annotation
        """
        cursor = self.conn.execute(
            """
            INSERT INTO annotations (image_id, project_id, class_id, information)
            VALUES (?, ?, ?, ?)
            """,
            (image_id, project_id, class_id, information)
        )
        return self.get_annotation_by_id(cursor.lastrowid)

    def add_annotations(self, annotations: Iterable[NewAnnotation]) -> int:
        """Insert annotations in one batch and return how many were added."""
        rows = [
            (a.image_id, a.project_id, a.class_id, a.information)
            for a in annotations
        ]
        if rows:
            self.conn.executemany(
                """
                INSERT INTO annotations (image_id, project_id, class_id, information)
                VALUES (?, ?, ?, ?)
                """,
                rows
            )
        return len(rows)

    def get_annotation_by_id(self, annotation_id: int) -> Optional[Annotation]:
        """Get annotation by its ID."""
        cursor = self.conn.execute(
            "SELECT * FROM annotations WHERE id = ?",
            (annotation_id,)
        )
        row = cursor.fetchone()
        return self._row_to_annotation(row) if row else None

    def list_annotations(self, project_id: int) -> list[Annotation]:
        """List all annotations of a project in creation order."""
        cursor = self.conn.execute(
            "SELECT * FROM annotations WHERE project_id = ? ORDER BY id",
            (project_id,)
        )
        return [self._row_to_annotation(row) for row in cursor.fetchall()]

    def list_image_annotations(self, project_id: int, image_id: int) -> list[Annotation]:
        """List annotations of one image within a project."""
        cursor = self.conn.execute(
            "SELECT * FROM annotations WHERE project_id = ? AND image_id = ? ORDER BY id",
            (project_id, image_id)
        )
        return [self._row_to_annotation(row) for row in cursor.fetchall()]

    def annotations_by_image(self, project_id: int) -> dict[int, list[Annotation]]:
        """Group a project's annotations by image, each list in creation order."""
        grouped: dict[int, list[Annotation]] = {}
        for annotation in self.list_annotations(project_id):
            grouped.setdefault(annotation.image_id, []).append(annotation)
        return grouped

    def update_annotations_class(self, annotation_ids: list[int], class_id: int) -> int:
        if not annotation_ids:
            return 0
        cursor = self.conn.execute(
            f"UPDATE annotations SET class_id = ? WHERE id IN ({_placeholders(len(annotation_ids))})",
            (class_id, *annotation_ids)
        )
        return cursor.rowcount

    def delete_annotations(self, annotation_ids: list[int]) -> int:
        """Delete annotations by id and return how many were removed."""
        if not annotation_ids:
            return 0
        cursor = self.conn.execute(
            f"DELETE FROM annotations WHERE id IN ({_placeholders(len(annotation_ids))})",
            tuple(annotation_ids)
        )
        return cursor.rowcount

    def delete_class_annotations(self, class_id: int) -> int:
        cursor = self.conn.execute(
            "DELETE FROM annotations WHERE class_id = ?",
            (class_id,)
        )
        return cursor.rowcount

    def _row_to_annotation(self, row: sqlite3.Row) -> Annotation:
        """Convert database row to Annotation object."""
        return Annotation(
            id=row['id'],
            image_id=row['image_id'],
            project_id=row['project_id'],
            class_id=row['class_id'],
            information=row['information'],
            created_at=_parse_timestamp(row['created_at']),
        )

    # ==================== Role Operations ====================

    def list_roles(self, project_id: int) -> list[Role]:
        cursor = self.conn.execute(
            "SELECT * FROM roles WHERE project_id = ? ORDER BY image_id",
            (project_id,)
        )
        return [self._row_to_role(row) for row in cursor.fetchall()]

    def get_role(self, project_id: int, image_id: int) -> Optional[Role]:
        cursor = self.conn.execute(
            "SELECT * FROM roles WHERE project_id = ? AND image_id = ?",
            (project_id, image_id)
        )
        row = cursor.fetchone()
        return self._row_to_role(row) if row else None

    def set_role(self, project_id: int, image_id: int, role_type: RoleType) -> bool:
        """
        Set the role of an image.

        Returns:
            True when a missing role row had to be created
        """
        cursor = self.conn.execute(
            "UPDATE roles SET role_type = ? WHERE project_id = ? AND image_id = ?",
            (int(role_type), project_id, image_id)
        )
        if cursor.rowcount:
            return False

        logger.warning(f"Image {image_id} had no role in project {project_id}; creating one")
        self.conn.execute(
            "INSERT INTO roles (image_id, project_id, role_type) VALUES (?, ?, ?)",
            (image_id, project_id, int(role_type))
        )
        return True

    def set_roles(self, project_id: int, assignments: dict[int, RoleType]) -> int:
        """Apply many role changes and return how many rows were created."""
        created = 0
        for image_id, role_type in assignments.items():
            if self.set_role(project_id, image_id, role_type):
                created += 1
        return created

    def _row_to_role(self, row: sqlite3.Row) -> Role:
        return Role(
            id=row['id'],
            image_id=row['image_id'],
            project_id=row['project_id'],
            role_type=RoleType(row['role_type']),
        )
