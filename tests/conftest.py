"""
Shared fixtures: temporary project workspaces over small generated images.
"""

import os
import tempfile
import pytest
from PIL import Image

from labelbench.models import ProjectType
from labelbench.store import ProjectStore


@pytest.fixture
def temp_project_dir():
    """Create a temporary directory for project files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def temp_image_dir(temp_project_dir):
    """Create a temporary directory with test images image_00.png .. image_04.png."""
    img_dir = os.path.join(temp_project_dir, "images")
    os.makedirs(img_dir)

    for i in range(5):
        img = Image.new('RGB', (100 + i * 10, 100 + i * 10), color='red')
        img.save(os.path.join(img_dir, f"image_{i:02d}.png"))

    yield img_dir


@pytest.fixture
def make_project(temp_project_dir, temp_image_dir):
    """
    Factory creating a project over the test images.

    Returns (store, project); stores are closed after the test.
    """
    stores = []

    def _make(task_type=ProjectType.CLASSIFICATION, name="Test Project", image_dir=None):
        project_dir = os.path.join(temp_project_dir, f"project_{len(stores)}")
        project = ProjectStore.create_project(
            project_dir=project_dir,
            image_dir=image_dir or temp_image_dir,
            name=name,
            task_type=task_type,
        )
        store = ProjectStore(project.db_path)
        stores.append(store)
        return store, project

    yield _make

    for store in stores:
        store.close()


@pytest.fixture
def image_dir_factory(temp_project_dir):
    """Factory creating a directory with `count` small images img_000.png ..."""
    def _make(count: int, name: str = "many") -> str:
        img_dir = os.path.join(temp_project_dir, name)
        os.makedirs(img_dir)
        for i in range(count):
            Image.new('RGB', (64, 48), color='blue').save(os.path.join(img_dir, f"img_{i:03d}.png"))
        return img_dir

    return _make
