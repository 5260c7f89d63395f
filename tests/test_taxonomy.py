"""
Tests for class taxonomy management and the index sequence.
"""

import pytest

from labelbench import taxonomy
from labelbench.errors import ClassIndexIntegrityError, InvalidClassError, NotFoundError
from labelbench.importer import import_annotations
from labelbench.models import ProjectClass


def indices(store, project):
    return sorted(c.class_idx for c in store.list_classes(project.id))


class TestNextIndex:
    """Candidate index for an appended class."""

    def test_empty(self):
        assert taxonomy.next_class_index([]) == 0

    def test_sequential(self):
        classes = [ProjectClass(i + 1, 1, i, f"c{i}", "#FFFFFF") for i in range(3)]
        assert taxonomy.next_class_index(classes) == 3

    def test_gap_raises(self):
        classes = [ProjectClass(1, 1, 0, "a", "#FFFFFF"), ProjectClass(2, 1, 2, "b", "#FFFFFF")]
        with pytest.raises(ClassIndexIntegrityError):
            taxonomy.next_class_index(classes)

    def test_duplicate_raises(self):
        classes = [ProjectClass(1, 1, 0, "a", "#FFFFFF"), ProjectClass(2, 1, 0, "b", "#FFFFFF")]
        assert taxonomy.find_index_gap(classes) == (1, 0)
        with pytest.raises(ClassIndexIntegrityError):
            taxonomy.next_class_index(classes)


class TestClassLifecycle:
    """Create / update / delete keep indices at 0..N-1."""

    def test_create_appends(self, make_project):
        store, project = make_project()

        taxonomy.create_class(store, project.id, "cat")
        classes = taxonomy.create_class(store, project.id, "dog", "#00ff00")

        assert [(c.name, c.class_idx) for c in classes] == [("cat", 0), ("dog", 1)]
        assert classes[0].color_hex == taxonomy.DEFAULT_COLORS[0]
        assert classes[1].color_hex == "#00FF00"

    def test_create_rejects_duplicate_name(self, make_project):
        store, project = make_project()
        taxonomy.create_class(store, project.id, "cat")

        with pytest.raises(InvalidClassError):
            taxonomy.create_class(store, project.id, "CAT")

    @pytest.mark.parametrize("name", ["", "   ", "x" * 31])
    def test_create_rejects_bad_name(self, make_project, name):
        store, project = make_project()
        with pytest.raises(InvalidClassError):
            taxonomy.create_class(store, project.id, name)

    def test_create_rejects_bad_color(self, make_project):
        store, project = make_project()
        with pytest.raises(InvalidClassError):
            taxonomy.create_class(store, project.id, "cat", "red")

    def test_create_on_broken_sequence(self, make_project):
        store, project = make_project()
        store.add_class(project.id, 0, "a", "#FFFFFF")
        store.add_class(project.id, 2, "b", "#FFFFFF")

        with pytest.raises(ClassIndexIntegrityError):
            taxonomy.create_class(store, project.id, "c")

    def test_delete_reindexes(self, make_project):
        store, project = make_project()
        for name in ["a", "b", "c", "d"]:
            taxonomy.create_class(store, project.id, name)
        b = store.get_class_by_name(project.id, "b")

        remaining = taxonomy.delete_class(store, b.id)

        assert [(c.name, c.class_idx) for c in remaining] == [("a", 0), ("c", 1), ("d", 2)]
        # Persisted, not only returned
        assert [(c.name, c.class_idx) for c in store.list_classes(project.id)] == [("a", 0), ("c", 1), ("d", 2)]

    def test_delete_removes_annotations(self, make_project):
        store, project = make_project()
        classes = taxonomy.create_class(store, project.id, "a")
        image = store.list_images(project.dataset_id)[0]
        store.create_annotation(image.id, project.id, classes[0].id)

        taxonomy.delete_class(store, classes[0].id)

        assert store.list_annotations(project.id) == []

    def test_indices_stay_sequential(self, make_project):
        """Any create/delete sequence leaves indices 0..N-1."""
        store, project = make_project()
        operations = ["+a", "+b", "+c", "-b", "+d", "-a", "+e", "+f", "-f", "-c", "+g"]

        for op in operations:
            name = op[1:]
            if op[0] == "+":
                taxonomy.create_class(store, project.id, name)
            else:
                taxonomy.delete_class(store, store.get_class_by_name(project.id, name).id)
            assert indices(store, project) == list(range(len(store.list_classes(project.id))))

        assert [c.name for c in store.list_classes(project.id)] == ["d", "e", "g"]

    def test_update_keeps_index(self, make_project):
        store, project = make_project()
        taxonomy.create_class(store, project.id, "a")
        b = taxonomy.create_class(store, project.id, "b")[1]

        updated = taxonomy.update_class(store, b.id, name="bee", color_hex="#abcdef")

        assert (updated.name, updated.class_idx, updated.color_hex) == ("bee", 1, "#ABCDEF")
        with pytest.raises(InvalidClassError):
            taxonomy.update_class(store, b.id, name="A")

    def test_update_rejects_non_ascii_case_duplicate(self, make_project):
        store, project = make_project()
        taxonomy.create_class(store, project.id, "ä")
        b = taxonomy.create_class(store, project.id, "b")[1]

        with pytest.raises(InvalidClassError):
            taxonomy.update_class(store, b.id, name="Ä")

        assert [c.name for c in store.list_classes(project.id)] == ["ä", "b"]
        doc = {
            "header": {"type": "classification", "categories": ["cat"]},
            "annotations": [{"filename": "image_00.png", "label": 0}],
        }
        with store.transaction():
            assert import_annotations(store, project, doc).imported_count == 1

    def test_update_allows_own_name_in_other_case(self, make_project):
        store, project = make_project()
        a = taxonomy.create_class(store, project.id, "ä")[0]

        assert taxonomy.update_class(store, a.id, name="Ä").name == "Ä"

    def test_unknown_class(self, make_project):
        store, _ = make_project()
        with pytest.raises(NotFoundError):
            taxonomy.delete_class(store, 42)
        with pytest.raises(NotFoundError):
            taxonomy.update_class(store, 42, name="x")
