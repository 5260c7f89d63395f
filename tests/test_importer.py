"""
Tests for annotation import and category reconciliation.
"""

import json
import threading
import pytest

from labelbench.document import parse_document
from labelbench.errors import ImportDocumentError, OperationCancelled, TaskTypeMismatchError
from labelbench.importer import (
    ImportResult,
    _decode_item,
    import_annotations,
    import_annotations_file,
    reconcile_categories,
)
from labelbench.models import ProjectType, RoleType
from labelbench.taxonomy import is_sequential


def document(task_type, categories, items):
    return {
        "header": {
            "version": "1.0.0",
            "type": task_type.wire_name,
            "creator": "tests",
            "categories": categories,
            "description": "",
        },
        "annotations": items,
    }


def role_of(store, project, name):
    image = store.get_image_by_name(project.dataset_id, name)
    return store.get_role(project.id, image.id).role_type


class TestParseDocument:
    """Document parsing and validation."""

    def test_property_names_ignore_case(self):
        doc = parse_document({
            "Header": {"Type": "classification", "Categories": ["a"]},
            "Annotations": [{"FileName": "x.png", "Label": 0, "Role": 1}],
        })
        assert doc.header.type == "classification"
        assert doc.annotations[0].filename == "x.png"
        assert doc.annotations[0].role == 1

    def test_role_defaults_to_train(self):
        doc = parse_document({"header": {"type": "classification"}, "annotations": [{"filename": "x.png", "label": 0}]})
        assert doc.annotations[0].role == 0

    @pytest.mark.parametrize("source", ["{not json", "[]", '{"annotations": [{"label": 1}]}'])
    def test_malformed(self, source):
        with pytest.raises(ImportDocumentError):
            parse_document(source)


class TestImportClassification:
    """Classification imports."""

    def test_single_item(self, make_project):
        """Label 1 resolves to the second category and role 0 sets Train."""
        store, project = make_project()
        doc = document(ProjectType.CLASSIFICATION, ["cat", "dog"], [
            {"filename": "image_00.png", "label": 1, "role": 0},
        ])

        with store.transaction():
            result = import_annotations(store, project, doc)

        dog = store.get_class_by_name(project.id, "dog")
        annotations = store.list_annotations(project.id)
        assert len(annotations) == 1
        assert annotations[0].class_id == dog.id
        assert annotations[0].information is None
        assert role_of(store, project, "image_00.png") == RoleType.TRAIN
        assert (result.imported_count, result.skipped_count, result.failed_count) == (1, 0, 0)

    def test_every_category_is_mapped(self, make_project):
        store, project = make_project()
        categories = ["a", "b", "c", "d"]

        result = import_annotations(store, project, document(
            ProjectType.CLASSIFICATION, categories, [{"filename": "image_00.png", "label": 3}]
        ))

        assert sorted(result.category_map) == [0, 1, 2, 3]
        for i, name in enumerate(categories):
            assert store.get_class_by_id(result.category_map[i]).name == name

    def test_filename_ignores_case(self, make_project):
        store, project = make_project()

        result = import_annotations(store, project, document(
            ProjectType.CLASSIFICATION, ["a"], [{"filename": "IMAGE_01.PNG", "label": 0}]
        ))

        assert result.imported_count == 1

    def test_per_item_failures(self, make_project):
        """Bad items are counted, the rest are imported."""
        store, project = make_project()
        doc = document(ProjectType.CLASSIFICATION, ["cat", "dog"], [
            {"filename": "image_00.png", "label": 0, "role": 2},
            {"filename": "missing.png", "label": 0},
            {"filename": "image_01.png", "label": 5},
            {"filename": "image_02.png", "label": "dog"},
            {"filename": "image_03.png", "label": 1, "role": 3},
            {"filename": "image_04.png", "label": 1, "role": 9},
        ])

        result = import_annotations(store, project, doc)

        assert result.imported_count == 3
        assert result.skipped_count == 2
        assert result.failed_count == 1
        assert result.failed_items == ["missing.png"]
        assert any("missing.png" in m for m in result.messages)
        assert role_of(store, project, "image_00.png") == RoleType.TEST
        # Role values outside 0-2 leave the role untouched
        assert role_of(store, project, "image_03.png") == RoleType.NONE
        assert role_of(store, project, "image_04.png") == RoleType.NONE
        assert role_of(store, project, "image_01.png") == RoleType.TRAIN

    def test_anomaly_labels(self, make_project):
        store, project = make_project(ProjectType.ANOMALY_DETECTION)
        doc = document(ProjectType.ANOMALY_DETECTION, ["good", "defect"], [
            {"filename": "image_00.png", "label": 0},
            {"filename": "image_01.png", "label": 1},
            {"filename": "image_02.png", "label": 2},
        ])

        result = import_annotations(store, project, doc)

        assert (result.imported_count, result.skipped_count) == (2, 1)


class TestImportShapes:
    """Detection and segmentation imports."""

    def test_detection(self, make_project):
        store, project = make_project(ProjectType.OBJECT_DETECTION)
        doc = document(ProjectType.OBJECT_DETECTION, ["car"], [
            {"filename": "image_00.png", "label": [[0, 10, 10, 50, 50]]},
        ])

        import_annotations(store, project, doc)

        annotation = store.list_annotations(project.id)[0]
        assert json.loads(annotation.information) == [[10, 10], [50, 50]]

    def test_bad_shape_entries_are_dropped_individually(self, make_project):
        store, project = make_project(ProjectType.OBJECT_DETECTION)
        doc = document(ProjectType.OBJECT_DETECTION, ["car", "bus"], [
            {"filename": "image_00.png", "label": [[0, 10, 10, 50, 50], [1, 50, 50, 10, 10], "x", [1, 1, 1, 2, 2]]},
            {"filename": "image_01.png", "label": 7},
        ])

        result = import_annotations(store, project, doc)

        assert result.annotation_count == 2
        assert (result.imported_count, result.skipped_count) == (1, 1)

    def test_segmentation(self, make_project):
        store, project = make_project(ProjectType.SEGMENTATION)
        doc = document(ProjectType.SEGMENTATION, ["blob"], [
            {"filename": "image_00.png", "label": [[0, 1, 1, 2, 2, 3, 1]]},
            {"filename": "image_01.png", "label": [[0, 1, 1]]},
        ])

        result = import_annotations(store, project, doc)

        assert result.imported_count == 1
        assert result.skipped_count == 1
        annotations = store.list_annotations(project.id)
        assert len(annotations) == 1
        assert json.loads(annotations[0].information) == [[[1, 1], [2, 2], [3, 1]]]


class TestDocumentGates:
    """Whole-document problems abort before anything is written."""

    def test_task_type_mismatch(self, make_project):
        store, project = make_project(ProjectType.CLASSIFICATION)
        doc = document(ProjectType.OBJECT_DETECTION, ["car"], [
            {"filename": "image_00.png", "label": [[0, 1, 1, 5, 5]]},
        ])

        with pytest.raises(TaskTypeMismatchError):
            import_annotations(store, project, doc)
        assert store.list_classes(project.id) == []

    @pytest.mark.parametrize("categories", [[], ["a", "A"], ["a", ""], ["x" * 31]])
    def test_bad_categories(self, make_project, categories):
        store, project = make_project()
        doc = document(ProjectType.CLASSIFICATION, categories, [{"filename": "image_00.png", "label": 0}])

        with pytest.raises(ImportDocumentError):
            import_annotations(store, project, doc)
        assert store.list_classes(project.id) == []

    def test_no_annotations(self, make_project):
        store, project = make_project()
        with pytest.raises(ImportDocumentError):
            import_annotations(store, project, document(ProjectType.CLASSIFICATION, ["a"], []))

    def test_missing_type(self, make_project):
        store, project = make_project()
        doc = {"header": {"categories": ["a"]}, "annotations": [{"filename": "image_00.png", "label": 0}]}
        with pytest.raises(ImportDocumentError):
            import_annotations(store, project, doc)

    def test_cancel_rolls_back(self, make_project):
        store, project = make_project()
        cancel = threading.Event()
        cancel.set()
        doc = document(ProjectType.CLASSIFICATION, ["a"], [{"filename": "image_00.png", "label": 0}])

        with pytest.raises(OperationCancelled):
            with store.transaction():
                import_annotations(store, project, doc, cancel=cancel)

        assert store.list_classes(project.id) == []
        assert store.list_annotations(project.id) == []


class TestReconcileCategories:
    """Category lists are merged into the taxonomy keeping indices 0..N-1."""

    def test_reuse_ignoring_case(self, make_project):
        store, project = make_project()
        cat = store.add_class(project.id, 0, "Cat", "#FF0000")

        mapping = reconcile_categories(store, project, ["cat"])

        assert mapping == {0: cat.id}
        assert len(store.list_classes(project.id)) == 1

    def test_existing_classes_are_swapped(self, make_project):
        store, project = make_project()
        x = store.add_class(project.id, 0, "x", "#FF0000")
        y = store.add_class(project.id, 1, "y", "#00FF00")
        result = ImportResult()

        mapping = reconcile_categories(store, project, ["y", "x"], result)

        assert mapping == {0: y.id, 1: x.id}
        assert [(c.name, c.class_idx) for c in store.list_classes(project.id)] == [("y", 0), ("x", 1)]
        assert any("Updated class 'y' index from 1 to 0" in m for m in result.messages)

    def test_conflicting_index(self, make_project):
        """A new name whose index is taken goes to the lowest free index."""
        store, project = make_project()
        store.add_class(project.id, 0, "a", "#FF0000")
        result = ImportResult()

        mapping = reconcile_categories(store, project, ["b", "a"], result)

        assert any("Index 0 already used" in m for m in result.messages)
        classes = store.list_classes(project.id)
        assert is_sequential(classes)
        assert [(c.name, c.class_idx) for c in classes] == [("b", 0), ("a", 1)]
        assert store.get_class_by_id(mapping[0]).name == "b"
        assert store.get_class_by_id(mapping[1]).name == "a"

    def test_extra_existing_classes_keep_sequence(self, make_project):
        store, project = make_project()
        for i, name in enumerate(["p", "q", "r"]):
            store.add_class(project.id, i, name, "#FFFFFF")

        mapping = reconcile_categories(store, project, ["r", "new", "p"])

        classes = store.list_classes(project.id)
        assert is_sequential(classes)
        assert len(classes) == 4
        assert sorted(mapping) == [0, 1, 2]
        assert store.get_class_by_id(mapping[0]).class_idx == 0
        assert store.get_class_by_id(mapping[2]).class_idx == 2


class TestDecodeItem:
    def test_unmapped_index_is_reported(self, make_project):
        store, project = make_project(ProjectType.OBJECT_DETECTION)
        cls = store.add_class(project.id, 0, "car", "#FFFFFF")
        image = store.get_image_by_name(project.dataset_id, "image_00.png")
        result = ImportResult()

        annotations = _decode_item(
            project, image, [[0, 1, 1, 5, 5], [1, 1, 1, 5, 5]], {0: cls.id}, 2, result
        )

        assert [a.class_id for a in annotations] == [cls.id]
        assert result.messages == ["Skipped annotation for 'image_00.png': class index 1 has no class"]


class TestImportFile:
    def test_reads_json_file(self, make_project, tmp_path):
        store, project = make_project()
        path = tmp_path / "doc.json"
        path.write_text(json.dumps(document(
            ProjectType.CLASSIFICATION, ["a"], [{"filename": "image_00.png", "label": 0}]
        )))

        result = import_annotations_file(store, project, path)

        assert result.imported_count == 1

    def test_missing_file(self, make_project, tmp_path):
        store, project = make_project()
        with pytest.raises(ImportDocumentError):
            import_annotations_file(store, project, tmp_path / "missing.json")
