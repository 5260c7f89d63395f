"""
Exceptions raised by the LabelBench core.
"""


class LabelBenchError(Exception):
    """Base class for all core errors."""


class NotFoundError(LabelBenchError, LookupError):
    """A project, class, image or annotation does not exist."""


class ImportDocumentError(LabelBenchError, ValueError):
    """The import document is malformed or cannot be applied to the project."""


class TaskTypeMismatchError(ImportDocumentError):
    """The document's task type differs from the project's."""


class ClassIndexIntegrityError(LabelBenchError):
    """Class indices of a project are not exactly 0..N-1."""


class InvalidClassError(LabelBenchError, ValueError):
    """Class name or color is not acceptable."""


class RatioError(LabelBenchError, ValueError):
    """Split ratios are out of range or do not sum to 1."""


class GeometryError(LabelBenchError, ValueError):
    """A single label could not be decoded into geometry."""


class OperationCancelled(LabelBenchError):
    """The caller asked for the running operation to stop."""


class InvalidRoleError(LabelBenchError, ValueError):
    """A role value outside Train, Validation, Test and None."""
