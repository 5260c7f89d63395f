"""
Annotation interchange document.

    {
      "header": {"version": "1.0.0", "type": "object_detection",
                 "creator": "...", "categories": ["cat", "dog"],
                 "description": "..."},
      "annotations": [{"filename": "a.jpg", "label": [[0, 10, 10, 50, 50]], "role": 0}]
    }
"""

import json
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from labelbench.errors import ImportDocumentError

DOCUMENT_VERSION = "1.0.0"


class DocumentHeader(BaseModel):
    version: Optional[str] = DOCUMENT_VERSION
    type: Optional[str] = None
    creator: Optional[str] = None
    categories: list[str] = Field(default_factory=list)
    description: Optional[str] = None


class DocumentItem(BaseModel):
    filename: str
    # int for classification/anomaly, list of coordinate arrays otherwise.
    # Kept untyped here: a bad label only fails its own item.
    label: Any = None
    role: Optional[int] = 0


class AnnotationDocument(BaseModel):
    header: Optional[DocumentHeader] = None
    annotations: list[DocumentItem] = Field(default_factory=list)

    def to_json(self, indent: Optional[int] = 2) -> str:
        return self.model_dump_json(indent=indent)


def _lower_keys(value: Any) -> Any:
    """Lower-case the property names the document format defines."""
    if isinstance(value, dict):
        lowered = {}
        for key, item in value.items():
            key = key.lower() if isinstance(key, str) else key
            # Labels are opaque payloads
            lowered[key] = item if key == "label" else _lower_keys(item)
        return lowered
    if isinstance(value, list):
        return [_lower_keys(item) for item in value]
    return value


def parse_document(source: Union[str, bytes, dict, AnnotationDocument]) -> AnnotationDocument:
    """
    Parse an interchange document.

    Property names are matched case-insensitively.

    Args:
        source: JSON text, an already decoded dict or a document

    Raises:
        ImportDocumentError: if the JSON or its structure is invalid
    """
    if isinstance(source, AnnotationDocument):
        return source

    if isinstance(source, (str, bytes)):
        try:
            source = json.loads(source)
        except json.JSONDecodeError as e:
            raise ImportDocumentError(f"Failed to parse JSON: {e}") from e

    if not isinstance(source, dict):
        raise ImportDocumentError("Document must be a JSON object")

    try:
        return AnnotationDocument.model_validate(_lower_keys(source))
    except ValidationError as e:
        raise ImportDocumentError(f"Invalid document structure: {e}") from e
