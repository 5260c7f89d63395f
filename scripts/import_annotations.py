#!/usr/bin/env python
"""
Import an annotation document into a project.

Usage:
    python scripts/import_annotations.py <project_dir> <document.json>
"""

import os
import sys
import logging
import argparse
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from labelbench.errors import LabelBenchError
from labelbench.importer import import_annotations_file
from labelbench.store import ProjectStore


def main():
    parser = argparse.ArgumentParser(description="Import an annotation document into a project")
    parser.add_argument("project_dir", help="Path to the project directory")
    parser.add_argument("document", help="Path to the JSON annotation document")

    args = parser.parse_args()
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING").upper())

    print(f"Importing into project: {args.project_dir}")
    print(f"Document: {args.document}")
    print("-" * 50)

    try:
        project = ProjectStore.load_project(args.project_dir)
        store = ProjectStore(project.db_path)
        try:
            with store.transaction():
                result = import_annotations_file(store, project, args.document)
        finally:
            store.close()
    except (LabelBenchError, FileNotFoundError) as e:
        print(f"✗ Import failed: {e}")
        sys.exit(1)

    print(f"\nImport Report:")
    print(f"  Imported images: {result.imported_count}")
    print(f"  Skipped images: {result.skipped_count}")
    print(f"  Failed images: {result.failed_count}")
    print(f"  Annotations added: {result.annotation_count}")

    if result.messages:
        print(f"\nMessages:")
        for message in result.messages:
            print(f"  - {message}")

    print(f"\n✓ Import complete")


if __name__ == "__main__":
    main()
