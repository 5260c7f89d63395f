#!/usr/bin/env python
"""
Export a project to an annotation document.

Usage:
    python scripts/export_annotations.py <project_dir> <output.json> [--creator NAME]
"""

import os
import sys
import logging
import argparse
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from labelbench.errors import LabelBenchError
from labelbench.exporter import DEFAULT_CREATOR, export_annotations, write_export
from labelbench.store import ProjectStore


def main():
    parser = argparse.ArgumentParser(description="Export project annotations to a JSON document")
    parser.add_argument("project_dir", help="Path to the project directory")
    parser.add_argument("output", help="Output JSON file")
    parser.add_argument("--creator", default=os.getenv("EXPORT_CREATOR", DEFAULT_CREATOR),
                        help="Creator written into the document header")

    args = parser.parse_args()
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING").upper())

    print(f"Exporting project: {args.project_dir}")
    print(f"Output file: {args.output}")
    print("-" * 50)

    try:
        project = ProjectStore.load_project(args.project_dir)
        store = ProjectStore(project.db_path)
        try:
            document = export_annotations(store, project, creator=args.creator)
        finally:
            store.close()
        write_export(document, args.output)
    except (LabelBenchError, OSError) as e:
        print(f"✗ Export failed: {e}")
        sys.exit(1)

    print(f"\nExport Report:")
    print(f"  Type: {document.header.type}")
    print(f"  Images: {len(document.annotations)}")
    print(f"  Categories: {', '.join(document.header.categories)}")

    print(f"\n✓ Export complete: {args.output}")


if __name__ == "__main__":
    main()
