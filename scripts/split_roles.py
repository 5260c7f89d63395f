#!/usr/bin/env python
"""
Randomly assign Train / Validation / Test roles to the annotated images of a project.

Usage:
    python scripts/split_roles.py <project_dir> [--train 0.8] [--val 0.2] [--test 0.0] [--seed N]
"""

import os
import sys
import logging
import argparse
from pathlib import Path

import numpy as np

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from labelbench.errors import LabelBenchError
from labelbench.partition import split_project_roles
from labelbench.store import ProjectStore


def main():
    parser = argparse.ArgumentParser(description="Split project images into train/validation/test")
    parser.add_argument("project_dir", help="Path to the project directory")
    parser.add_argument("--train", type=float, default=0.8, help="Train ratio (default: 0.8)")
    parser.add_argument("--val", type=float, default=0.2, help="Validation ratio (default: 0.2)")
    parser.add_argument("--test", type=float, default=0.0, help="Test ratio (default: 0.0)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for a reproducible split")

    args = parser.parse_args()
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING").upper())

    print(f"Splitting project: {args.project_dir}")
    print(f"Ratios: train={args.train:.0%}, val={args.val:.0%}, test={args.test:.0%}")
    print("-" * 50)

    try:
        project = ProjectStore.load_project(args.project_dir)
        store = ProjectStore(project.db_path)
        try:
            with store.transaction():
                result = split_project_roles(
                    store, project, args.train, args.val, args.test,
                    rng=np.random.default_rng(args.seed),
                )
        finally:
            store.close()
    except (LabelBenchError, FileNotFoundError) as e:
        print(f"✗ Split failed: {e}")
        sys.exit(1)

    print(f"\nSplit Report:")
    print(f"  Train: {result.train_count}")
    print(f"  Validation: {result.validation_count}")
    print(f"  Test: {result.test_count}")
    print(f"  Untouched: {result.skipped_count}")

    print(f"\n✓ {result.message}")


if __name__ == "__main__":
    main()
