#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""Version info"""

import sys
from importlib import metadata

version = "0.3.0"
short_version = ".".join(version.split(".")[:2])

# Distribution names of the runtime stack, as in setup.py
_DEPENDENCIES = (
    "numpy",
    "scipy",
    "numba",
    "joblib",
    "decorator",
    "typing_extensions",
    "lazy_loader",
)


def show_versions() -> None:
    """Print the versions of python, roughscape and its runtime dependencies."""
    print("INSTALLED VERSIONS")
    print("------------------")
    print(f"python: {sys.version}\n")
    print(f"roughscape: {version}\n")
    for dist in _DEPENDENCIES:
        try:
            found = metadata.version(dist)
        except metadata.PackageNotFoundError:
            found = None
        print(f"{dist}: {found}")
