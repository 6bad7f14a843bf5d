"""Root conftest.py - make the ``ffhuman`` package importable without installing it."""

import os
import sys

project_root = os.path.dirname(os.path.abspath(__file__))

# Add project root to sys.path so `ffhuman` is importable from a checkout
if project_root not in sys.path:
    sys.path.insert(0, project_root)
