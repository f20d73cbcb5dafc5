"""
Test configuration for poster maker tests.

Makes the project root importable when the suite is collected by pytest;
the unittest runner (run_tests.py) does the same itself.
"""

import os
import sys

# Ensure parent directory is in path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Keep test runs off any configured bucket or database
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("DATABASE_URL", "sqlite://")
