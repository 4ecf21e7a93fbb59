"""
Integration tests for VectorCache.

These tests drive a whole cache: routing, eviction, rebuilds,
concurrent access and persistence working together.
"""

import pytest
import tempfile
import shutil


def get_temp_dir():
    """Create a temporary directory for test data."""
    return tempfile.mkdtemp(prefix="vectorcache_integration_")


def cleanup_temp_dir(path: str):
    """Clean up temporary directory."""
    shutil.rmtree(path, ignore_errors=True)


# Integration test markers
integration = pytest.mark.integration
slow = pytest.mark.slow
requires_persistence = pytest.mark.requires_persistence
