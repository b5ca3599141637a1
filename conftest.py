"""
conftest.py
===========
Session-level pytest configuration for the test suite.

Warning filters
---------------
NumbaPerformanceWarning messages are filtered out during tests.  Parallel
kernels launched on the tiny matrices of the test trees trigger them, and they
are not informative for correctness testing.
"""

import warnings

from numba.core.errors import NumbaPerformanceWarning


def pytest_configure(config):
    """
    Configure pytest before test collection begins.

    This runs before any test modules are imported, which is important for
    catching warnings from numba kernel compilation.
    """
    warnings.filterwarnings("ignore", category=NumbaPerformanceWarning)


def pytest_unconfigure(config):
    """Restore default warning behavior."""
    warnings.resetwarnings()
