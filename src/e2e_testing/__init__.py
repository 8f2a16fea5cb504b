"""
e2e-testing - End-to-end behavioural tests for Beats and Fleet

This package provides the pieces the BDD scenarios are built on: an
eventual-consistency poller, a Fleet API client, Docker service fixtures and
the step handlers bound to the feature files.
"""

__version__ = "1.0.0"
__description__ = "End-to-end behavioural tests for Beats and Fleet"

from .config import Config
from .polling import BackoffPolicy, Fatal, Retry, Success, poll_until

__all__ = [
    "BackoffPolicy",
    "Config",
    "Fatal",
    "Retry",
    "Success",
    "poll_until",
    "__version__",
    "__description__",
]
