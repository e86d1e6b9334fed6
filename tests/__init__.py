"""
Test suite for the sync health monitor.

This module contains:
- Unit tests for every monitor and the recovery manager
- In-memory fakes for the sync engine and both stores
- API tests against the FastAPI app
"""

__version__ = "1.0.0"
