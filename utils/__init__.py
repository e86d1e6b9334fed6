"""
Shared utilities for the sync health monitor.

This module provides common functionality used across the monitor:
- Structured logging
- Correlation ids for recovery sessions
"""

__version__ = "1.0.0"
