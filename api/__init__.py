"""
FastAPI REST API for the sync health monitor.

This module provides HTTP endpoints for:
- Overall and per-component health
- Alerts and acknowledgement
- Error, latency and queue statistics
- Recovery sessions and manual recovery actions
"""

__version__ = "1.0.0"
