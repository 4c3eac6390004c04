"""
Web interface for the health monitor.

Provides the REST API and a status dashboard.
"""

from healthcheck.web.app import create_app

__all__ = ["create_app"]
