"""
Service health monitor (healthcheck).

Checks HTTP endpoints, TLS certificates and TCP ports on a schedule, tracks
their health and sends Telegram alerts with failure thresholds and re-alerts.
"""

__version__ = "0.1.0"
