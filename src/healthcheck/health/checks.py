"""
Health check implementations for the health monitor.

Provides HTTP status, TLS certificate expiry and TCP reachability checks.
Every check returns an Outcome; errors become failures, never exceptions.
"""

import asyncio
import logging
import ssl
import time
from typing import Optional

import httpx

from healthcheck.core.config import CertificateCheck, CheckSpec, HttpCheck, TcpPingCheck
from healthcheck.core.models import Outcome

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


def _describe(exc: BaseException) -> str:
    """Error text for a failure reason; falls back to the exception type."""
    return str(exc) or type(exc).__name__


def evaluate_expiry(expires_at: float, now: float, days_before_expiry: int) -> Outcome:
    """
    Judge a certificate expiry time against a warning threshold.

    Args:
        expires_at: Certificate notAfter as a Unix timestamp
        now: Current Unix timestamp
        days_before_expiry: Minimum whole days of validity required

    Returns:
        Success, or Failure describing the expiry
    """
    remaining = expires_at - now
    if remaining < 0:
        days_ago = int(-remaining // SECONDS_PER_DAY)
        return Outcome.failure(f"Certificate expired {days_ago} days ago")

    days_left = int(remaining // SECONDS_PER_DAY)
    if days_left < days_before_expiry:
        return Outcome.failure(
            f"Certificate expires in {days_left} days "
            f"(threshold: {days_before_expiry} days)"
        )
    return Outcome.success()


class HealthChecker:
    """Runs health checks against remote services."""

    def __init__(
        self,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ):
        """
        Initialize health checker.

        Args:
            http_transport: Optional httpx transport (used by tests)
            ssl_context: TLS context for certificate checks (default: verifying)
        """
        self.http_transport = http_transport
        self.ssl_context = ssl_context or ssl.create_default_context()

    async def check(self, check: CheckSpec) -> Outcome:
        """
        Run the check matching the configured variant.

        Args:
            check: Check parameters from the service definition

        Returns:
            Outcome of the check
        """
        start_time = time.monotonic()

        if isinstance(check, HttpCheck):
            outcome = await self.http_check(check)
        elif isinstance(check, CertificateCheck):
            outcome = await self.certificate_check(check)
        elif isinstance(check, TcpPingCheck):
            outcome = await self.tcp_ping_check(check)
        else:
            raise TypeError(f"Unsupported check type: {type(check).__name__}")

        duration_ms = (time.monotonic() - start_time) * 1000
        logger.debug(f"Check of {check.target} finished in {duration_ms:.0f}ms: {outcome}")
        return outcome

    async def http_check(self, check: HttpCheck) -> Outcome:
        """
        Check that a URL answers with the expected status code.

        Redirects are followed; the final response status is compared.
        """
        logger.debug(f"Starting HTTP check for url: {check.url}")

        try:
            async with httpx.AsyncClient(
                timeout=check.timeout_ms / 1000,
                follow_redirects=True,
                transport=self.http_transport,
            ) as client:
                response = await client.get(check.url)
        except httpx.TimeoutException:
            return Outcome.failure(f"Request failed: timed out after {check.timeout_ms}ms")
        except Exception as e:
            return Outcome.failure(f"Request failed: {_describe(e)}")

        if response.status_code == check.expected_status:
            return Outcome.success()
        return Outcome.failure(f"Unexpected status: {response.status_code}")

    async def certificate_check(self, check: CertificateCheck) -> Outcome:
        """
        Check that a TLS certificate is valid for long enough.

        Connects, completes a verifying TLS handshake and compares the peer
        certificate's notAfter with the configured threshold.
        """
        logger.debug(f"Starting certificate check for host: {check.host}:{check.port}")
        timeout = check.timeout_ms / 1000

        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(check.host, check.port), timeout
            )
        except asyncio.TimeoutError:
            return Outcome.failure(
                f"TCP connection failed: timed out after {check.timeout_ms}ms"
            )
        except OSError as e:
            return Outcome.failure(f"TCP connection failed: {_describe(e)}")

        try:
            try:
                await asyncio.wait_for(
                    writer.start_tls(self.ssl_context, server_hostname=check.host),
                    timeout,
                )
            except asyncio.TimeoutError:
                return Outcome.failure(
                    f"TLS handshake failed: timed out after {check.timeout_ms}ms"
                )
            except OSError as e:
                return Outcome.failure(f"TLS handshake failed: {_describe(e)}")

            ssl_object = writer.get_extra_info("ssl_object")
            cert = ssl_object.getpeercert() if ssl_object else None
            if not cert:
                return Outcome.failure("No peer certificate found")

            try:
                expires_at = ssl.cert_time_to_seconds(cert["notAfter"])
            except (KeyError, TypeError, ValueError) as e:
                return Outcome.failure(f"Failed to parse certificate: {_describe(e)}")

            return evaluate_expiry(expires_at, time.time(), check.days_before_expiry)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except Exception:
                pass

    async def tcp_ping_check(self, check: TcpPingCheck) -> Outcome:
        """Check that a TCP connection completes within the timeout."""
        logger.debug(f"Starting TCP ping for host: {check.host}:{check.port}")

        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(check.host, check.port),
                check.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            return Outcome.failure(f"Timeout after {check.timeout_ms}ms")
        except OSError as e:
            return Outcome.failure(f"Connection failed: {_describe(e)}")

        writer.close()
        try:
            await writer.wait_closed()
        except Exception:
            pass
        return Outcome.success()
