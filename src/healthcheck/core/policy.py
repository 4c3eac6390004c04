"""
Notification policy.

Decides from the previous failure streak and a new outcome whether a service
should raise an alert, announce a recovery or stay quiet.
"""

from typing import Optional

from healthcheck.core.models import Notification, NotificationKind, Outcome

STILL_FAILING_SUFFIX = " (still failing)"


def decide_notification(
    service_name: str,
    previous_failures: int,
    outcome: Outcome,
    notify_failures: int,
    rereport: int,
) -> Optional[Notification]:
    """
    Decide which notification, if any, an outcome produces.

    An alert fires when the failure streak reaches ``notify_failures`` and
    again every ``rereport`` failures after that. The first success after a
    streak produces exactly one recovery.

    Args:
        service_name: Display name used in the message
        previous_failures: Consecutive failures before this outcome
        outcome: The new check outcome
        notify_failures: Failures needed before the first alert (>= 1)
        rereport: Failures between repeated alerts (>= 1)

    Returns:
        The notification to send, or None
    """
    if outcome.is_success:
        if previous_failures > 0:
            return Notification(
                kind=NotificationKind.RECOVERY,
                service_name=service_name,
                message=_recovery_message(previous_failures),
            )
        return None

    if outcome.is_failure:
        streak = previous_failures + 1
        reason = outcome.reason or "unknown error"
        if streak == notify_failures:
            return Notification(NotificationKind.ALERT, service_name, reason)
        if streak > notify_failures and (streak - notify_failures) % rereport == 0:
            return Notification(
                NotificationKind.ALERT, service_name, reason + STILL_FAILING_SUFFIX
            )
        return None

    return None


def _recovery_message(previous_failures: int) -> str:
    noun = "failure" if previous_failures == 1 else "failures"
    return f"Service recovered after {previous_failures} consecutive {noun}"
