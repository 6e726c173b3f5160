"""
Test Tools Package
Tests for the tools module (periods, durations, scheduler, delivery)
"""

__all__ = [
    "test_periods",
    "test_duration",
    "test_task_scheduler",
    "test_notification_bus",
    "test_email_service",
]
