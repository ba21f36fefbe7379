"""Test helper utilities for trackerkit."""

from tests.helpers.payloads import (
    AGILE_API,
    BASE_URL,
    CLOUD_API,
    SERVER_API,
    comment_payload,
    issue_payload,
    project_payload,
    status_payload,
    user_payload,
)

__all__ = [
    "AGILE_API",
    "BASE_URL",
    "CLOUD_API",
    "SERVER_API",
    "comment_payload",
    "issue_payload",
    "project_payload",
    "status_payload",
    "user_payload",
]
