"""trackerkit - Client layer for Jira-class work-item tracking APIs.

This package exposes a canonical domain model (issues, users, projects,
transitions, comments, links) on top of the remote REST API, handling
transport, caching, pagination, schema validation and rich-text documents.
"""

__version__ = "0.1.0"
SCRIPT_NAME = "trackerkit"

__all__ = [
    "__version__",
    "SCRIPT_NAME",
]
