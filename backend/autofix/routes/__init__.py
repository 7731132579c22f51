from autofix.routes import (
    events,
    issues,
    projects,
    webhooks,
)

__all__ = [
    "events",
    "issues",
    "projects",
    "webhooks",
]
