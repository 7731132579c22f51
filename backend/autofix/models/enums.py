from enum import Enum


class IssueStatus(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    pr_open = "pr_open"
    fixed = "fixed"
    failed = "failed"
    error = "error"


TERMINAL_STATUSES = frozenset({IssueStatus.pr_open.value, IssueStatus.fixed.value})


class WebhookDecision(str, Enum):
    accepted = "accepted"
    ignored = "ignored"


class LogSource(str, Enum):
    system = "system"
    agent = "agent"
    github = "github"
    error = "error"


class WebhookResource(str, Enum):
    event_alert = "event_alert"
    issue = "issue"
    installation = "installation"
