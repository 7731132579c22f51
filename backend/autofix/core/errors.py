class AutofixError(Exception):
    """Base class for errors raised by the autofix service."""


class AuthenticationError(AutofixError):
    pass


class WebhookValidationError(AutofixError):
    pass


class SchedulerNotInitializedError(AutofixError):
    pass


class IssueNotFoundError(AutofixError):
    def __init__(self, issue_id: str):
        super().__init__(f"Issue {issue_id} not found")
        self.issue_id = issue_id


class ProjectMappingMissingError(AutofixError):
    def __init__(self, project_slug: str):
        super().__init__(f'No project mapping for "{project_slug}"')
        self.project_slug = project_slug


class IssueBusyError(AutofixError):
    def __init__(self, issue_id: str):
        super().__init__(f"Issue {issue_id} is already queued or running")
        self.issue_id = issue_id


class PublishError(AutofixError):
    pass
