# File: cityfix/core/errors.py
# Project: cityfix


class CityFixError(Exception):
    """Base class for errors raised by CityFix services."""


class RemoteStoreError(CityFixError):
    """A call into the remote row store failed; carries the backend's message."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class IssueNotFound(RemoteStoreError):
    def __init__(self, issue_id: str):
        super().__init__(f"Issue not found: {issue_id}")
        self.issue_id = issue_id


class UploadRejected(CityFixError):
    """Raised before any network call when a file fails upload validation."""
