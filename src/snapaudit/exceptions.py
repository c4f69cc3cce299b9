"""Custom exceptions for SnapAudit with helpful error messages."""


class SnapAuditError(Exception):
    """Base exception for SnapAudit errors."""

    def __init__(self, message: str, suggestion: str = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(self.message)

    def __str__(self):
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message


class ConfigurationError(SnapAuditError):
    """Invalid or incomplete configuration."""

    pass


class SourceUnavailableError(SnapAuditError):
    """A configured source could not be enumerated."""

    def __init__(self, source_id: str, reason: str):
        self.source_id = source_id
        self.reason = reason
        message = f"Source '{source_id}' is unavailable: {reason}"
        suggestion = (
            "Check the endpoint address, credentials and network access, "
            "or remove the source from the configuration."
        )
        super().__init__(message, suggestion)


class MalformedRecordError(SnapAuditError):
    """A raw snapshot record is missing required fields or has invalid values."""

    def __init__(self, reason: str, source_id: str = None):
        self.reason = reason
        self.source_id = source_id
        if source_id:
            message = f"Malformed snapshot record from '{source_id}': {reason}"
        else:
            message = f"Malformed snapshot record: {reason}"
        super().__init__(message)


class RenderError(SnapAuditError):
    """The report could not be rendered or written."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        message = f"Failed to write report to {path}: {reason}"
        suggestion = "Check that the destination directory is writable."
        super().__init__(message, suggestion)


class AggregatorFinalizedError(SnapAuditError):
    """The aggregator was used after its report was finalized."""

    def __init__(self):
        super().__init__("Report has already been finalized; no further records can be added.")
