"""
Error taxonomy for the form session core.

Every error carries the HTTP status the routing layer should answer with.
Store and network errors are NOT wrapped here - they propagate unchanged
to the generic error handling upstream.

Contents:
- FormEngineError: Base class (status_code attribute)
- MissingSessionError: Request has no session identifier (always fatal)
- NotFoundError: Unknown page, metadata status, definition or model
- InvalidConfigurationError: Deployment misconfiguration (not user input)
"""


class FormEngineError(Exception):
    """Base class for errors raised by the form session core."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingSessionError(FormEngineError):
    """No session ID on the request. Never swallowed."""

    status_code = 500


class NotFoundError(FormEngineError):
    """Requested form, page or model could not be resolved."""

    status_code = 404


class InvalidConfigurationError(FormEngineError):
    """
    The running deployment is misconfigured.

    Examples:
    - Reference number prefix configured but not a string
    - Live form with no address to route submissions to
    """

    status_code = 500
