"""Error taxonomy shared by services and blueprints.

Services raise these; blueprints translate them into JSON responses.
The payment function maps every one of them to HTTP 500.
"""


class TutorHubError(Exception):
    """Base error with a user-safe message."""

    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def __str__(self):
        return self.message


class NotFound(TutorHubError):
    """A referenced row (session, payment, tutor...) does not exist."""

    status_code = 404


class ValidationError(TutorHubError, ValueError):
    """Caller supplied invalid input (empty message, bad amount...)."""

    status_code = 400


class PermissionDenied(TutorHubError):
    """Caller identity is not allowed to perform the operation."""

    status_code = 403


class ConfigurationError(TutorHubError):
    """Required configuration (e.g. PayPal credentials) is missing."""


class UpstreamAuthError(TutorHubError):
    """Payment provider token exchange failed."""

    status_code = 502


class UpstreamRequestError(TutorHubError):
    """Payment provider rejected an order or capture request."""

    status_code = 502


class UpstreamQueryError(TutorHubError):
    """The data store failed a read or write."""

    status_code = 502
