# newsfeed/errors.py
"""
Error taxonomy shared by the scoring core and the HTTP layer.

Each error carries the status code the exception handlers answer with, so
routers never translate errors themselves.
"""


class NewsfeedError(Exception):
    status_code = 500
    public_message = "Internal Server Error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class ValidationError(NewsfeedError):
    """Bad input on an ingress (e.g. feedback without a user or article). Nothing is written."""
    status_code = 400
    public_message = "Invalid request"


class UpstreamAnalysisFailure(NewsfeedError):
    """AI collaborator unavailable or returned something unusable. Callers fall back to defaults."""
    status_code = 502
    public_message = "Analysis service unavailable"


class UpstreamQuotaFailure(NewsfeedError):
    """AI collaborator refused for rate limit or exhausted credits. Never retried automatically."""
    status_code = 429
    public_message = "AI service is busy, please try again later"


class StorageFailure(NewsfeedError):
    """Query or write against storage failed. Reads degrade to empty results, writes surface this."""
    status_code = 503
    public_message = "Storage unavailable"
