"""
Domain exceptions

Parsing never raises: malformed playlist or guide input degrades to partial or
empty results. The exceptions below cover the failures that callers must act on.
"""


class LiveTVError(Exception):
    """Base class for service errors"""
    pass


class FetchFailedError(LiveTVError):
    """Raised when a playlist cannot be downloaded (network error, timeout, HTTP error)"""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class FetchSupersededError(LiveTVError):
    """Raised to the caller of a fetch that was replaced by a newer request for the same target"""

    def __init__(self, target: str):
        super().__init__(f"Fetch for '{target}' was superseded by a newer request")
        self.target = target


class AuthInvalidError(LiveTVError):
    """Raised when a webhook payload fails its authenticity check"""
    pass


class WebhookPayloadError(LiveTVError):
    """Raised when a webhook body is not a valid event envelope"""
    pass
