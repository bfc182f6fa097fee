from __future__ import annotations
from typing import Optional


class RelayError(Exception):
    """Base for every failure the service knows how to classify."""


class MissingParameter(RelayError):
    pass


class UpstreamUnavailable(RelayError):
    """Timeout, network failure or a status outside the tolerated range."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class MalformedUpstreamData(RelayError):
    pass


class InvalidProxyTarget(RelayError):
    pass


class ProxyFetchFailed(RelayError):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ProfileNotFound(RelayError):
    pass
