"""
Domain errors raised by the regional challenge services.
HTTP handlers translate these into standardized error responses (see api/error_utils.py).
"""


class InvalidLocation(ValueError):
    """Coordinates are missing, not numeric, NaN/infinite or outside the valid range."""

    def __init__(self, message="Invalid coordinates.", latitude=None, longitude=None):
        super().__init__(message)
        self.latitude = latitude
        self.longitude = longitude


class ManifestGenerationFailed(RuntimeError):
    """The AI collaborator failed, timed out or returned nothing usable. Nothing was persisted."""

    def __init__(self, message="Failed to generate probability manifest.", region_key=None):
        super().__init__(message)
        self.region_key = region_key


class UnknownChallengeKind(ValueError):
    """A challenge kind other than 'daily' or 'weekly' was requested."""


__all__ = ['InvalidLocation', 'ManifestGenerationFailed', 'UnknownChallengeKind']
