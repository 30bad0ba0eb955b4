"""Custom exceptions for the application."""

class ApplicationError(Exception):
    """Base application error."""
    pass

class ConfigError(ApplicationError):
    """Configuration-related errors."""
    pass

class ValidationError(ApplicationError):
    """Data validation errors."""
    pass

class ServiceError(ApplicationError):
    """Service operation errors."""
    pass

class GeometryError(ApplicationError):
    """Coordinate mapping errors."""
    pass

class UnsupportedRotationError(GeometryError):
    """Exact mapping requested for a rotation that is not perpendicular."""
    pass

class FrameError(ApplicationError):
    """Malformed, closed or truncated frame buffers."""
    pass

class RecognitionError(ServiceError):
    """Text recognition engine failures."""
    pass
