"""Domain-specific errors for lissabon."""

SERVICE_COMMUNICATION_FAILURE = "SERVICE_COMMUNICATION_FAILURE"


class LissabonError(Exception):
    """Base error for lissabon."""


class ConfigValidationError(LissabonError):
    """Raised when a config file does not conform to schema or semantics."""


class ConfigLoadError(LissabonError):
    """Raised when reading the config file fails."""


class DeviceSelectionError(LissabonError):
    """Raised when a device hint cannot resolve a single light."""


class FeatureResolutionError(LissabonError):
    """Raised when a feature is unknown or not supported by a light."""


class DeviceUnavailableError(LissabonError):
    """Base for errors that make a light show up as not responding."""

    status = SERVICE_COMMUNICATION_FAILURE


class DeviceNotDiscoveredError(DeviceUnavailableError):
    """Raised when no peripheral has been seen yet for a configured address."""


class CharacteristicNotFoundError(DeviceUnavailableError):
    """Raised when a required GATT characteristic is absent after discovery."""


class CommunicationFailureError(DeviceUnavailableError):
    """Raised when a connect, discover, read, write or disconnect step fails or times out."""
