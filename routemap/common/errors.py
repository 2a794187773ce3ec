"""Domain errors and failure typing."""


class RoutemapError(Exception):
    """Base class for route map failures."""

    error_code = "ROUTEMAP_ERROR"


class ConfigError(RoutemapError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class ProviderResponseError(RoutemapError):
    """Raised when a geocoding or routing payload cannot be interpreted."""

    error_code = "PROVIDER_RESPONSE_ERROR"


class LocationUnavailableError(RoutemapError):
    """Raised by location sensors when the position is denied or unknown."""

    error_code = "LOCATION_UNAVAILABLE"
