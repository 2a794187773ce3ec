"""Application constants."""

USER_AGENT = "routemap/1.0 (+route rendering; contact: configured-email)"
DEFAULT_ORIGIN = (5.6037, -0.1870)
DEFAULT_LOCATION_CONTEXT = "Accra, Ghana"
DEFAULT_PATH_DELIMITER = "→"
NOMINATIM_SEARCH_URL = "https://nominatim.openstreetmap.org/search"
OSRM_BASE_URL = "https://router.project-osrm.org"
LOOKUP_TIMEOUT_SECONDS = 5.0
ROUTE_TIMEOUT_SECONDS = 30.0
PROVIDER_DELAY_SECONDS = 1.0
STREET_QUERY_SUFFIXES = ("", " Street", " Road", " Avenue")
KNOWN_LOCATIONS = {
    "10th Street": (5.6025, -0.1870),
    "3rd Street": (5.6020, -0.1855),
}
EARTH_RADIUS_KM = 6371.0
DEFAULT_ZOOM = 13
USER_ZOOM = 15
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "route",
    "street",
    "source",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "provenance",
    "error_code",
    "message",
)
