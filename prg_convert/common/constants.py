"""Application constants."""

USER_AGENT = "prg-convert/0.4 (+address registry conversion)"
SCHEMA_VERSIONS = ("2012", "2021")
OUTPUT_FORMATS = ("csv", "geoparquet")
SUPPORTED_EPSG = (2180, 4326)
DEFAULT_BATCH_SIZE = 100_000
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "file",
    "event",
    "status",
    "batch",
    "rows_out",
    "duration_ms",
    "error_code",
    "message",
)
