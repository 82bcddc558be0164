"""Analytics export constants."""

POPULAR_QUERY_LIMIT = 10
RECENT_ZERO_RESULT_LIMIT = 10

EXPORT_FORMATS = ("json", "csv")

# Export time window label -> days (None = no lower bound)
EXPORT_TIME_RANGES = {
    "7d": 7,
    "30d": 30,
    "90d": 90,
    "all": None,
}
