"""Application constants."""

# Display formatting
SEPARATOR_LINE = "=" * 60
SEPARATOR_LINE_THIN = "-" * 40

# Source types
SOURCE_TYPE_FEED = "FEED"
SOURCE_TYPE_STRUCTURED_API = "STRUCTURED_API"
SOURCE_TYPES = (SOURCE_TYPE_FEED, SOURCE_TYPE_STRUCTURED_API)

# Values used by the first registry schema
LEGACY_SOURCE_TYPES = {
    "RSS": SOURCE_TYPE_FEED,
    "API": SOURCE_TYPE_STRUCTURED_API,
}

# Opportunity workflow status (owned by triage; ingestion only writes NEW)
OPPORTUNITY_STATUS_NEW = "NEW"

# Fields the ingestion never writes on an existing opportunity
TRIAGE_OWNED_FIELDS = (
    "status",
    "assigned_to",
    "priority",
    "notes",
    "next_action",
    "deadline_at",
)

# Ingest run status
RUN_STATUS_RUNNING = "running"
RUN_STATUS_OK = "ok"
RUN_STATUS_ERROR = "error"

# Rulesets recorded on each opportunity
RULESET_TEXT = "text"
RULESET_CPV = "cpv"

# API query strategies
QUERY_STRATEGY_SERVER_FILTER = "server_filter"
QUERY_STRATEGY_LOCAL = "local"
