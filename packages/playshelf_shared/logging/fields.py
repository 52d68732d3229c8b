"""Canonical logging field names for structured client logs.

Keeping names centralized prevents drift between the session, cache and
event-bus log lines that downstream tooling filters on.
"""

TIMESTAMP = "timestamp"
LEVEL = "level"
LOGGER = "logger"
MESSAGE = "message"
EVENT = "event"

# Session fields.
PHASE = "phase"
IDENTITY_ID = "identity_id"
CREDENTIAL_SOURCE = "credential_source"

# Cache and event fields.
FAMILY = "family"
FETCH_TOKEN = "fetch_token"
CHANNEL = "channel"
ITEM_ID = "item_id"
ITEM_COUNT = "item_count"

# Outbound request fields.
METHOD = "method"
URL = "url"
STATUS_CODE = "status_code"
OPERATION = "operation"

# Common service-level fields.
SERVICE = "service"
ENVIRONMENT = "environment"
