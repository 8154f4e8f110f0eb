"""Constants used across capi_dispatch.

Values here are part of the wire and storage contracts; changing them
changes event identity or ledger keys.
"""

# Event identity
EVENT_NAMESPACE = "chat-threshold"
EVENT_NAME = "ChatMessagesThresholdCrossed"
DEFAULT_EXPERIMENT_LABEL = "default"
DEFAULT_ACTION_SOURCE = "website"

# Eligibility
ACTIVITY_THRESHOLD = 5  # Rows must strictly exceed this message count
DEBUG_ACTIVITY_COUNT = ACTIVITY_THRESHOLD + 1  # Synthetic diagnostic events sit just over the threshold

# Dedup ledger
LEDGER_PREFIX = f"capi:{EVENT_NAMESPACE}"
LEDGER_TTL_SECONDS = 60 * 60 * 24 * 180  # 180 days

# Outbound HTTP
DELIVERY_ATTEMPTS = 3
DELIVERY_BASE_DELAY_S = 0.4  # 0.4s, 0.8s, 1.6s ...
HTTP_TIMEOUT_S = 10.0
META_GRAPH_BASE_URL = "https://graph.facebook.com"
META_GRAPH_API_VERSION = "v18.0"

# Redis internal settings
REDIS_MAX_CONNECTIONS = 10
REDIS_SOCKET_TIMEOUT = 10
REDIS_HEALTH_CHECK_INTERVAL_S = 30.0  # skip PING when the client succeeded this recently

# API server
DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8080
