"""Internal constants shared across the library."""

DEFAULT_PORT = 80
DEFAULT_NAME = "Garage Door"

#: Seconds a door needs to travel; also the optimistic settle deadline.
DEFAULT_OPENING_TIME = 30.0
DEFAULT_DEBOUNCE = 0.5
#: Two missed ESPHome pings (sent every 10 s) declare the stream dead.
DEFAULT_LIVENESS_TIMEOUT = 20.0
DEFAULT_RETRY_BACKOFF = 5.0
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_COMMAND_TIMEOUT = 10.0

EVENTS_PATH = "/events"
USER_AGENT = "pyespgarage"

# ------------------------------------------------------------------
# Server-sent event names emitted by the ESPHome web_server component
# ------------------------------------------------------------------

SSE_STATE = "state"
SSE_LOG = "log"
SSE_HEARTBEATS: frozenset[str] = frozenset({"ping", "heartbeat"})

# ------------------------------------------------------------------
# Accessory information advertised to the smart-home ecosystem
# ------------------------------------------------------------------

MANUFACTURER = "ESPHome"
MODEL = "Shelly 1"
SERIAL_NUMBER = "None"
