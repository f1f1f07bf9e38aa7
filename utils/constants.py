"""
portik Constants & Enums
Shared vocabulary for sockets, diagnostics, history and ancestry.
"""

from enum import Enum


# ─── Protocols / address families ─────────────────────────────────────────────
class Protocol(str, Enum):
    TCP = "tcp"
    UDP = "udp"


class AddressFamily(str, Enum):
    IPV4    = "ipv4"
    IPV6    = "ipv6"
    UNKNOWN = "unknown"


# Normalized socket states
STATE_LISTEN    = "LISTEN"
STATE_BOUND     = "BOUND"
STATE_TIME_WAIT = "TIME_WAIT"

# Literals that mean "any local address"
WILDCARD_ADDRS = frozenset({"", "*", "0.0.0.0", "::"})


# ─── Diagnostics ──────────────────────────────────────────────────────────────
class Severity(str, Enum):
    INFO  = "info"
    WARN  = "warn"
    ERROR = "error"


class DiagnosticKind(str, Enum):
    PERMISSION     = "permission"
    IN_USE         = "in-use"
    PID_MISSING    = "pid-missing"
    MULTI_LISTENER = "multi-listener"
    IPV6_ONLY      = "ipv6-only"
    LOOPBACK_ONLY  = "loopback-only"
    FIREWALL       = "firewall"
    TIME_WAIT      = "time-wait"
    ZOMBIE         = "zombie"
    DOCKER         = "docker"
    ENV            = "env"


# ─── History / patterns ───────────────────────────────────────────────────────
class PatternKind(str, Enum):
    HOUR_OF_DAY   = "hour-of-day"
    DAY_OF_WEEK   = "day-of-week"
    OWNER_AT_HOUR = "owner-at-hour"


HISTORY_VERSION      = 1
HISTORY_DIR_NAME     = ".portik"
HISTORY_FILE_NAME    = "history.json"
HISTORY_MAX_ENTRIES  = 200       # per "<port>/<proto>" key, FIFO
TOP_OWNERS_LIMIT     = 5

PATTERN_MIN_EVENTS       = 5
PATTERN_MIN_BUCKET       = 3
PATTERN_MIN_RATIO        = 0.45
PATTERN_OWNER_MIN        = 2
PATTERN_OWNER_RATIO      = 0.6
MORNING_HOURS            = range(5, 12)   # 05:00 – 11:59


# ─── Ancestry ─────────────────────────────────────────────────────────────────
class StartedByKind(str, Enum):
    SYSTEMD   = "systemd"
    CONTAINER = "container"
    LAUNCHD   = "launchd"
    UNKNOWN   = "unknown"


DEFAULT_ANCESTRY_DEPTH = 10
LAUNCHD_SEARCH_DEPTH   = 15
TRACE_ANCESTRY_DEPTH   = 8
TRACE_CHAIN_SHOWN      = 5


# ─── Trace / connections / wait ─────────────────────────────────────────────
class TraceKind(str, Enum):
    NO_LISTENER   = "no-listener"
    LISTENER      = "listener"
    LOOPBACK      = "loopback"
    DOCKER        = "docker"
    PROCESS_CHAIN = "process-chain"
    STARTED_BY    = "started-by"
    CONNECTIONS   = "connections"
    PROXY         = "proxy"


UNKNOWN_REMOTE      = "(unknown)"
CONN_SAMPLES        = 3      # remote ip:port examples kept per client
CONN_TOP_DEFAULT    = 10
TOP_PORTS_DEFAULT   = 5
TOP_CLIENTS_DEFAULT = 3
WAIT_TIMEOUT_S      = 30.0
WAIT_INTERVAL_S     = 0.5


# ─── Limits ───────────────────────────────────────────────────────────────────
PORT_MIN              = 1
PORT_MAX              = 65535
PRIVILEGED_PORT_LIMIT = 1024
CMDLINE_MAX_LEN       = 400
COMMAND_TIMEOUT_S     = 5.0
SCAN_MAX_CONCURRENCY  = 32
MIN_POLL_INTERVAL_S   = 1.0

# ─── Layering Contract (hard import rules - enforced by tests) ───────────────
# core      → may import: utils
# database  → may import: utils
# reporting → may import: utils
# dashboard → may import: utils (collaborators are injected by main.py)
# NEVER: core imports database, database imports core
