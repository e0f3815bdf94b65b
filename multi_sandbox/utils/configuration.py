"""Sandbox deployment configuration."""

import os
import pathlib as pl

# Parent directory of all deployment directories
SANDBOX_HOME = pl.Path(os.environ.get("SANDBOX_HOME") or "~/sandboxes").expanduser().resolve()

# Directory holding unpacked database versions, e.g. `~/opt/mysql/8.0.11`
SANDBOX_BINARY = pl.Path(os.environ.get("SANDBOX_BINARY") or "~/opt/mysql").expanduser().resolve()

# Catalog of all deployments done on this host
SANDBOX_CATALOG = (
    pl.Path(os.environ.get("SANDBOX_CATALOG") or "~/.multi-sandbox/sandboxes.json")
    .expanduser()
    .resolve()
)

# Resolve SANDBOX_LOG_DIR
SANDBOX_LOG_DIR = (
    pl.Path(os.environ.get("SANDBOX_LOG_DIR") or "~/.multi-sandbox/logs").expanduser().resolve()
)

# Added to the port derived from version. Make sure the ports don't overlap with ephemeral port
# range. It's usually 32768 to 60999. See `cat /proc/sys/net/ipv4/ip_local_port_range`.
MULTIPLE_BASE_PORT = int(os.environ.get("MULTIPLE_BASE_PORT") or 16000)

# Offset of the auxiliary (MySQL X protocol) port family
MYSQLX_PORT_DELTA = int(os.environ.get("MYSQLX_PORT_DELTA") or 10000)

# Number of candidate starting ports scanned before giving up
PORT_SEARCH_HORIZON = int(os.environ.get("PORT_SEARCH_HORIZON") or 1000)
if PORT_SEARCH_HORIZON < 1:
    msg = f"Invalid PORT_SEARCH_HORIZON '{PORT_SEARCH_HORIZON}': must be >= 1"
    raise RuntimeError(msg)

MULTIPLE_PREFIX = os.environ.get("MULTIPLE_PREFIX") or "multi_msb_"
NODE_PREFIX = os.environ.get("NODE_PREFIX") or "node"
if "/" in NODE_PREFIX or "/" in MULTIPLE_PREFIX:
    msg = "Invalid NODE_PREFIX or MULTIPLE_PREFIX: must not contain '/'"
    raise RuntimeError(msg)

# Cap on parallel workers within a tier. Use the tier size if set to 0.
MAX_WORKERS = int(os.environ.get("MAX_WORKERS") or 0)
if MAX_WORKERS < 0:
    msg = f"Invalid MAX_WORKERS '{MAX_WORKERS}': must be >= 0"
    raise RuntimeError(msg)

# Treat ports that are currently listening on this host as reserved
CHECK_LISTENING_PORTS = bool(os.environ.get("CHECK_LISTENING_PORTS"))

# Seconds to wait for the catalog and deployment directory locks
LOCK_TIMEOUT = float(os.environ.get("LOCK_TIMEOUT") or 5)
