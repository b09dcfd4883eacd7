"""Constants for ciwarden."""

# Subprocess timeouts (seconds)
GIT_TIMEOUT = 30
GH_TIMEOUT = 60
FIX_COMMAND_TIMEOUT = 300  # 5 minutes for lint/format tools
VERIFY_TIMEOUT = 120
INIT_TOOL_CHECK_TIMEOUT = 10

# Captured output per stream from external commands
MAX_OUTPUT_BYTES = 1024 * 1024

# Polling (seconds)
DEFAULT_WAIT_TIMEOUT = 600
REGISTRATION_GRACE_PERIOD = 20
REGISTRATION_MAX_BACKOFF = 5
FAST_CHECK_THRESHOLD = 10

CONFIG_DIR = ".ciwarden"
CONFIG_FILE = "config.toml"

# Lowercase substrings marking a security failure as a dependency issue
DEPENDENCY_KEYWORDS = ("dependency", "dependencies", "vulnerab")
