"""Default configuration values."""

# tmux defaults
DEFAULT_TMUX_SESSION_PREFIX = "orch"
DEFAULT_TMUX_LAYOUT = "tiled"
DEFAULT_AGENT_COMMAND = "claude"

# Delay between typing a message and pressing Enter, in seconds.
# The agent UI drops the submission if Enter arrives before the text registers.
DEFAULT_MESSAGE_SETTLE_DELAY = 0.5

# Seconds to wait for the agent CLI to start before briefing it
DEFAULT_AGENT_STARTUP_DELAY = 5.0

# Upper bound for capture-pane line counts
DEFAULT_CAPTURE_MAX_LINES = 1000

# Poll interval for wait_for_text / wait_for_window, in seconds
DEFAULT_WAIT_POLL_INTERVAL = 1.0

# Git discipline defaults
DEFAULT_AUTO_COMMIT_INTERVAL = 30  # minutes
DEFAULT_COMMIT_MESSAGE_FORMAT = "Progress: $TASK - $DESCRIPTION"
DEFAULT_COMMITTER_NAME = "teamorch"
DEFAULT_COMMITTER_EMAIL = "orchestrator@teamorch.local"
DEFAULT_TEST_COMMAND = "pytest"

# Grace factor applied to the commit interval when checking compliance
COMMIT_COMPLIANCE_GRACE = 1.5

# Self-scheduling defaults (minutes)
DEFAULT_CHECK_INTERVAL = 15
DEFAULT_MIN_CHECK_INTERVAL = 5
DEFAULT_MAX_CHECK_INTERVAL = 60

# Monitoring
DEFAULT_MONITOR_INTERVAL = 60.0  # seconds
DEFAULT_IDLE_THRESHOLD_MINUTES = 30
MONITOR_CAPTURE_LINES = 20
CHECK_IN_CAPTURE_LINES = 50
TYPED_LINES_MEMORY = 500  # lines typed per agent, ignored when reading its pane

# Report thresholds
COMPLIANCE_WARNING_THRESHOLD = 80.0
IDLE_RATIO_WARNING_THRESHOLD = 0.3
ERROR_COUNT_WARNING_THRESHOLD = 10

# State directory created inside the orchestrated project
DEFAULT_STATE_DIR_NAME = ".teamorch"
