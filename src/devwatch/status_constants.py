"""
Phase and probe constants for devwatch.

Centralizes the phase names, probe kinds, and display mappings used by
the monitor core and the CLI.
"""


# =============================================================================
# Session Phases (owned by StateTracker)
# =============================================================================

PHASE_UNKNOWN = "unknown"  # Never successfully probed since process start
PHASE_BUSY = "busy"
PHASE_IDLE = "idle"

ALL_PHASES = [
    PHASE_UNKNOWN,
    PHASE_BUSY,
    PHASE_IDLE,
]


# =============================================================================
# Probe Result Kinds
# =============================================================================

PROBE_BUSY = "busy"
PROBE_IDLE = "idle"
PROBE_UNREACHABLE = "unreachable"
PROBE_SKIPPED = "skipped"  # Host process inactive or no port; never fed to the tracker


# =============================================================================
# Remote status discriminators
# =============================================================================

# Values of the `type` field in /session/status records that mean "working".
# "retry" is reported while the agent backs off from a provider error and
# is still mid-task.
BUSY_STATUS_TYPES = frozenset({"busy", "retry"})


# =============================================================================
# Link id preference
# =============================================================================

LINK_PREFER_PROBE = "probe"          # id from the triggering idle probe, else last busy id
LINK_PREFER_LAST_BUSY = "last_busy"  # last busy id, else id from the idle probe

LINK_PREFERENCES = (LINK_PREFER_PROBE, LINK_PREFER_LAST_BUSY)


# =============================================================================
# Display Mappings
# =============================================================================

PHASE_EMOJIS = {
    PHASE_UNKNOWN: "⚪",
    PHASE_BUSY: "🟢",
    PHASE_IDLE: "🟡",
    PROBE_UNREACHABLE: "🔴",
    PROBE_SKIPPED: "⚫",
}

PHASE_COLORS = {
    PHASE_UNKNOWN: "dim",
    PHASE_BUSY: "green",
    PHASE_IDLE: "yellow",
    PROBE_UNREACHABLE: "red",
    PROBE_SKIPPED: "dim",
}


def get_phase_emoji(phase: str) -> str:
    """Get emoji for a phase or probe kind."""
    return PHASE_EMOJIS.get(phase, "⚪")


def get_phase_color(phase: str) -> str:
    """Get rich color name for a phase or probe kind."""
    return PHASE_COLORS.get(phase, "white")
