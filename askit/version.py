"""Build identification."""

VERSION = "dev"
COMMIT = "unknown"
DATE = "unknown"


def info() -> str:
    """Return a one-line human-readable version string."""
    return f"askit {VERSION} ({COMMIT}, {DATE})"