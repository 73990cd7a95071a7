"""Version information for the explored-area engine."""

VERSION = "0.3.0"
BUILD_DATE = "2026-10-16"

def get_version_info():
    """Get version information as a dictionary."""
    return {
        "version": VERSION,
        "build_date": BUILD_DATE,
        "component": "engine"
    }
