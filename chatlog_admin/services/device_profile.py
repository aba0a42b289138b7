"""
Device profile resolution.
Maps a client classification signal to one immutable set of operational limits.
"""

from chatlog_admin.models.domain import DeviceProfile, Tier

# Viewport breakpoints (inclusive upper bounds)
COMPACT_MAX_WIDTH = 767
MEDIUM_MAX_WIDTH = 1024

_SIGNAL_ALIASES: dict[str, Tier] = {
    "compact": "compact",
    "mobile": "compact",
    "medium": "medium",
    "tablet": "medium",
    "full": "full",
    "desktop": "full",
}

DEVICE_PROFILES: dict[Tier, DeviceProfile] = {
    "compact": DeviceProfile(
        tier="compact",
        max_retries=2,
        timeout_ms=10000,
        fetch_limit=50,
        session_fetch_limit=50,
        retry_delay_ms=2000,
        day_limit=30,
        max_sessions=20,
        max_bulk_ops=3,
        max_export=5,
        refresh_interval_minutes=10,
        success_notice_ms=2000,
        error_notice_ms=4000,
        search_term_max_length=50,
        default_page_sizes={"grid": 4, "list": 5, "table": 5},
        page_size_options=(5, 10, 15),
    ),
    "medium": DeviceProfile(
        tier="medium",
        max_retries=3,
        timeout_ms=8000,
        fetch_limit=150,
        session_fetch_limit=100,
        retry_delay_ms=1500,
        day_limit=60,
        max_sessions=40,
        max_bulk_ops=8,
        max_export=15,
        refresh_interval_minutes=5,
        success_notice_ms=3000,
        error_notice_ms=5000,
        search_term_max_length=100,
        default_page_sizes={"grid": 6, "list": 5, "table": 5},
        page_size_options=(5, 10, 15, 20),
    ),
    "full": DeviceProfile(
        tier="full",
        max_retries=3,
        timeout_ms=6000,
        fetch_limit=500,
        session_fetch_limit=100,
        retry_delay_ms=1000,
        day_limit=None,
        max_sessions=None,
        max_bulk_ops=20,
        max_export=50,
        refresh_interval_minutes=2,
        success_notice_ms=3000,
        error_notice_ms=5000,
        search_term_max_length=200,
        default_page_sizes={"grid": 6, "list": 5, "table": 5},
        page_size_options=(10, 20, 50, 100),
    ),
}


def classify_tier(client_signal: object) -> Tier:
    """
    Classifies a client signal into a tier.

    Args:
        client_signal: Tier name, legacy device name, or viewport width in pixels

    Returns:
        Tier name; unknown signals classify as "compact"
    """
    # bool is an int subclass; a flag is not a width
    if isinstance(client_signal, bool):
        return "compact"

    if isinstance(client_signal, int):
        if client_signal <= COMPACT_MAX_WIDTH:
            return "compact"
        if client_signal <= MEDIUM_MAX_WIDTH:
            return "medium"
        return "full"

    if isinstance(client_signal, str):
        return _SIGNAL_ALIASES.get(client_signal.strip().lower(), "compact")

    return "compact"


def resolve_device_profile(client_signal: object) -> DeviceProfile:
    """
    Resolves the device profile for a client signal.
    Pure and deterministic: the same signal always yields the same profile.

    Args:
        client_signal: Tier name, legacy device name, or viewport width

    Returns:
        Immutable DeviceProfile for the classified tier
    """
    return DEVICE_PROFILES[classify_tier(client_signal)]
