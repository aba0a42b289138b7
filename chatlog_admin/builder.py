"""
Service builder for the chat logs console.
Assembles settings, Supabase gateways, preferences and the facade.
"""

from supabase import create_client

from chatlog_admin import config
from chatlog_admin.database.auth import CredentialProvider, StaticCredentialProvider
from chatlog_admin.database.preferences import JsonFilePreferenceStore, PreferenceStore
from chatlog_admin.database.supabase import SupabaseAppointmentStore, SupabaseMessageSource
from chatlog_admin.services.chat_logs_service import ChatLogsService
from chatlog_admin.services.device_profile import resolve_device_profile
from chatlog_admin.utils.logger import get_logger, set_device_tier

logger = get_logger(__name__)


def build_chat_logs_service(
    client_signal: object = None,
    credential_provider: CredentialProvider | None = None,
    preference_store: PreferenceStore | None = None,
) -> ChatLogsService:
    """
    Builds a ready-to-load chat logs console.

    Args:
        client_signal: Tier name, device name or viewport width; falls back
            to settings.default_client_signal
        credential_provider: Source of the operator's bearer token; defaults
            to the token in settings
        preference_store: Preference persistence; defaults to a JSON file at
            settings.resolved_preferences_path

    Returns:
        ChatLogsService with no data loaded yet
    """
    settings = config.get_settings()

    signal = client_signal if client_signal is not None else settings.default_client_signal
    profile = resolve_device_profile(signal)
    set_device_tier(profile.tier)

    logger.info(
        "console_components_initializing",
        tier=profile.tier,
        chat_logs_table=settings.chat_logs_table,
        appointments_table=settings.appointments_table,
    )

    client = create_client(settings.supabase_url, settings.supabase_service_key)
    credentials = credential_provider or StaticCredentialProvider(settings.admin_access_token)

    service = ChatLogsService(
        profile=profile,
        message_source=SupabaseMessageSource(client, credentials, settings.chat_logs_table),
        appointment_store=SupabaseAppointmentStore(client, settings.appointments_table),
        preference_store=preference_store
        or JsonFilePreferenceStore(settings.resolved_preferences_path),
        confirmation_debounce_ms=settings.confirmation_debounce_ms,
        reload_delay_ms=settings.post_delete_reload_delay_ms,
    )

    logger.info("console_components_ready", tier=profile.tier)
    return service
