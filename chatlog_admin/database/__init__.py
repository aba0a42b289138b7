"""
Database package exports for backing store collaborators.
"""

from chatlog_admin.database.auth import CredentialProvider, StaticCredentialProvider
from chatlog_admin.database.supabase import (
    SupabaseGateway,
    SupabaseMessageSource,
    SupabaseAppointmentStore,
)
from chatlog_admin.database.preferences import (
    PreferenceStore,
    InMemoryPreferenceStore,
    JsonFilePreferenceStore,
    VIEW_MODE_KEY,
    page_size_key,
)

__all__ = [
    "CredentialProvider",
    "StaticCredentialProvider",
    "SupabaseGateway",
    "SupabaseMessageSource",
    "SupabaseAppointmentStore",
    "PreferenceStore",
    "InMemoryPreferenceStore",
    "JsonFilePreferenceStore",
    "VIEW_MODE_KEY",
    "page_size_key",
]
