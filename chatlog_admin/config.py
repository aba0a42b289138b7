import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """
    Console settings with validation.
    Loaded from environment variables and an optional .env file.
    """

    # --- Directory Paths ---
    base_dir: str = Field(
        default_factory=lambda: os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
        description="Base directory of the project",
    )

    preferences_path: str | None = Field(
        default=None,
        description="JSON file holding view mode and page size preferences",
    )

    @property
    def resolved_preferences_path(self) -> str:
        """Preferences file, defaulting to <base_dir>/.chatlog_admin/preferences.json."""
        if self.preferences_path:
            return self.preferences_path
        return os.path.join(self.base_dir, ".chatlog_admin", "preferences.json")

    # --- Backing Store ---
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_service_key: str = Field(..., description="Supabase service key")
    admin_access_token: str | None = Field(
        default=None,
        description="Bearer credential of the signed-in admin operator",
    )
    chat_logs_table: str = Field(
        default="chat_logs", description="Table holding chat message records"
    )
    appointments_table: str = Field(
        default="appointments", description="Table holding booked appointments"
    )

    # --- Client Classification ---
    default_client_signal: str = Field(
        default="desktop",
        description="Device signal used when the caller does not supply one",
    )

    # --- Deletion ---
    confirmation_debounce_ms: int = Field(
        default=100,
        description="Window after opening a delete dialog in which auto-close is ignored",
        ge=0,
        le=1000,
    )
    post_delete_reload_delay_ms: int = Field(
        default=0,
        description="Delay before the verification reload that follows a delete",
        ge=0,
        le=5000,
    )

    # --- Logging ---
    log_level: str = Field(default="INFO", description="Root log level")
    structured_logging: bool = Field(
        default=True, description="Emit JSON log lines instead of plain text"
    )

    model_config = SettingsConfigDict(
        env_file=os.getenv("DOTENV_PATH", ".env"),
        case_sensitive=False,
        extra="ignore",
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get or create the settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None


def check_env_vars() -> Settings:
    """
    Validates that the required environment variables are present.

    Raises:
        ValidationError: If required variables are missing
    """
    try:
        settings = get_settings()
        print("✅ Chat logs console configuration loaded.")
        return settings
    except Exception as e:
        print(f"❌ Configuration error: {e}")
        raise
