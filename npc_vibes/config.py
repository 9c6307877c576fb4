"""Application configuration loaded from environment variables and .env file."""

from pydantic_settings import BaseSettings, SettingsConfigDict

from npc_vibes.core.entities import ClientContext
from npc_vibes.core.options import VibeOptions


class Settings(BaseSettings):
    """Application settings.

    Values are loaded from environment variables first,
    then from a .env file in the project root as fallback.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    DATABASE_URL: str = "sqlite:///./npc_vibes.db"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # This process's user
    CLIENT_USER_ID: str = "gamemaster"
    CLIENT_IS_GM: bool = True

    # World options
    ENABLE_VISUAL_INDICATORS: bool = True
    ENABLE_NOTIFICATIONS: bool = True
    DEFAULT_SIGHT_RANGE: float = 300.0
    IGNORE_WALLS: bool = False
    NPC_VISION_EXEMPT: bool = True
    REQUIRE_HUMANOID: bool = False
    AURA_OPACITY: int = 70
    AURA_SIZE: float = 1.5

    # Timing
    SIGHT_CACHE_SECONDS: float = 1.0
    SAVE_DEBOUNCE_SECONDS: float = 1.0
    FLUSH_INTERVAL_SECONDS: float = 0.25

    def vibe_options(self) -> VibeOptions:
        """Build the runtime-mutable world options from settings."""
        return VibeOptions(
            enable_visual_indicators=self.ENABLE_VISUAL_INDICATORS,
            enable_notifications=self.ENABLE_NOTIFICATIONS,
            default_sight_range=self.DEFAULT_SIGHT_RANGE,
            ignore_walls=self.IGNORE_WALLS,
            npc_vision_exempt=self.NPC_VISION_EXEMPT,
            require_humanoid=self.REQUIRE_HUMANOID,
            aura_opacity=self.AURA_OPACITY,
            aura_size=self.AURA_SIZE,
        )

    def client_context(self) -> ClientContext:
        return ClientContext(user_id=self.CLIENT_USER_ID, is_gm=self.CLIENT_IS_GM)


settings = Settings()
