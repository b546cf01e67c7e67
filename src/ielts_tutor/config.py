"""Application configuration using pydantic-settings."""

import functools
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


def _find_project_root() -> Path:
    """Find project root by locating pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path(__file__).resolve().parent.parent.parent


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from settings.yaml."""

    def get_field_value(self, field_name: str) -> tuple[Any, str, bool]:
        """Not used - we implement __call__ instead."""
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        """Load settings from YAML file."""
        yaml_path = _find_project_root() / "config" / "settings.yaml"
        if not yaml_path.exists():
            return {}

        with open(yaml_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        return flatten_settings(data)


def flatten_settings(data: dict) -> dict[str, Any]:
    """Flatten the nested YAML layout to match Settings field names."""
    flattened = {}
    if 'server' in data:
        flattened['host'] = data['server'].get('host')
        flattened['port'] = data['server'].get('port')
    if 'audio' in data:
        flattened['audio_sample_rate'] = data['audio'].get('sample_rate')
        flattened['audio_channels'] = data['audio'].get('channels')
        flattened['audio_chunk_duration_ms'] = data['audio'].get('chunk_duration_ms')
    if 'openai' in data:
        openai = data['openai']
        flattened['chat_model'] = openai.get('chat_model')
        flattened['summary_model'] = openai.get('summary_model')
        flattened['tts_model'] = openai.get('tts_model')
        flattened['tts_voice'] = openai.get('tts_voice')
        flattened['image_model'] = openai.get('image_model')
        flattened['transcription_model'] = openai.get('transcription_model')
    if 'provider' in data:
        flattened['provider_max_attempts'] = data['provider'].get('max_attempts')
        flattened['provider_backoff_seconds'] = data['provider'].get('backoff_seconds')
        flattened['provider_timeout_seconds'] = data['provider'].get('timeout_seconds')
    if 'storage' in data:
        flattened['data_dir'] = data['storage'].get('data_dir')
        flattened['profile_storage_key'] = data['storage'].get('profile_key')

    # Remove None values
    return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # OpenAI
    openai_api_key: str = Field(description="OpenAI API key")
    chat_model: str = Field(default="gpt-4o-mini")
    summary_model: str = Field(default="gpt-4o-mini")
    tts_model: str = Field(default="tts-1")
    tts_voice: str = Field(default="nova")
    image_model: str = Field(default="dall-e-3")
    transcription_model: str = Field(default="whisper-1")

    # Provider retry policy
    provider_max_attempts: int = Field(default=3, ge=1)
    provider_backoff_seconds: float = Field(default=1.0, ge=0.0)
    provider_timeout_seconds: float = Field(default=60.0)

    # Authentication (optional: None disables auth)
    app_secret: str | None = Field(default=None)

    # Audio
    audio_sample_rate: int = Field(default=24000)
    audio_channels: int = Field(default=1)
    audio_chunk_duration_ms: int = Field(default=100)
    audio_input_device: int | None = Field(default=None)
    audio_output_device: int | None = Field(default=None)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Storage
    data_dir: Path | None = Field(default=None)
    profile_storage_key: str = Field(default="ielts_mastery_v4")

    # Paths
    project_root: Path = Field(default_factory=_find_project_root)

    @property
    def profiles_dir(self) -> Path:
        d = self.data_dir or self.project_root / "data" / "profiles"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def frontend_dir(self) -> Path:
        return self.project_root / "frontend"

    @property
    def audio_chunk_size(self) -> int:
        """Number of samples per audio chunk."""
        return int(self.audio_sample_rate * self.audio_chunk_duration_ms / 1000)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings sources to include YAML file.

        Priority order (highest to lowest):
        1. init_settings (arguments passed to Settings())
        2. env_settings (environment variables)
        3. dotenv_settings (.env file)
        4. YamlSettingsSource (settings.yaml)
        5. file_secret_settings
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )


@functools.lru_cache
def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()


def load_persona(persona_name: str = "default") -> dict:
    """Load tutor persona configuration from YAML file."""
    persona_path = _find_project_root() / "config" / "personas" / f"{persona_name}.yaml"
    if not persona_path.exists():
        raise FileNotFoundError(f"Persona file not found: {persona_path}")
    with open(persona_path, encoding='utf-8') as f:
        data = yaml.safe_load(f)
    return data.get('persona', {})
