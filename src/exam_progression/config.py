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

        # Flatten nested structure to match Settings field names
        flattened = {}
        if 'server' in data:
            flattened['host'] = data['server'].get('host')
            flattened['port'] = data['server'].get('port')
        if 'storage' in data:
            flattened['data_dir'] = data['storage'].get('data_dir')
            flattened['evidence_retention_days'] = data['storage'].get('evidence_retention_days')
            flattened['evidence_max_dimension'] = data['storage'].get('evidence_max_dimension')
            flattened['evidence_jpeg_quality'] = data['storage'].get('evidence_jpeg_quality')
        if 'engine' in data:
            engine = data['engine']
            flattened['random_seed'] = engine.get('random_seed')
            flattened['maintenance_replay_days'] = engine.get('maintenance_replay_days')
            flattened['export_reminder_days'] = engine.get('export_reminder_days')

        # Remove None values
        return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)

    # Storage
    data_dir: Path | None = Field(default=None)
    evidence_retention_days: int = Field(default=90)
    evidence_max_dimension: int = Field(default=1024)
    evidence_jpeg_quality: int = Field(default=70, ge=1, le=95)

    # Engine
    random_seed: int | None = Field(default=None)
    maintenance_replay_days: int = Field(default=31, ge=1)
    export_reminder_days: int = Field(default=14)

    # Paths
    project_root: Path = Field(default_factory=_find_project_root)

    @property
    def data_root(self) -> Path:
        return self.data_dir or self.project_root / "data"

    @property
    def state_dir(self) -> Path:
        d = self.data_root / "state"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def evidence_dir(self) -> Path:
        d = self.data_root / "evidence"
        d.mkdir(parents=True, exist_ok=True)
        return d

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
