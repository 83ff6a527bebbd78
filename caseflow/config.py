from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

_DEFAULT_CONFIG_FILE = Path("config") / "defaults.toml"


def _resolve_config_file() -> Path:
    raw = (os.getenv("APP_CONFIG_FILE") or "").strip()
    if raw:
        return Path(raw)
    return _DEFAULT_CONFIG_FILE


class Settings(BaseSettings):
    log_level: str = "INFO"
    tz: str = "UTC"
    redis_url: str = "redis://redis:6379/0"
    case_sequence_enabled: bool = True
    case_sequence_key_prefix: str = "case:seq"
    sla_default_business_hours_start: str = "09:00"
    sla_default_business_hours_end: str = "18:00"
    sla_default_business_days: str = "1,2,3,4,5"
    template_suggestion_limit: int = 5
    reassignment_suggestion_limit: int = 5

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        toml_settings = TomlConfigSettingsSource(settings_cls, toml_file=_resolve_config_file())
        return (init_settings, env_settings, dotenv_settings, toml_settings, file_secret_settings)

    def parsed_default_business_days(self) -> frozenset[int]:
        days: set[int] = set()
        for token in self.sla_default_business_days.split(","):
            normalized = token.strip()
            if not normalized:
                continue
            try:
                day = int(normalized)
            except ValueError:
                continue
            if 0 <= day <= 6:
                days.add(day)
        if not days:
            return frozenset({1, 2, 3, 4, 5})
        return frozenset(days)


@lru_cache(1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
