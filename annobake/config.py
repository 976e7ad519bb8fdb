from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    data_dir: Path = Field(default=Path('./data'))
    log_level: str = Field(
        default='INFO',
        validation_alias=AliasChoices('ANNOBAKE_LOG_LEVEL', 'LOG_LEVEL'),
    )

    # Input limits
    max_pdf_bytes: int = 50 * 1024 * 1024

    # Export naming
    export_prefix: str = 'annotated-'

    # Highlight / underline
    highlight_color: str = '#FFEB3B'
    highlight_opacity: float = 0.3
    underline_color: str = '#FF0000'
    underline_thickness: float = 2.0
    # Viewer-space size used when a selection box is missing
    fallback_width: float = 100.0
    fallback_height: float = 20.0
    # Subtracted from the flipped Y when a record carries no height
    y_fallback_offset: float = 10.0

    # Comment callouts
    comment_icon_size: float = 20.0
    comment_icon_color: str = '#FFCC00'
    comment_icon_opacity: float = 0.8
    comment_font_name: str = 'Helvetica'
    # TrueType font for comment text Helvetica cannot encode
    comment_unicode_font_path: Path | None = None
    comment_cjk_font_name: str = 'STSong-Light'
    comment_font_size: float = 10.0
    comment_margin: float = 10.0
    comment_match_tolerance: float = 10.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    (settings.data_dir / 'sessions').mkdir(parents=True, exist_ok=True)
    return settings
