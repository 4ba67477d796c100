"""Configuration management for the EUROWATCH pipeline."""

from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class HttpConfig(BaseModel):
    """HTTP client configuration."""

    timeout: int = Field(default=25, description="Request timeout in seconds")
    max_retries: int = Field(default=3, description="Maximum attempts per request")
    retry_backoff: float = Field(default=2.0, description="Exponential backoff base in seconds")
    retry_max_wait: float = Field(default=60.0, description="Upper bound for a single backoff")
    rate_limit_delay: float = Field(
        default=0.1, description="Politeness delay between requests in seconds"
    )
    user_agent: str = "Mozilla/5.0 (compatible; EUROWATCH/1.0)"


class DatabaseConfig(BaseModel):
    """Embedded database configuration."""

    url: str = "sqlite:///data/eurowatch.db"
    echo: bool = False
    busy_timeout_ms: int = 30000


class FetchConfig(BaseModel):
    """Verbatim report fetcher configuration."""

    base_url: str = "https://www.europarl.europa.eu/doceo/document"
    api_url: str = "https://data.europarl.europa.eu/api/v2"
    earliest_date: str = "1999-07-20"
    min_content_length: int = Field(
        default=100, description="Minimum extractable text for a stored sitting"
    )
    min_html_length: int = 500
    max_days_back: int = Field(default=365, description="Discovery look-back window")
    concurrency: int = Field(default=2, description="Concurrent sitting downloads")
    api_page_size: int = 500
    api_language: str = "EN"


class ParsingConfig(BaseModel):
    """Speech splitting configuration."""

    min_speech_length: int = Field(
        default=40, description="Minimum body length for a stored speech"
    )
    max_title_length: int = Field(
        default=80, description="Longest header accepted as a title-only line"
    )
    recent_days: int = 365


class TopicsConfig(BaseModel):
    """Speech-to-agenda alignment configuration."""

    snippet_offsets: list[int] = Field(default_factory=lambda: [0, 40, 80, 120])
    snippet_length: int = 160
    min_snippet_length: int = 80
    min_section_length: int = 100
    min_speech_length: int = 50
    min_token_length: int = 4
    threshold: float = Field(default=0.08, description="Minimum token coverage score")


class GroupsConfig(BaseModel):
    """Political group normalization configuration."""

    synonyms_file: Optional[Path] = Field(
        default=None, description="JSON object of extra CODE -> canonical synonyms"
    )
    sentence_word_limit: int = 8
    report_top_unknowns: int = 50


class LanguageConfig(BaseModel):
    """Language detection configuration."""

    min_probability: float = 0.60
    chunk_size: int = 600
    max_text_length: int = 50000
    vote_threshold: float = 0.72
    fallback_confidence: float = 0.75
    script_ratio: float = 0.30
    script_min_chars: int = 20
    nudge_threshold: float = 0.70
    batch_size: int = 500
    seed: int = 0


class ClassifierConfig(BaseModel):
    """LLM topic classifier configuration."""

    model: str = "gpt-5-nano"
    api_key: Optional[str] = Field(default=None, description="Falls back to OPENAI_API_KEY")
    base_url: Optional[str] = None
    mode: Literal["speech", "topic"] = "speech"
    concurrency: int = 10
    max_retries: int = 3
    retry_backoff: float = 2.0
    max_rpm: int = 5000
    max_tpm: int = 2_000_000
    budget_ratio: float = 0.9
    input_price_per_million: float = 0.05
    output_price_per_million: float = 0.40
    max_input_chars: int = 12000


class AnalyticsConfig(BaseModel):
    """Analytics cache configuration."""

    top_groups: int = 10
    top_countries: int = 20
    top_languages: int = 24
    top_topics: int = 20
    top_focuses: int = 20
    persist: bool = True


class ExportConfig(BaseModel):
    """Export configuration."""

    output_dir: Path = Path("data/exports")
    batch_size: int = 5000
    fields: list[str] = Field(
        default_factory=lambda: [
            "id",
            "date",
            "speech_order",
            "speaker_name",
            "political_group_std",
            "political_group_kind",
            "title",
            "language",
            "topic",
            "macro_topic",
            "speech_content",
        ]
    )
    parquet_compression: str = "zstd"


class PipelineConfig(BaseModel):
    """General run configuration."""

    log_level: str = "INFO"
    data_dir: Path = Path("data")
    log_file: Optional[Path] = None


class Config(BaseSettings):
    """Root configuration combining all settings."""

    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    parsing: ParsingConfig = Field(default_factory=ParsingConfig)
    topics: TopicsConfig = Field(default_factory=TopicsConfig)
    groups: GroupsConfig = Field(default_factory=GroupsConfig)
    language: LanguageConfig = Field(default_factory=LanguageConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)

    model_config = {
        "extra": "ignore",
        "env_prefix": "EUROWATCH_",
        "env_nested_delimiter": "__",
    }

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls(**data) if data else cls()

    @classmethod
    def default(cls) -> "Config":
        """Return default configuration."""
        return cls()

    def to_yaml(self, path: Path) -> None:
        """Save configuration to a YAML file."""
        data = self.model_dump(mode="json", exclude={"classifier": {"api_key"}})
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
