"""Configuration management."""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml


@dataclass
class GitHubConfig:
    """GitHub API settings."""
    api_base: str = "https://api.github.com"
    graphql_url: str = "https://api.github.com/graphql"
    request_timeout: float = 30.0


@dataclass
class ClaudeConfig:
    """Claude API settings."""
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    temperature: float = 0.2
    max_retries: int = 5
    initial_retry_delay: float = 2.0
    request_delay: float = 1.5


@dataclass
class TranslationConfig:
    """Translation prompts and limits."""
    target_language: str = "Simplified Chinese"
    max_document_chars: int = 20000
    description: dict = field(default_factory=lambda: {
        "system": "You translate short open source project descriptions into {language}.",
        "user": "Translate this description. Reply with the translation only.\n\n{text}",
    })
    readme: dict = field(default_factory=lambda: {
        "system": "You translate technical markdown documents into {language}. Keep markdown, code blocks and links intact.",
        "user": "Translate this README. Reply with the translated markdown only.\n\n{text}",
    })
    release_note: dict = field(default_factory=lambda: {
        "system": "You translate software release notes into {language}. Keep markdown intact.",
        "user": "Translate these release notes. Reply with the translation only.\n\n{text}",
    })


@dataclass
class AssetsConfig:
    """Asset storage settings."""
    root_dir: Path = Path("assets")
    public_base_url: str = "http://localhost:8000/assets"
    download_timeout: float = 30.0


@dataclass
class PathsConfig:
    """Path settings."""
    records_dir: Path = Path("data/records")
    snapshots_dir: Path = Path("data/snapshots")
    reports_dir: Path = Path("reports")


@dataclass
class PipelineConfig:
    """Refresh pipeline settings."""
    task_name: str = "update-github-data"
    step_timeout: float = 60.0
    excluded_status: str = "deprecated"
    icon_url_template: str = "https://avatars.githubusercontent.com/u/{owner_id}?v=3&s=100"


@dataclass
class WebhookConfig:
    """Webhook delivery settings."""
    timeout: float = 10.0


@dataclass(frozen=True)
class WebhookSettings:
    """Webhook destinations and signing token for one run."""
    urls: tuple[str, ...] = ()
    token: Optional[str] = None
    timeout_seconds: float = 10.0

    @property
    def enabled(self) -> bool:
        return bool(self.urls)


def parse_destinations(value: Optional[str]) -> tuple[str, ...]:
    """Split a delimited list of webhook URLs, keeping order and dropping duplicates."""
    if not value:
        return ()
    urls: list[str] = []
    for part in re.split(r"[,;\s]+", value):
        part = part.strip()
        if part and part not in urls:
            urls.append(part)
    return tuple(urls)


@dataclass
class Settings:
    """Application settings."""

    # Secrets (from environment only)
    github_token: Optional[str] = None
    anthropic_api_key: str = ""
    webhook_urls: str = ""
    webhook_token: Optional[str] = None

    # Config sections
    github: GitHubConfig = field(default_factory=GitHubConfig)
    claude: ClaudeConfig = field(default_factory=ClaudeConfig)
    translation: TranslationConfig = field(default_factory=TranslationConfig)
    assets: AssetsConfig = field(default_factory=AssetsConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)

    @property
    def claude_model(self) -> str:
        return self.claude.model

    @property
    def claude_request_delay(self) -> float:
        return self.claude.request_delay

    @property
    def step_timeout(self) -> float:
        return self.pipeline.step_timeout

    def webhook_settings(self) -> WebhookSettings:
        return WebhookSettings(
            urls=parse_destinations(self.webhook_urls),
            token=self.webhook_token or None,
            timeout_seconds=self.webhook.timeout,
        )


def load_config(config_path: Path = Path("config.yaml")) -> dict:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_settings(config_path: Path = Path("config.yaml")) -> Settings:
    """Get application settings from YAML config and environment."""
    config = load_config(config_path)

    settings = Settings(
        github_token=os.getenv("GITHUB_TOKEN"),
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
        webhook_urls=os.getenv("DAILY_WEBHOOK_URL", ""),
        webhook_token=os.getenv("DAILY_WEBHOOK_TOKEN"),
    )

    for section in ("github", "claude", "pipeline", "webhook"):
        for key, value in config.get(section, {}).items():
            setattr(getattr(settings, section), key, value)

    for key, value in config.get("paths", {}).items():
        setattr(settings.paths, key, Path(value))

    for key, value in config.get("assets", {}).items():
        setattr(settings.assets, key, Path(value) if key == "root_dir" else value)

    if "translation" in config:
        settings.translation = TranslationConfig(**config["translation"])

    return settings
