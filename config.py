import os
import logging
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger("config")

# Variables already present in the process win over .env entries.
load_dotenv()


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    if value is None:
        return default
    value = value.strip()
    return value or default


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %s", name, raw, default)
        return default


def mask_secret(value: Optional[str]) -> str:
    """Return a masked rendering of a credential suitable for logs."""
    if not value:
        return "<unset>"
    if len(value) <= 14:
        return value[:2] + "..."
    return f"{value[:10]}...{value[-4:]}"


@dataclass
class Settings:
    openrouter_api_key: Optional[str] = None
    openrouter_model: str = "anthropic/claude-sonnet-4.5"
    openrouter_site_url: str = "http://localhost:3000"
    openrouter_site_name: str = "AI Website Generator"
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-3-haiku-20240307"
    default_provider: str = "openrouter"
    vercel_token: Optional[str] = None
    vercel_timeout: int = 600
    data_root: str = "data"
    generated_sites_dir: str = "generated-sites"
    public_base_path: str = "/generated-sites"
    max_log_entries: int = 1000
    max_jobs: Optional[int] = None
    file_generation_workers: int = 1
    frontend_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openrouter_api_key=_env("OPENROUTER_API_KEY"),
            openrouter_model=_env("OPENROUTER_MODEL", cls.openrouter_model),
            openrouter_site_url=_env("OPENROUTER_SITE_URL", cls.openrouter_site_url),
            openrouter_site_name=_env("OPENROUTER_SITE_NAME", cls.openrouter_site_name),
            anthropic_api_key=_env("ANTHROPIC_API_KEY"),
            anthropic_model=_env("ANTHROPIC_MODEL", cls.anthropic_model),
            default_provider=_env("DEFAULT_PROVIDER", cls.default_provider),
            vercel_token=_env("VERCEL_TOKEN"),
            vercel_timeout=_env_int("VERCEL_TIMEOUT", cls.vercel_timeout),
            data_root=_env("DATA_ROOT", cls.data_root),
            generated_sites_dir=_env("GENERATED_SITES_DIR", cls.generated_sites_dir),
            public_base_path=_env("PUBLIC_BASE_PATH", cls.public_base_path).rstrip("/"),
            max_log_entries=_env_int("MAX_LOG_ENTRIES", cls.max_log_entries),
            max_jobs=_env_int("MAX_JOBS", None),
            file_generation_workers=max(1, _env_int("FILE_GENERATION_WORKERS", 1)),
            frontend_url=_env("FRONTEND_URL"),
        )

    def ensure_output_dir(self) -> str:
        """Create the generated sites directory, falling back to /tmp when the cwd is not writable."""
        logger.info("Current working directory: %s", os.getcwd())
        try:
            os.makedirs(self.generated_sites_dir, exist_ok=True)
            logger.info("Created/verified output directory: %s", self.generated_sites_dir)
        except OSError:
            logger.exception("Failed to create output directory '%s'; will try /tmp fallback", self.generated_sites_dir)
            self.generated_sites_dir = "/tmp/generated-sites"
            os.makedirs(self.generated_sites_dir, exist_ok=True)
            logger.info("Created fallback output directory: %s", self.generated_sites_dir)
        return self.generated_sites_dir


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
