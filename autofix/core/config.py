"""
Service configuration.

Settings are read from the environment (and a local .env file) exactly once at
process start and handed to every component; nothing below the API layer looks
at os.environ.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv

VERSION = "1.0.0"

GENERATION_PROVIDERS = ("gemini", "ollama")


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default


def _env_str(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _env_list(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name, "")
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    # Storage
    data_dir: Path = Path("./data")

    # Hosting API
    github_token: str = ""
    github_api_url: str = "https://api.github.com"
    http_timeout_sec: float = 30.0

    # Generative collaborator
    generation_provider: str = "gemini"  # gemini|ollama
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    ollama_model: str = "llama3.1"
    ollama_host: Optional[str] = None

    # Context bounds
    sample_file_limit: int = 50
    sample_char_limit: int = 3500

    # Pipeline toggles
    auto_pr: bool = True
    require_approval: bool = False
    demo_fallback: bool = True

    # Admin and signing
    admin_key: str = ""
    signing_key: str = ""
    signer_id: str = "autofix-server"

    # Autoscan
    autoscan_enabled: bool = True
    autoscan_interval_min: int = 60
    autoscan_repos: Tuple[str, ...] = field(default_factory=tuple)

    # Naming
    branch_prefix: str = "autofix"
    commit_prefix: str = "Autofix"

    debug: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Build settings from the process environment, loading .env first."""
        load_dotenv(env_file)
        return cls(
            data_dir=Path(_env_str("DATA_DIR", "./data")),
            github_token=_env_str("GITHUB_TOKEN"),
            github_api_url=_env_str("GITHUB_API_URL", "https://api.github.com").rstrip("/"),
            http_timeout_sec=float(_env_int("HTTP_TIMEOUT_SEC", 30)),
            generation_provider=_env_str("GENERATION_PROVIDER", "gemini").lower(),
            gemini_api_key=_env_str("GEMINI_API_KEY"),
            gemini_model=_env_str("GEMINI_MODEL", "gemini-2.5-flash"),
            ollama_model=_env_str("OLLAMA_MODEL", "llama3.1"),
            ollama_host=_env_str("OLLAMA_HOST") or None,
            sample_file_limit=_env_int("SAMPLE_FILE_LIMIT", 50),
            sample_char_limit=_env_int("SAMPLE_CHAR_LIMIT", 3500),
            auto_pr=_env_bool("AUTO_PR", True),
            require_approval=_env_bool("REQUIRE_APPROVAL", False),
            demo_fallback=_env_bool("DEMO_FALLBACK", True),
            admin_key=_env_str("ADMIN_KEY"),
            signing_key=_env_str("SIGNING_KEY"),
            signer_id=_env_str("SIGNER_ID", "autofix-server"),
            autoscan_enabled=_env_bool("AUTOSCAN_ENABLED", True),
            autoscan_interval_min=_env_int("AUTOSCAN_INTERVAL_MIN", 60),
            autoscan_repos=_env_list("AUTOSCAN_REPOS"),
            branch_prefix=_env_str("BRANCH_PREFIX", "autofix"),
            commit_prefix=_env_str("COMMIT_PREFIX", "Autofix"),
            debug=_env_bool("DEBUG", False),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        )

    def with_overrides(self, **changes) -> "Settings":
        return replace(self, **changes)

    @property
    def patches_path(self) -> Path:
        return self.data_dir / "patches.json"

    @property
    def proposals_path(self) -> Path:
        return self.data_dir / "proposals.json"

    @property
    def autoscan_path(self) -> Path:
        return self.data_dir / "autoscan.json"

    @property
    def autoscan_interval_sec(self) -> int:
        return max(1, self.autoscan_interval_min) * 60

    def validate(self) -> List[str]:
        """Validate configuration and return any issues."""
        issues = []

        if self.generation_provider not in GENERATION_PROVIDERS:
            issues.append(f"Invalid GENERATION_PROVIDER: {self.generation_provider}")

        if self.generation_provider == "gemini" and not self.gemini_api_key:
            issues.append("GEMINI_API_KEY not set; generation will be unavailable")

        if not self.github_token:
            issues.append("GITHUB_TOKEN not set; PR creation will fail without it")

        if not self.admin_key:
            issues.append("ADMIN_KEY not set; admin endpoints are unprotected")

        if not self.signing_key:
            issues.append("SIGNING_KEY not set; signatures will not verify across restarts")

        if self.autoscan_interval_min < 1:
            issues.append("AUTOSCAN_INTERVAL_MIN must be >= 1")

        if self.sample_file_limit < 0 or self.sample_char_limit < 0:
            issues.append("SAMPLE_FILE_LIMIT and SAMPLE_CHAR_LIMIT must be >= 0")

        return issues
