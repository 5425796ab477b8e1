from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from findreplace.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "findreplace.yaml"

ENV_OVERRIDES = {
    "FINDREPLACE_ORG_SITE": "org_site",
    "FINDREPLACE_TOKEN": "token",
    "FINDREPLACE_REF": "ref",
    "FINDREPLACE_ADMIN_URL": "admin_url",
    "FINDREPLACE_HELIX_URL": "helix_url",
}

INT_FIELDS = {"scan_concurrency", "write_concurrency", "page_size"}
FLOAT_FIELDS = {"request_timeout", "discovery_timeout"}


def parse_org_site(value: str) -> Tuple[str, str]:
    """Split an ``/org/site`` string into its two leading segments."""
    parts = [part for part in (value or "").strip().strip("/").split("/") if part]
    if len(parts) < 2:
        raise ConfigurationError(
            "Please enter your organization and site in format: /org/site "
            "(e.g., /myorg/mysite)"
        )
    return parts[0], parts[1]


@dataclass
class Settings:
    org: str = ""
    site: str = ""
    token: str = field(default="", repr=False)
    ref: str = "main"
    admin_url: str = "https://admin.da.live"
    helix_url: str = "https://admin.hlx.page"
    page_domain: str = "aem.page"
    request_timeout: float = 30.0
    discovery_timeout: float = 30.0
    scan_concurrency: int = 10
    write_concurrency: int = 5
    page_size: int = 10
    workdir: Path = Path(".findreplace")

    @property
    def site_prefix(self) -> str:
        return f"/{self.org}/{self.site}"

    def require_site(self) -> None:
        if not self.org or not self.site:
            raise ConfigurationError(
                "Organization and site must be configured (use --org-site /org/site)"
            )

    def with_org_site(self, org_site: str) -> "Settings":
        org, site = parse_org_site(org_site)
        return replace(self, org=org, site=site)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Settings":
        """Build settings from an optional YAML file, then the environment."""
        data: Dict[str, Any] = {}
        config_path = path or Path(DEFAULT_CONFIG_FILE)
        if config_path.exists():
            data = cls._read_yaml(config_path)
        elif path is not None:
            raise ConfigurationError(f"Settings file not found: {config_path}")

        for env_name, key in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                data[key] = value
        return cls.from_mapping(data)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "Settings":
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key == "org_site":
                values["org"], values["site"] = parse_org_site(str(value))
                continue
            if key not in known:
                logger.warning("Unknown settings key '%s' ignored", key)
                continue
            values[key] = value

        try:
            for key in INT_FIELDS & values.keys():
                values[key] = int(values[key])
            for key in FLOAT_FIELDS & values.keys():
                values[key] = float(values[key])
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid numeric setting: {exc}") from exc
        if "workdir" in values:
            values["workdir"] = Path(values["workdir"])

        settings = cls(**values)
        if settings.scan_concurrency < 1 or settings.write_concurrency < 1:
            raise ConfigurationError("Concurrency limits must be at least 1")
        if settings.page_size < 1:
            raise ConfigurationError("page_size must be at least 1")
        return settings

    @staticmethod
    def _read_yaml(path: Path) -> Dict[str, Any]:
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"YAML parse error in '{path}': {exc}") from exc
        except OSError as exc:
            raise ConfigurationError(f"Cannot read settings file '{path}': {exc}") from exc
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ConfigurationError(
                f"Invalid settings file '{path}': top level must be a mapping."
            )
        logger.info("Settings loaded from %s", path.name)
        return raw
