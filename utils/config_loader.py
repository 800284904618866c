"""JSON settings files for the crawler, with ``${ENV}`` substitution."""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

from utils.error_handling import ConfigurationError

ENV_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")


class ConfigLoader:
    """Loads settings documents once per path and hands out their sections."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._warned_env: set[str] = set()

    def load_config(self, config_path: str) -> Dict[str, Any]:
        """Return the settings document at ``config_path``.

        The parsed document is cached per path until ``clear_cache``.

        Raises:
            ConfigurationError: missing file, unreadable file, invalid JSON or
                a top-level value that is not an object
        """
        cached = self._documents.get(config_path)
        if cached is not None:
            return cached

        document = self._expand_env(self._read_document(Path(config_path)))
        self._documents[config_path] = document
        self.logger.debug("Loaded settings from %s (sections: %s)",
                          config_path, ", ".join(sorted(document)) or "none")
        return document

    def get_nested_value(self, config: Dict[str, Any], key_path: str,
                         default: Any = None) -> Any:
        """Look up a dotted path such as ``crawler.delay``."""
        node: Any = config
        for part in key_path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def get_section(self, config: Dict[str, Any], section: str) -> Dict[str, Any]:
        """``config[section]``, or an empty dict when the section is absent.

        Raises:
            ConfigurationError: the section exists but is not an object
        """
        value = config.get(section)
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ConfigurationError(
                f"Settings section '{section}' must be an object, got {type(value).__name__}",
                {"section": section},
            )
        return value

    def clear_cache(self, config_path: Optional[str] = None) -> None:
        if config_path is None:
            self._documents.clear()
            self._warned_env.clear()
        else:
            self._documents.pop(config_path, None)

    def _read_document(self, path: Path) -> Dict[str, Any]:
        if not path.is_file():
            raise self._fail(f"Settings file not found: {path}", path)
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise self._fail(f"Invalid JSON in settings file {path}: {e}", path) from e
        except OSError as e:
            raise self._fail(f"Cannot read settings file {path}: {e}", path) from e
        if not isinstance(document, dict):
            raise self._fail(f"Settings file {path} must contain a JSON object", path)
        return document

    def _fail(self, message: str, path: Path) -> ConfigurationError:
        self.logger.error(message)
        return ConfigurationError(message, {"path": str(path)})

    def _expand_env(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {key: self._expand_env(item) for key, item in value.items()}
        if isinstance(value, list):
            return [self._expand_env(item) for item in value]
        if isinstance(value, str):
            return ENV_PATTERN.sub(self._env_value, value)
        return value

    def _env_value(self, match: "re.Match[str]") -> str:
        name = match.group(1)
        value = os.getenv(name)
        if value is None:
            # unset variables become empty strings, warned once per name
            if name not in self._warned_env:
                self.logger.warning("Environment variable %s is not set", name)
                self._warned_env.add(name)
            return ""
        return value


config_loader = ConfigLoader()
