"""
Configuration: model parameters and UI settings from a YAML file.

Location (``--config``):
  1. empty → ./ata2.yml if present (deprecated), else ~/.ata2/ata2.yml
  2. a bare name such as ``work`` → ~/.ata2/work.yml
  3. anything containing a dot → used as a path

API key: ``api-key`` in the file, else ``OPENAI_API_KEY`` (``.env`` files honoured).
"""

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigError, ConfigNotFoundError

_log = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".ata2"
DEFAULT_CONFIG_FILENAME = "ata2.yml"
CONFIG_FILE = CONFIG_DIR / DEFAULT_CONFIG_FILENAME
HISTORY_FILE = CONFIG_DIR / "history"

# Where the first ata release kept its TOML configuration.
V1_CONFIG_FILE = Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config") / "ata" / "ata.toml"

DEFAULT_API_BASE = "https://api.openai.com/v1"
API_KEY_ENV = "OPENAI_API_KEY"
MAX_TOKENS_LIMIT = 2048
MAX_CHOICES = 10
MAX_STOP_PHRASES = 4
LOGIT_BIAS_LIMIT = 2.0

# Parameters of the old completion endpoint; parsed for compatibility, never sent.
LEGACY_KEYS = ("best-of", "logprobs", "echo")

EXAMPLE_CONFIG = """\
api-key: "<YOUR SECRET API KEY>"
model: gpt-3.5-turbo
max-tokens: 2048
temperature: 0.8
"""


@dataclass(frozen=True)
class ConfigLocation:
    """Where ``--config`` points: ``auto``, a ``named`` preset, or a ``path``."""

    kind: str = "auto"
    value: str = ""

    @classmethod
    def parse(cls, text: Optional[str]) -> "ConfigLocation":
        text = (text or "").strip()
        if not text:
            return cls("auto")
        if "." not in text:
            return cls("named", text)
        return cls("path", text)

    def resolve(self, config_dir: Optional[Path] = None, cwd: Optional[Path] = None) -> Path:
        config_dir = config_dir or CONFIG_DIR
        if self.kind == "named":
            return config_dir / f"{self.value}.yml"
        if self.kind == "path":
            return Path(self.value).expanduser()
        local = (cwd or Path.cwd()) / DEFAULT_CONFIG_FILENAME
        if local.exists():
            _log.warning(
                "%s found in working directory BUT UNSPECIFIED. This behavior is "
                "DEPRECATED. Please move it to %s.", DEFAULT_CONFIG_FILENAME, config_dir,
            )
            return local
        return config_dir / DEFAULT_CONFIG_FILENAME


def _check_range(name: str, value, low, high) -> None:
    if value < low or value > high:
        raise ConfigError(f"{name} must be between {low} and {high}")


@dataclass
class UiConfig:
    double_ctrlc: bool = True
    hide_config: bool = False
    redact_api_key: bool = True
    multiline_insertions: bool = False
    save_history: bool = True
    history_file: Path = field(default_factory=lambda: HISTORY_FILE)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], config_dir: Optional[Path] = None) -> "UiConfig":
        ui = cls()
        if config_dir is not None:
            ui.history_file = Path(config_dir) / HISTORY_FILE.name
        ui.double_ctrlc = Config._coerce_bool(data.get("double-ctrlc", ui.double_ctrlc), "ui.double-ctrlc")
        ui.hide_config = Config._coerce_bool(data.get("hide-config", ui.hide_config), "ui.hide-config")
        ui.redact_api_key = Config._coerce_bool(
            data.get("redact-api-key", ui.redact_api_key), "ui.redact-api-key"
        )
        ui.multiline_insertions = Config._coerce_bool(
            data.get("multiline-insertions", ui.multiline_insertions), "ui.multiline-insertions"
        )
        ui.save_history = Config._coerce_bool(data.get("save-history", ui.save_history), "ui.save-history")
        if data.get("history-file"):
            ui.history_file = Path(str(data["history-file"])).expanduser()
        return ui

    def validate(self) -> None:
        history_dir = Path(self.history_file).parent
        if not history_dir.is_dir():
            raise ConfigError(f"History file directory does not exist: {history_dir}")
        if not os.access(history_dir, os.W_OK):
            raise ConfigError("History file dir is read-only")

    def summary(self) -> Dict[str, Any]:
        return {
            "double_ctrlc": self.double_ctrlc,
            "hide_config": self.hide_config,
            "redact_api_key": self.redact_api_key,
            "multiline_insertions": self.multiline_insertions,
            "save_history": self.save_history,
            "history_file": str(self.history_file),
        }


@dataclass
class Config:
    api_key: Optional[str] = None
    api_base: str = DEFAULT_API_BASE
    model: str = "gpt-3.5-turbo"
    max_tokens: int = 16
    temperature: float = 0.5
    suffix: Optional[str] = None
    top_p: float = 1.0
    n: int = 1
    stream: bool = True
    stop: List[str] = field(default_factory=list)
    presence_penalty: float = 0.0
    frequency_penalty: float = 0.0
    logit_bias: Dict[str, float] = field(default_factory=dict)
    ui: UiConfig = field(default_factory=UiConfig)
    _config_source: str = ""

    @classmethod
    def load(
        cls, location: str = "", config_dir: Optional[Path] = None, v1_file: Optional[Path] = None,
    ) -> "Config":
        """Read, parse and validate the configuration file.

        A missing file is first recovered from the old TOML configuration,
        when one exists.
        """
        config_dir = config_dir or CONFIG_DIR
        config_dir.mkdir(parents=True, exist_ok=True)
        path = ConfigLocation.parse(location).resolve(config_dir)
        if not path.exists() and not migrate_v1_config(path, v1_file or V1_CONFIG_FILE):
            raise ConfigNotFoundError(path)

        for env_path in [config_dir / ".env", Path.cwd() / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Config parsing failure in {path}: {e}")
        if not isinstance(data, dict):
            raise ConfigError(f"Config parsing failure in {path}: expected a mapping")

        config = cls.from_dict(data, config_dir)
        config._config_source = str(path)
        config.validate()
        return config

    @classmethod
    def from_dict(cls, data: Dict[str, Any], config_dir: Optional[Path] = None) -> "Config":
        config = cls()
        if data.get("api-key") is not None:
            config.api_key = str(data["api-key"])
        config.api_base = str(data.get("api-base") or DEFAULT_API_BASE).rstrip("/")
        config.model = str(data.get("model", config.model) or "")
        config.max_tokens = cls._coerce_int(data.get("max-tokens", config.max_tokens), "max-tokens")
        config.temperature = cls._coerce_float(data.get("temperature", config.temperature), "temperature")
        if data.get("suffix") is not None:
            config.suffix = str(data["suffix"])
        config.top_p = cls._coerce_float(data.get("top-p", config.top_p), "top-p")
        config.n = cls._coerce_int(data.get("n", config.n), "n")
        config.stream = cls._coerce_bool(data.get("stream", True), "stream")
        config.stop = cls._coerce_stop(data.get("stop", []))
        config.presence_penalty = cls._coerce_float(
            data.get("presence-penalty", config.presence_penalty), "presence-penalty"
        )
        config.frequency_penalty = cls._coerce_float(
            data.get("frequency-penalty", config.frequency_penalty), "frequency-penalty"
        )
        config.logit_bias = cls._coerce_logit_bias(data.get("logit-bias", {}))

        ui_data = data.get("ui") or {}
        if not isinstance(ui_data, dict):
            raise ConfigError("ui must be a mapping")
        config.ui = UiConfig.from_dict(ui_data, config_dir)

        if not config.stream:
            _log.warning("Stream is disabled. This is not supported anymore and will be ignored.")
        ignored = [key for key in LEGACY_KEYS if key in data]
        if config.suffix is not None:
            ignored.append("suffix")
        if ignored:
            _log.warning("Ignoring legacy completion parameters: %s", ", ".join(ignored))
        return config

    def validate(self) -> None:
        """Raise ``ConfigError`` on the first out-of-range value."""
        if self.api_key is not None and not self.api_key:
            raise ConfigError("API key is empty")
        if not self.model:
            raise ConfigError("Model ID is missing")
        _check_range("Max tokens", self.max_tokens, 1, MAX_TOKENS_LIMIT)
        _check_range("Temperature", self.temperature, 0.0, 1.0)
        if self.suffix is not None and not self.suffix:
            raise ConfigError("Suffix cannot be an empty string")
        _check_range("Top-p", self.top_p, 0.0, 1.0)
        _check_range("n", self.n, 1, MAX_CHOICES)
        if any(not stop for stop in self.stop) or len(self.stop) > MAX_STOP_PHRASES:
            raise ConfigError(
                f"Stop phrases cannot contain empties and are limited to {MAX_STOP_PHRASES}"
            )
        _check_range("Presence penalty", self.presence_penalty, 0.0, 1.0)
        _check_range("Frequency penalty", self.frequency_penalty, 0.0, 1.0)
        for key, value in self.logit_bias.items():
            _check_range(f"logit_bias for {key}", value, -LOGIT_BIAS_LIMIT, LOGIT_BIAS_LIMIT)
        self.ui.validate()

    def resolve_api_key(self) -> Optional[str]:
        if self.api_key:
            return self.api_key
        return os.environ.get(API_KEY_ENV)

    @property
    def endpoint(self) -> str:
        return f"{self.api_base}/chat/completions"

    def request_params(self) -> Dict[str, Any]:
        """Model parameters for the chat-completion body, passed through as-is."""
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "n": self.n,
            "stop": list(self.stop) or None,
            "presence_penalty": self.presence_penalty,
            "frequency_penalty": self.frequency_penalty,
            "logit_bias": dict(self.logit_bias),
        }

    def summary(self) -> Dict[str, Any]:
        """Named fields for display; the API key is redacted when configured."""
        if self.ui.redact_api_key:
            api_key = "[redacted]"
        elif self.api_key:
            api_key = self.api_key
        else:
            api_key = f"(from ${API_KEY_ENV})" if os.environ.get(API_KEY_ENV) else "(not set)"
        return {
            "api_key": api_key,
            "api_base": self.api_base,
            "model": self.model.upper(),
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "suffix": self.suffix,
            "top_p": self.top_p,
            "n": self.n,
            "stream": self.stream,
            "stop": self.stop,
            "presence_penalty": self.presence_penalty,
            "frequency_penalty": self.frequency_penalty,
            "logit_bias": self.logit_bias,
            "ui": self.ui.summary(),
            "config": self._config_source or "(defaults)",
        }

    @staticmethod
    def _coerce_bool(value, key: str) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            text = value.strip().lower()
            if text in ("1", "true", "yes", "on"):
                return True
            if text in ("0", "false", "no", "off"):
                return False
        if isinstance(value, int):
            return bool(value)
        raise ConfigError(f"{key} must be true/false, yes/no, on/off, or 1/0")

    @staticmethod
    def _coerce_int(value, key: str) -> int:
        if isinstance(value, bool):
            raise ConfigError(f"{key} must be an integer")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{key} must be an integer")

    @staticmethod
    def _coerce_float(value, key: str) -> float:
        if isinstance(value, bool):
            raise ConfigError(f"{key} must be a number")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{key} must be a number")

    @staticmethod
    def _coerce_stop(value) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, list):
            return [str(item) if item is not None else "" for item in value]
        raise ConfigError("stop must be a string or a list of strings")

    @staticmethod
    def _coerce_logit_bias(value) -> Dict[str, float]:
        if not value:
            return {}
        if not isinstance(value, dict):
            raise ConfigError("logit-bias must be a mapping of token id to bias")
        return {
            str(token): Config._coerce_float(bias, f"logit-bias.{token}")
            for token, bias in value.items()
        }


def write_example_config(path: Path) -> Path:
    """Write ``EXAMPLE_CONFIG`` to ``path`` for the user to edit."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(EXAMPLE_CONFIG)
    return path


def _kebab_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key.replace("_", "-"): _kebab_keys(value) if isinstance(value, dict) and key != "logit_bias" else value
        for key, value in data.items()
    }


def migrate_v1_config(target: Path, v1_file: Path) -> bool:
    """Rewrite the old TOML config as YAML at ``target``.

    Returns False when there is no old file to migrate.
    """
    v1_file = Path(v1_file)
    if not v1_file.is_file():
        return False
    try:
        with open(v1_file, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Config parsing failure in {v1_file}: {e}")

    target = Path(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as f:
        yaml.safe_dump(_kebab_keys(data), f, default_flow_style=False, sort_keys=False)
    _log.warning("Copied old configuration file %s to %s", v1_file, target)
    return True
