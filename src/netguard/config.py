"""
ConfigLoader - Locates, parses and validates the checker configuration file
"""

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger

from netguard.checkers.models import CheckerConfig

DEFAULT_CONFIG_FILE = "config.yaml"


class ConfigError(ValueError):
    """Raised when the configuration cannot be used"""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


@dataclass
class LoggingSettings:
    """Log sink settings from the optional `logging` section"""

    level: str = "INFO"
    file: Optional[str] = None
    rotation: str = "10 MB"
    retention: str = "7 days"

    @staticmethod
    def from_dict(data: Optional[Dict[str, Any]]) -> "LoggingSettings":
        data = data or {}
        return LoggingSettings(
            level=str(data.get("level", "INFO")).upper(),
            file=data.get("file"),
            rotation=str(data.get("rotation", "10 MB")),
            retention=str(data.get("retention", "7 days")),
        )


@dataclass
class GuardConfig:
    """Everything read from one configuration file"""

    checkers: List[CheckerConfig] = field(default_factory=list)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    source: Optional[Path] = None


class ConfigLoader:
    """
    Loads checker definitions from YAML.

    The file is either a list of checkers, or a mapping with a `checkers`
    list and an optional `logging` section.
    """

    def __init__(self, path: str = DEFAULT_CONFIG_FILE):
        """
        Initialize ConfigLoader

        Args:
            path: Configuration file, absolute or relative
        """
        self.path = path

    def locate(self) -> Path:
        """
        Find the configuration file

        Looks at the path as given, then next to the running executable.

        Raises:
            FileNotFoundError: If no candidate exists
        """
        candidates = [Path(self.path).expanduser()]
        if not candidates[0].is_absolute():
            candidates.append(Path(sys.argv[0]).resolve().parent / self.path)

        for candidate in candidates:
            if candidate.is_file():
                return candidate

        raise FileNotFoundError(f"Config file not found: {self.path}")

    def load(self) -> GuardConfig:
        """
        Load and validate the configuration

        Raises:
            FileNotFoundError: If the file does not exist
            ConfigError: If parsing or validation fails
        """
        path = self.locate()
        data = self._parse_yaml(path)
        config = self.from_data(data)
        config.source = path
        logger.info(f"Loaded {len(config.checkers)} checker(s) from {path}")
        return config

    def from_data(self, data: Any) -> GuardConfig:
        """Build a validated GuardConfig from parsed YAML"""
        if data is None:
            raise ConfigError("Config file is empty")

        if isinstance(data, list):
            raw_checkers, raw_logging = data, None
        elif isinstance(data, dict):
            raw_checkers = data.get("checkers")
            raw_logging = data.get("logging")
            if not isinstance(raw_checkers, list):
                raise ConfigError("Config must define a 'checkers' list")
        else:
            raise ConfigError(f"Unexpected config type: {type(data).__name__}")

        errors = []
        checkers = []
        for index, entry in enumerate(raw_checkers):
            try:
                checker = CheckerConfig.from_dict(entry)
            except ValueError as e:
                errors.append(f"checker #{index + 1}: {e}")
                continue
            checker_errors = self.validate_checker(checker)
            if checker_errors:
                errors.extend(checker_errors)
            else:
                checkers.append(checker)

        seen = set()
        for checker in checkers:
            if checker.name in seen:
                errors.append(f"Duplicate checker name: {checker.name}")
            seen.add(checker.name)

        if not raw_checkers:
            errors.append("No checkers configured")

        if errors:
            message = f"Config validation failed: {', '.join(errors)}"
            logger.error(message)
            raise ConfigError(message, errors)

        return GuardConfig(
            checkers=checkers, logging=LoggingSettings.from_dict(raw_logging)
        )

    def validate_checker(self, checker: CheckerConfig) -> List[str]:
        """
        Validate a checker

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        try:
            checker.validate()
        except ValueError as e:
            errors.append(str(e))

        if checker.timeout_down > checker.timeout_up:
            logger.warning(
                f"{checker.name}: timeout_down ({checker.timeout_down}s) is longer "
                f"than timeout_up ({checker.timeout_up}s)"
            )

        return errors

    def _parse_yaml(self, path: Path) -> Any:
        with open(path, "r", encoding="utf-8") as f:
            try:
                return yaml.safe_load(f)
            except yaml.YAMLError as e:
                logger.error(f"Failed to parse YAML file {path}: {e}")
                raise ConfigError(f"parse config error: {e}")
