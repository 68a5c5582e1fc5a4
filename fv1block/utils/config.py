"""
Configuration System for fv1block.

Settings are grouped into dataclass sections and loaded from a YAML or
JSON file, with a few environment variable overrides. Engines never read
the global configuration in the middle of a call: options objects are
built from it up front and passed explicitly.
"""

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .constants import CONFIG_FILE_NAMES, MEMORY_SIZE, PROGRAM_SIZE, REGISTER_COUNT, SAMPLE_RATE
from .exceptions import Fv1Error
from .fixed_point import ROUNDING_MODES
from .logging import get_logger

logger = get_logger(__name__)

_TRUTHY = ("1", "true", "yes", "on")


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    enable_file_logging: bool = False
    log_file: str = "fv1block.log"


@dataclass
class CompilationConfig:
    """Graph compiler configuration."""

    register_count: int = REGISTER_COUNT
    program_size: int = PROGRAM_SIZE
    memory_size: int = MEMORY_SIZE
    sample_rate: int = SAMPLE_RATE
    optimize: bool = True

    # Extra directories searched for .atl block templates
    template_dirs: List[str] = field(default_factory=list)


@dataclass
class AssemblerConfig:
    """Assembler configuration."""

    legacy_memory_layout: bool = True
    clamp_reals: bool = True
    strict: bool = False
    rounding: str = "nearest"


class Fv1Config:
    """
    Configuration manager for fv1block.

    Loads a single YAML or JSON file (YAML is tried first since every
    JSON document is also valid YAML) and exposes one attribute per
    section.
    """

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to configuration file. If None, the current
                directory is searched for one of the default file names.
        """
        self.config_file = self._get_config_file_path(config_file)
        self._config_data = self._load_config()

        self.logging = self._create_logging_config()
        self.compilation = self._create_compilation_config()
        self.assembler = self._create_assembler_config()

    def _get_config_file_path(self, config_file: Optional[str]) -> Optional[Path]:
        if config_file:
            return Path(config_file)

        for name in CONFIG_FILE_NAMES:
            candidate = Path.cwd() / name
            if candidate.exists():
                return candidate
        return None

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file (JSON or YAML)."""
        if self.config_file is None:
            return {}
        if not self.config_file.exists():
            logger.warning(f"Configuration file {self.config_file} not found, using defaults")
            return {}

        try:
            with open(self.config_file, "r") as f:
                if self.config_file.suffix.lower() == ".json":
                    config_data = json.load(f)
                else:
                    config_data = yaml.safe_load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise Fv1Error(f"Failed to load configuration: {e}", {"file": str(self.config_file)})

        if config_data is None:
            config_data = {}
        if not isinstance(config_data, dict):
            raise Fv1Error("Configuration root must be a mapping", {"file": str(self.config_file)})

        logger.info(f"Loaded configuration from {self.config_file}")
        return config_data

    def _create_logging_config(self) -> LoggingConfig:
        log_data = self._config_data.get("logging", {})

        return LoggingConfig(
            level=os.getenv("FV1BLOCK_LOG_LEVEL", log_data.get("level", "INFO")),
            enable_file_logging=log_data.get("enable_file_logging", False),
            log_file=log_data.get("log_file", "fv1block.log"),
        )

    def _create_compilation_config(self) -> CompilationConfig:
        comp_data = self._config_data.get("compilation", {})

        return CompilationConfig(
            register_count=int(comp_data.get("register_count", REGISTER_COUNT)),
            program_size=int(comp_data.get("program_size", PROGRAM_SIZE)),
            memory_size=int(comp_data.get("memory_size", MEMORY_SIZE)),
            sample_rate=int(comp_data.get("sample_rate", SAMPLE_RATE)),
            optimize=bool(comp_data.get("optimize", True)),
            template_dirs=list(comp_data.get("template_dirs", [])),
        )

    def _create_assembler_config(self) -> AssemblerConfig:
        asm_data = self._config_data.get("assembler", {})

        strict = asm_data.get("strict", False)
        env_strict = os.getenv("FV1BLOCK_STRICT")
        if env_strict is not None:
            strict = env_strict.lower() in _TRUTHY

        legacy = asm_data.get("legacy_memory_layout", True)
        env_legacy = os.getenv("FV1BLOCK_LEGACY_MEM")
        if env_legacy is not None:
            legacy = env_legacy.lower() in _TRUTHY

        rounding = asm_data.get("rounding", "nearest")
        if rounding not in ROUNDING_MODES:
            raise Fv1Error(f"Unknown rounding mode '{rounding}'", {"expected": "|".join(ROUNDING_MODES)})

        return AssemblerConfig(
            legacy_memory_layout=bool(legacy),
            clamp_reals=bool(asm_data.get("clamp_reals", True)),
            strict=bool(strict),
            rounding=rounding,
        )

    def is_strict(self) -> bool:
        return self.assembler.strict

    def to_dict(self) -> Dict[str, Any]:
        return {
            "logging": asdict(self.logging),
            "compilation": asdict(self.compilation),
            "assembler": asdict(self.assembler),
        }

    def save_config(self, path: Optional[str] = None) -> Path:
        """
        Save current configuration to a JSON file.

        Args:
            path: Destination; defaults to the file this config was loaded from

        Returns:
            Path written
        """
        target = Path(path) if path else (self.config_file or Path.cwd() / "fv1block.json")
        with open(target, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Configuration saved to {target}")
        return target


# Global configuration instance
_global_config: Optional[Fv1Config] = None


def get_config() -> Fv1Config:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = Fv1Config()
    return _global_config


def set_config(config: Optional[Fv1Config]) -> None:
    """Set (or with None, reset) the global configuration instance."""
    global _global_config
    _global_config = config


def load_config(config_file: str) -> Fv1Config:
    """Load configuration from a specific file."""
    return Fv1Config(config_file)
