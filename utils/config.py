"""
Configuration management.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from valuation.errors import ValuationError
from valuation.policy import EnginePolicy


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Config:
    """
    Application configuration.

    Loads from environment variables with sensible defaults.
    """

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    # Policy overrides (JSON file, merged over the defaults)
    policy_file: Optional[str] = field(default_factory=lambda: os.getenv("POLICY_FILE") or None)

    # Output
    reports_dir: str = field(default_factory=lambda: os.getenv("REPORTS_DIR", "./reports"))

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    def load_policy(self) -> EnginePolicy:
        """
        Build the engine policy.

        Returns the defaults when no policy file is configured.

        Raises:
            ValuationError: If the file is missing or not valid JSON
            ValidationError: If the file holds unknown keys or bad values
        """
        if not self.policy_file:
            return EnginePolicy()

        path = Path(self.policy_file)
        if not path.exists():
            raise ValuationError(f"Policy file not found: {path}")

        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise ValuationError(f"Invalid JSON in policy file {path}: {e}") from e

        return EnginePolicy.from_dict(data)

    def configure_logging(self) -> None:
        """Configure root logging from log_level (DEBUG when debug is set)."""
        level = logging.DEBUG if self.debug else getattr(logging, self.log_level, logging.INFO)
        logging.basicConfig(level=level, format=LOG_FORMAT)

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            "log_level": self.log_level,
            "debug": self.debug,
            "policy_file": self.policy_file,
            "reports_dir": self.reports_dir,
        }
