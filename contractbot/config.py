"""contractbot Configuration.

Includes:
- AppConfig: Main application settings with environment variable support
- ConfidenceBands: Thresholds that gate auto-execute / verify / clarify

Environment Variables:
    CONTRACTBOT_PROJECT_PATH: Directory holding .contractbot/config.yaml
    CONTRACTBOT_DICTIONARY_PATH: Word frequency dictionary ("word count" per line)
    CONTRACTBOT_OVERRIDES_PATH: Extra typo overrides (YAML mapping typo -> canonical)
    CONTRACTBOT_SESSION_TIMEOUT_MINUTES: Idle minutes before a creation session expires
    CONTRACTBOT_MAX_INPUT_LENGTH: Longest accepted utterance
    CONTRACTBOT_LOG_LEVEL: Log level for the file handler (INFO, DEBUG, ...)
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfidenceBands(BaseModel):
    """Confidence band thresholds.

    Attributes:
        high: At or above this the query is executed without confirmation
        medium: At or above this the user is asked to verify
    """

    high: float = Field(default=0.90, ge=0.0, le=1.0)
    medium: float = Field(default=0.70, ge=0.0, le=1.0)


class AppConfig(BaseSettings):
    """Application configuration with environment variable support.

    Configuration is loaded from environment variables with CONTRACTBOT_ prefix.
    For example, CONTRACTBOT_MAX_INPUT_LENGTH sets max_input_length.

    Precedence (highest to lowest):
        1. Environment variables (CONTRACTBOT_*)
        2. Config file (.contractbot/config.yaml)
        3. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="CONTRACTBOT_",
        arbitrary_types_allowed=True,
        extra="ignore",
    )

    project_path: Path = Field(default_factory=Path.cwd)

    # None means the bundled dictionary resource
    dictionary_path: Optional[Path] = None
    overrides_path: Optional[Path] = None

    session_timeout_minutes: int = Field(default=30, gt=0)
    max_input_length: int = Field(default=1000, gt=0)
    categorizer_min_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    log_level: str = "INFO"

    bands: ConfidenceBands = Field(default_factory=ConfidenceBands)

    @classmethod
    def load(cls, path: Path) -> "AppConfig":
        """Load configuration from .contractbot/config.yaml if it exists.

        Args:
            path: Project path to load configuration for

        Returns:
            AppConfig with values from the file (or defaults if no config exists)
        """
        from ruamel.yaml import YAML

        config = cls(project_path=path)
        config_file = path / ".contractbot" / "config.yaml"

        if config_file.exists():
            yaml = YAML()
            with config_file.open() as f:
                data = yaml.load(f)

            if data:
                if data.get("dictionary_path"):
                    config.dictionary_path = Path(data["dictionary_path"])
                if data.get("overrides_path"):
                    config.overrides_path = Path(data["overrides_path"])
                if "session_timeout_minutes" in data:
                    config.session_timeout_minutes = int(data["session_timeout_minutes"])
                if "max_input_length" in data:
                    config.max_input_length = int(data["max_input_length"])
                if "categorizer_min_confidence" in data:
                    config.categorizer_min_confidence = float(data["categorizer_min_confidence"])
                if data.get("log_level"):
                    config.log_level = str(data["log_level"]).upper()
                if "bands" in data:
                    bands = data["bands"]
                    config.bands = ConfidenceBands(
                        high=bands.get("high", 0.90),
                        medium=bands.get("medium", 0.70),
                    )

        return config

    def save(self) -> None:
        """Save configuration to .contractbot/config.yaml in the project path."""
        from ruamel.yaml import YAML

        config_dir = self.project_path / ".contractbot"
        config_dir.mkdir(parents=True, exist_ok=True)
        config_file = config_dir / "config.yaml"

        yaml = YAML()
        yaml.default_flow_style = False

        data = {
            "dictionary_path": str(self.dictionary_path) if self.dictionary_path else None,
            "overrides_path": str(self.overrides_path) if self.overrides_path else None,
            "session_timeout_minutes": self.session_timeout_minutes,
            "max_input_length": self.max_input_length,
            "categorizer_min_confidence": self.categorizer_min_confidence,
            "log_level": self.log_level,
            "bands": {
                "high": self.bands.high,
                "medium": self.bands.medium,
            },
        }

        with config_file.open("w") as f:
            yaml.dump(data, f)


__all__ = ["AppConfig", "ConfidenceBands"]
