"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_APP_NAME = "book-liberator"
DEFAULT_USER_AGENT = "Audible/671 CFNetwork/1240.0.4 Darwin/20.6.0"


class OutputFormat(str, Enum):
    """Container the decrypt engine writes."""

    M4B = "m4b"
    MP3 = "mp3"


# Metadata for each output format (for display and file naming)
FORMAT_MAP = {
    OutputFormat.M4B: {
        "name": "Lossless (M4B container)",
        "short": "M4B",
        "ext": "m4b",
        "color": "green",
    },
    OutputFormat.MP3: {
        "name": "Lossy (MP3)",
        "short": "MP3",
        "ext": "mp3",
        "color": "yellow",
    },
}


def get_format_info(output_format: OutputFormat) -> dict[str, str]:
    """Gets all information for a given output format from the central map."""
    return FORMAT_MAP.get(
        output_format,
        {"name": "Unknown", "short": "Unknown", "ext": "m4b", "color": "white"},
    )


class LiberatorConfig(BaseModel):
    """A validated configuration model for the application."""

    # Account & API
    access_token: str = ""
    device_type: str = ""
    device_serial: str = ""
    customer_id: str = ""

    # Storage locations
    books_dir: Path
    downloads_in_progress_dir: Path
    decrypt_in_progress_dir: Path

    # Decrypt Settings
    allow_fixup: bool = True
    decrypt_to_lossy: bool = False
    max_workers: int = 2
    ffmpeg_path: str = "ffmpeg"
    app_name: str = DEFAULT_APP_NAME
    user_agent: str = DEFAULT_USER_AGENT

    # Internal fields not loaded from INI file
    config_path: str = Field(..., repr=False)
    product_ids: list[str] = Field(default_factory=list, repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @property
    def output_format(self) -> OutputFormat:
        return OutputFormat.MP3 if self.decrypt_to_lossy else OutputFormat.M4B

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensures a reasonable number of workers."""
        if v < 1 or v > 16:
            raise ValueError("Max workers must be between 1 and 16.")
        return v

    @field_validator("books_dir", "downloads_in_progress_dir", "decrypt_in_progress_dir")
    @classmethod
    def expand_directory(cls, v: Path) -> Path:
        """Expands '~' so directories can be written naturally in the INI file."""
        if not str(v).strip():
            raise ValueError("Directory settings cannot be empty.")
        return Path(v).expanduser()

    @field_validator("ffmpeg_path", "app_name")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("Value cannot be empty.")
        return v

    @model_validator(mode="after")
    def validate_directory_conflicts(self) -> "LiberatorConfig":
        """The library must never double as a scratch directory."""
        books = self.books_dir.resolve()
        for scratch in (self.downloads_in_progress_dir, self.decrypt_in_progress_dir):
            if scratch.resolve() == books:
                raise ValueError(
                    f"Scratch directory '{scratch}' cannot be the books directory."
                )
        return self

    def has_device_keys(self) -> bool:
        """Whether voucher decryption material has been configured."""
        return bool(self.device_type and self.device_serial and self.customer_id)

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path", "product_ids"}
        return {key for key in cls.model_fields if key not in internal_fields}
