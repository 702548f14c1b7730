"""
Per-source extraction rules ("targets").

Targets are read once at startup from a TOML file holding an array of
``[[targets]]`` tables. Each target names a source URL, the document format
(``mode``) and, depending on the mode, a key map (JSON dot-paths) and/or a
tag map (CSS selectors). Any malformed target is a startup-fatal
``TargetConfigError``; the running core never sees an invalid target.

Example:
    [[targets]]
    name = "Test Manga"
    source = "https://comic-json.com/test.json"
    mode = "json"
    baseUrl = "https://comic-json.com"
    delay = 7

    [targets.keys]
    chapters = "comic.episodes"
    number = "volume"
    title = ["volume", "title"]
    date = "publish_start"
    url = "page_url"
    skip = { readable = false }
"""

import logging
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)


class TargetConfigError(ValueError):
    """Raised when the target configuration cannot be loaded or validated."""


class ParseMode(str, Enum):
    """Document formats a target can be parsed as."""

    RSS = "rss"
    JSON = "json"
    HTML = "html"
    JSON_IN_HTML = "json-in-html"


class TargetKeys(BaseModel):
    """
    Key map for JSON documents.

    Every field except ``skip`` and ``date_format`` is a dot-path into the
    document (``chapters``) or into one chapter element (the rest).
    ``number`` and ``title`` are ordered lists whose values are space-joined.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    chapters: str
    number: list[str]
    title: list[str]
    date: str
    date_format: str | None = Field(default=None, alias="dateFormat")
    url: str
    skip: dict[str, Any] = Field(default_factory=dict)

    @field_validator("number", "title", mode="before")
    @classmethod
    def wrap_single_path(cls, v: Any) -> Any:
        """Accept a single dot-path as a one-item list, dropping empty paths."""
        if isinstance(v, str):
            v = [v]
        if isinstance(v, list):
            return [path for path in v if path != ""]
        return v


class TargetTags(BaseModel):
    """
    Tag map for HTML documents.

    ``chapters_tag`` selects one element per chapter. For each field, a
    missing ``*_tag`` means "the chapter element itself" and a missing
    ``*_attribute`` means "the element's text content".
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    chapters_tag: str = Field(alias="chaptersTag")
    number_tag: str | None = Field(default=None, alias="numberTag")
    number_attribute: str | None = Field(default=None, alias="numberAttribute")
    title_tag: str | None = Field(default=None, alias="titleTag")
    title_attribute: str | None = Field(default=None, alias="titleAttribute")
    date_tag: str | None = Field(default=None, alias="dateTag")
    date_attribute: str | None = Field(default=None, alias="dateAttribute")
    date_format: str | None = Field(default=None, alias="dateFormat")
    url_tag: str | None = Field(default=None, alias="urlTag")
    url_attribute: str | None = Field(default=None, alias="urlAttribute")

    @field_validator(
        "number_tag",
        "number_attribute",
        "title_tag",
        "title_attribute",
        "date_tag",
        "date_attribute",
        "date_format",
        "url_tag",
        "url_attribute",
        mode="before",
    )
    @classmethod
    def empty_as_absent(cls, v: Any) -> Any:
        if v == "":
            return None
        return v


class Target(BaseModel):
    """One configured source of chapter data with its extraction rules."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    ascending_source: bool = False
    mode: ParseMode
    base_url: str | None = Field(default=None, alias="baseUrl")
    request_headers: dict[str, str] | None = Field(default=None, alias="requestHeaders")
    delay: int | None = Field(default=None, ge=0, description="Announcement delay in days")
    keys: TargetKeys | None = None
    tags: TargetTags | None = None

    @field_validator("request_headers", mode="before")
    @classmethod
    def stringify_headers(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {str(name): str(value) for name, value in v.items()}
        return v

    @model_validator(mode="after")
    def check_mode_blocks(self) -> "Target":
        """Ensure the configuration block the mode depends on is present."""
        if self.mode in (ParseMode.JSON, ParseMode.JSON_IN_HTML) and self.keys is None:
            raise ValueError(f"mode '{self.mode.value}' requires a [keys] table")
        if self.mode in (ParseMode.HTML, ParseMode.JSON_IN_HTML) and self.tags is None:
            raise ValueError(f"mode '{self.mode.value}' requires a [tags] table")
        return self

    @property
    def delay_days(self) -> int:
        return self.delay or 0


def parse_targets(config: dict[str, Any]) -> list[Target]:
    """
    Build targets from an already-decoded configuration mapping.

    Args:
        config: Mapping with a ``targets`` array of tables

    Returns:
        Validated targets, in file order

    Raises:
        TargetConfigError: If ``targets`` is missing or any entry is invalid
    """
    raw_targets = config.get("targets")
    if raw_targets is None:
        raise TargetConfigError("No targets found.")
    if not isinstance(raw_targets, list):
        raise TargetConfigError("Target config is not an array.")

    targets = []
    for index, raw in enumerate(raw_targets):
        try:
            targets.append(Target.model_validate(raw))
        except ValidationError as e:
            name = raw.get("name", f"#{index}") if isinstance(raw, dict) else f"#{index}"
            raise TargetConfigError(f"Invalid target {name}: {e}") from e

    return targets


def load_targets(path: str | Path) -> list[Target]:
    """
    Load and validate targets from a TOML file.

    Raises:
        TargetConfigError: If the file is missing, not valid TOML, or invalid
    """
    path = Path(path)
    try:
        config = tomllib.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise TargetConfigError(f"Missing config file: {path}") from e
    except tomllib.TOMLDecodeError as e:
        raise TargetConfigError(f"Malformed config file {path}: {e}") from e

    targets = parse_targets(config)
    logger.info("Loaded %d targets from %s", len(targets), path)
    return targets
