"""Command pattern registry.

This module holds the rule set used to classify shell commands:

- **CommandPattern**: A named, compiled regular expression with metadata
- **PatternRegistry**: Dangerous / suspicious / whitelisted pattern collections
- **RegistrySnapshot**: Immutable view of a registry used for classification
- **PatternDocument**: Configuration document schema (JSON or YAML)
- **DEFAULT_DANGEROUS_PATTERNS / DEFAULT_SUSPICIOUS_PATTERNS**: Built-in fallback rules

Loading never fails: a missing, unreadable or malformed configuration falls
back to the built-in defaults, and a single bad expression only drops that
one entry.

Example:
    >>> registry = PatternRegistry.load("config/command-patterns.json")
    >>> [p.name for p in registry.match_dangerous("rm -rf /")]
    ['delete_root_filesystem']
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from guarded_shell.errors import ConfigurationError, InvalidPatternError, log_exception

logger = logging.getLogger(__name__)

__all__ = [
    "Severity",
    "PatternCategory",
    "PatternEntry",
    "PatternGroup",
    "CustomPatterns",
    "PatternSettings",
    "PatternDocument",
    "CommandPattern",
    "RegistrySnapshot",
    "PatternStats",
    "PatternRegistry",
    "DEFAULT_DANGEROUS_PATTERNS",
    "DEFAULT_SUSPICIOUS_PATTERNS",
    "DEFAULT_PATTERNS_PATH",
    "PATTERNS_FILE_ENV",
    "default_patterns_path",
    "read_pattern_document",
    "get_pattern_registry",
    "set_pattern_registry",
]

PATTERNS_FILE_ENV = "GUARDED_SHELL_PATTERNS_FILE"
DEFAULT_PATTERNS_PATH = Path("config") / "command-patterns.json"
DEFAULT_DOCUMENT_VERSION = "1.0.0"


# =============================================================================
# Enums
# =============================================================================


class Severity(str, Enum):
    """Severity of a dangerous or suspicious pattern."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PatternCategory(str, Enum):
    """The three pattern collections of a registry."""

    DANGEROUS = "dangerous"
    SUSPICIOUS = "suspicious"
    WHITELISTED = "whitelisted"


# =============================================================================
# Configuration Document
# =============================================================================


class PatternEntry(BaseModel):
    """One pattern record as stored in the configuration document."""

    model_config = ConfigDict(extra="ignore")

    name: str
    pattern: str
    description: str = ""
    severity: Severity | None = None
    enabled: bool = True
    examples: list[str] = Field(default_factory=list)

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower() or None
        return value


def _valid_entries(value: Any) -> Any:
    """Validate entries one at a time, dropping (and logging) the bad ones."""
    if not isinstance(value, list):
        return value
    entries: list[PatternEntry] = []
    for raw in value:
        try:
            entries.append(PatternEntry.model_validate(raw))
        except ValidationError as e:
            name = raw.get("name", "<unnamed>") if isinstance(raw, dict) else repr(raw)
            errors = "; ".join(err["msg"] for err in e.errors(include_url=False))
            logger.warning(f"Invalid pattern entry '{name}' skipped: {errors}")
    return entries


class PatternGroup(BaseModel):
    description: str = ""
    patterns: list[PatternEntry] = Field(default_factory=list)

    @field_validator("patterns", mode="before")
    @classmethod
    def _validate_patterns(cls, value: Any) -> Any:
        return _valid_entries(value)


class CustomPatterns(BaseModel):
    """User overlay lists, appended after the built-in entries of each category."""

    description: str = "User-defined custom patterns"
    dangerous: list[PatternEntry] = Field(default_factory=list)
    suspicious: list[PatternEntry] = Field(default_factory=list)
    whitelisted: list[PatternEntry] = Field(default_factory=list)

    @field_validator("dangerous", "suspicious", "whitelisted", mode="before")
    @classmethod
    def _validate_entries(cls, value: Any) -> Any:
        return _valid_entries(value)


class PatternSettings(BaseModel):
    """Registry-wide behaviour switches."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    block_dangerous_by_default: bool = True
    warn_on_suspicious: bool = True
    log_blocked_commands: bool = True
    case_sensitive: bool = False
    allow_whitelist_override: bool = True


class PatternDocument(BaseModel):
    """Top-level configuration document.

    The three category groups are required; a document without them is
    treated as corrupt.
    """

    model_config = ConfigDict(extra="ignore")

    version: str = DEFAULT_DOCUMENT_VERSION
    dangerous_patterns: PatternGroup
    suspicious_patterns: PatternGroup
    whitelisted_patterns: PatternGroup
    custom_patterns: CustomPatterns = Field(default_factory=CustomPatterns)
    settings: PatternSettings = Field(default_factory=PatternSettings)

    def entries(self, category: PatternCategory) -> list[PatternEntry]:
        """Built-in entries followed by the custom overlay for a category."""
        group: PatternGroup = getattr(self, f"{category.value}_patterns")
        custom: list[PatternEntry] = getattr(self.custom_patterns, category.value)
        return [*group.patterns, *custom]


_GROUP_DESCRIPTIONS = {
    PatternCategory.DANGEROUS: "Commands that will be BLOCKED by default",
    PatternCategory.SUSPICIOUS: "Commands that trigger WARNINGS",
    PatternCategory.WHITELISTED: "Patterns that should NEVER be blocked",
}


# =============================================================================
# Default Patterns
# =============================================================================

DEFAULT_DANGEROUS_PATTERNS: tuple[PatternEntry, ...] = (
    PatternEntry(
        name="delete_root_filesystem",
        pattern=r"^rm\s+-rf\s+/$",
        description="Delete root filesystem",
        severity=Severity.CRITICAL,
    ),
    PatternEntry(
        name="disk_write_operations",
        pattern=r"^dd\s+if=.*of=/dev/sd",
        description="Direct disk write operations",
        severity=Severity.CRITICAL,
    ),
    PatternEntry(
        name="format_filesystem",
        pattern=r"^mkfs",
        description="Format filesystem commands",
        severity=Severity.CRITICAL,
    ),
    PatternEntry(
        name="fork_bomb",
        pattern=r"^:\(\)\{\s*:\|:&\s*\};:",
        description="Fork bomb",
        severity=Severity.CRITICAL,
    ),
    PatternEntry(
        name="chmod_777_root",
        pattern=r"^chmod\s+-R\s+777\s+/",
        description="Recursive chmod 777 on root",
        severity=Severity.CRITICAL,
    ),
    PatternEntry(
        name="curl_pipe_to_shell",
        pattern=r"^curl.*\|\s*sh",
        description="Download and execute via curl",
        severity=Severity.HIGH,
    ),
    PatternEntry(
        name="wget_pipe_to_shell",
        pattern=r"^wget.*\|\s*sh",
        description="Download and execute via wget",
        severity=Severity.HIGH,
    ),
)

DEFAULT_SUSPICIOUS_PATTERNS: tuple[PatternEntry, ...] = (
    PatternEntry(
        name="sudo_with_rm",
        pattern=r"sudo\s+rm",
        description="Using sudo with rm",
        severity=Severity.MEDIUM,
    ),
    PatternEntry(
        name="chmod_777",
        pattern=r"chmod\s+777",
        description="World-writable permissions",
        severity=Severity.MEDIUM,
    ),
    PatternEntry(
        name="redirect_to_dev_null",
        pattern=r">\s*/dev/null\s+2>&1",
        description="Hiding command output",
        severity=Severity.LOW,
    ),
    PatternEntry(
        name="base64_decode",
        pattern=r"base64.*decode",
        description="Base64 decoding",
        severity=Severity.LOW,
    ),
)


# =============================================================================
# Compiled Patterns
# =============================================================================


@dataclass(frozen=True, slots=True)
class CommandPattern:
    """A compiled classification rule.

    Attributes:
        name: Unique identifier within its category (snake_case).
        expression: Regular expression source text.
        regex: Compiled expression. Matching uses ``search`` (un-anchored).
        description: Human-readable description used in warnings.
        severity: Severity level. None for whitelist patterns.
        examples: Informational examples, never evaluated.
    """

    name: str
    expression: str
    regex: re.Pattern[str] = field(repr=False, compare=False)
    description: str = ""
    severity: Severity | None = None
    examples: tuple[str, ...] = ()

    @classmethod
    def compile(
        cls,
        name: str,
        expression: str,
        *,
        description: str = "",
        severity: Severity | None = None,
        examples: Iterable[str] = (),
        case_sensitive: bool = False,
    ) -> CommandPattern:
        """Compile a pattern.

        Raises:
            InvalidPatternError: If the expression is not a valid regex.
        """
        flags = 0 if case_sensitive else re.IGNORECASE
        try:
            regex = re.compile(expression, flags)
        except re.error as e:
            raise InvalidPatternError(
                f"Invalid pattern '{name}': {e}",
                pattern_name=name,
                expression=expression,
            ) from e
        return cls(
            name=name,
            expression=expression,
            regex=regex,
            description=description,
            severity=severity,
            examples=tuple(examples),
        )

    def matches(self, command: str) -> bool:
        """Check if the pattern matches anywhere in the command."""
        return self.regex.search(command) is not None

    def to_entry(self) -> PatternEntry:
        """Convert back to its configuration record."""
        return PatternEntry(
            name=self.name,
            pattern=self.expression,
            description=self.description,
            severity=self.severity,
            enabled=True,
            examples=list(self.examples),
        )


def _compile_entries(
    category: PatternCategory,
    entries: Iterable[PatternEntry],
    *,
    case_sensitive: bool,
) -> tuple[CommandPattern, ...]:
    """Compile enabled entries, skipping invalid expressions and duplicate names."""
    compiled: list[CommandPattern] = []
    seen: set[str] = set()

    for entry in entries:
        if not entry.enabled:
            continue
        if entry.name in seen:
            logger.warning(f"Duplicate {category.value} pattern '{entry.name}' skipped")
            continue
        try:
            pattern = CommandPattern.compile(
                entry.name,
                entry.pattern,
                description=entry.description,
                severity=None if category is PatternCategory.WHITELISTED else entry.severity,
                examples=entry.examples,
                case_sensitive=case_sensitive,
            )
        except InvalidPatternError as e:
            logger.warning(e.message)
            continue
        seen.add(entry.name)
        compiled.append(pattern)

    return tuple(compiled)


# =============================================================================
# Registry Snapshot
# =============================================================================


@dataclass(frozen=True, slots=True)
class RegistrySnapshot:
    """Immutable view of a registry at one point in time.

    Classification reads a single snapshot so that a concurrent
    ``add_pattern`` can never be half-observed.
    """

    dangerous: tuple[CommandPattern, ...] = ()
    suspicious: tuple[CommandPattern, ...] = ()
    whitelisted: tuple[CommandPattern, ...] = ()
    settings: PatternSettings = field(default_factory=PatternSettings)

    def patterns(self, category: PatternCategory) -> tuple[CommandPattern, ...]:
        return getattr(self, category.value)

    def match_dangerous(self, command: str) -> list[CommandPattern]:
        """Every dangerous pattern matching the command, in registration order."""
        return [p for p in self.dangerous if p.matches(command)]

    def match_suspicious(self, command: str) -> list[CommandPattern]:
        """Every suspicious pattern matching the command, in registration order."""
        return [p for p in self.suspicious if p.matches(command)]

    def find_whitelisted(self, command: str) -> CommandPattern | None:
        """First whitelist pattern matching the command.

        Always None when ``allow_whitelist_override`` is disabled.
        """
        if not self.settings.allow_whitelist_override:
            return None
        for pattern in self.whitelisted:
            if pattern.matches(command):
                return pattern
        return None

    def match_whitelisted(self, command: str) -> bool:
        return self.find_whitelisted(command) is not None


# =============================================================================
# Statistics
# =============================================================================


@dataclass(frozen=True, slots=True)
class PatternStats:
    """Pattern counts per category and severity."""

    dangerous: dict[str, int]
    suspicious: dict[str, int]
    whitelisted: dict[str, int]
    settings: PatternSettings

    @classmethod
    def from_snapshot(cls, snapshot: RegistrySnapshot) -> PatternStats:
        def _counts(patterns: tuple[CommandPattern, ...]) -> dict[str, int]:
            counts = {"total": len(patterns)}
            for severity in Severity:
                counts[severity.value] = sum(1 for p in patterns if p.severity is severity)
            return counts

        return cls(
            dangerous=_counts(snapshot.dangerous),
            suspicious=_counts(snapshot.suspicious),
            whitelisted={"total": len(snapshot.whitelisted)},
            settings=snapshot.settings,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "dangerous": dict(self.dangerous),
            "suspicious": dict(self.suspicious),
            "whitelisted": dict(self.whitelisted),
            "settings": self.settings.model_dump(),
        }


# =============================================================================
# Document I/O
# =============================================================================


def default_patterns_path() -> Path:
    """Pattern file from ``$GUARDED_SHELL_PATTERNS_FILE`` or ``config/command-patterns.json``."""
    env_path = os.environ.get(PATTERNS_FILE_ENV)
    return Path(env_path).expanduser() if env_path else DEFAULT_PATTERNS_PATH


def _is_yaml(path: Path) -> bool:
    return path.suffix.lower() in (".yaml", ".yml")


def _parse_config_text(text: str, path: Path) -> Any:
    """Parse a document by suffix: YAML, strict JSON, or JSON-then-YAML when unknown."""
    if _is_yaml(path):
        return yaml.safe_load(text)
    if path.suffix.lower() == ".json":
        return json.loads(text)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return yaml.safe_load(text)


def read_pattern_document(path: str | Path) -> PatternDocument:
    """Read and validate a pattern configuration document.

    Raises:
        ConfigurationError: If the file is missing, unreadable, unparseable
            or does not match the document schema.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigurationError(f"Pattern config not found: {path}", path=str(path)) from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read pattern config {path}: {e}", path=str(path)) from e

    try:
        data = _parse_config_text(text, path)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Pattern config {path} is not valid JSON or YAML: {e}", path=str(path)) from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Pattern config {path} must be a mapping", path=str(path))

    try:
        return PatternDocument.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Pattern config {path} is invalid",
            path=str(path),
            details={"errors": e.errors(include_url=False)},
        ) from e


def _write_document(path: Path, data: dict[str, Any]) -> None:
    if _is_yaml(path):
        text = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    else:
        text = json.dumps(data, indent=2) + "\n"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Failed to write patterns to {path}: {e}", path=str(path)) from e


# =============================================================================
# Pattern Registry
# =============================================================================


class PatternRegistry:
    """Dangerous, suspicious and whitelisted command patterns plus settings.

    The registry is shared, read-mostly state. Every mutation builds new
    tuples and swaps the snapshot under a lock (copy-on-write), so readers
    never need to lock.

    Example:
        >>> registry = PatternRegistry.load()
        >>> registry.add_pattern(
        ...     "whitelisted",
        ...     name="home_cleanup",
        ...     expression=r"^rm\\s+-rf\\s+/home/[^/]+",
        ... )
        >>> registry.match_whitelisted("rm -rf /home/alice/project")
        True
    """

    def __init__(self, config_path: str | Path | None = None) -> None:
        """Create an empty registry bound to a configuration path.

        Nothing is read until :meth:`reload` (or :meth:`load`) is called.

        Args:
            config_path: Pattern document location. Defaults to
                :func:`default_patterns_path`.
        """
        self._config_path = Path(config_path) if config_path else default_patterns_path()
        self._lock = threading.Lock()
        self._snapshot = RegistrySnapshot()
        self._version = DEFAULT_DOCUMENT_VERSION
        self._using_defaults = False
        self._disabled: dict[PatternCategory, tuple[PatternEntry, ...]] = {}

    @classmethod
    def load(cls, source: str | Path | None = None) -> PatternRegistry:
        """Create a registry and load it from ``source`` (falls back to defaults)."""
        registry = cls(source)
        registry.reload()
        return registry

    @classmethod
    def from_document(
        cls,
        document: PatternDocument | dict[str, Any],
        *,
        config_path: str | Path | None = None,
    ) -> PatternRegistry:
        """Create a registry from an in-memory document.

        Raises:
            pydantic.ValidationError: If a dict does not match the schema.
        """
        if not isinstance(document, PatternDocument):
            document = PatternDocument.model_validate(document)
        registry = cls(config_path)
        registry._apply_document(document)
        return registry

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def settings(self) -> PatternSettings:
        return self._snapshot.settings

    @property
    def using_defaults(self) -> bool:
        """True if the built-in fallback set is active."""
        return self._using_defaults

    @property
    def dangerous(self) -> tuple[CommandPattern, ...]:
        return self._snapshot.dangerous

    @property
    def suspicious(self) -> tuple[CommandPattern, ...]:
        return self._snapshot.suspicious

    @property
    def whitelisted(self) -> tuple[CommandPattern, ...]:
        return self._snapshot.whitelisted

    def snapshot(self) -> RegistrySnapshot:
        """Current immutable view of the registry."""
        return self._snapshot

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def reload(self) -> None:
        """(Re)load patterns from the configuration path.

        Never raises: any configuration problem is logged and the built-in
        defaults are installed instead.
        """
        try:
            document = read_pattern_document(self._config_path)
        except ConfigurationError as e:
            log_exception(logger, "Failed to load pattern config, using defaults", e, include_traceback=False)
            self.load_defaults()
            return
        self._apply_document(document)

    def load_defaults(self) -> None:
        """Install the built-in default pattern set and default settings."""
        settings = PatternSettings()
        snapshot = RegistrySnapshot(
            dangerous=_compile_entries(
                PatternCategory.DANGEROUS, DEFAULT_DANGEROUS_PATTERNS, case_sensitive=settings.case_sensitive
            ),
            suspicious=_compile_entries(
                PatternCategory.SUSPICIOUS, DEFAULT_SUSPICIOUS_PATTERNS, case_sensitive=settings.case_sensitive
            ),
            whitelisted=(),
            settings=settings,
        )
        with self._lock:
            self._snapshot = snapshot
            self._version = DEFAULT_DOCUMENT_VERSION
            self._using_defaults = True
            self._disabled = {}
        logger.info("Loaded default command patterns")

    def _apply_document(self, document: PatternDocument) -> None:
        case_sensitive = document.settings.case_sensitive
        disabled = {
            category: tuple(e for e in document.entries(category) if not e.enabled) for category in PatternCategory
        }
        snapshot = RegistrySnapshot(
            dangerous=_compile_entries(
                PatternCategory.DANGEROUS,
                document.entries(PatternCategory.DANGEROUS),
                case_sensitive=case_sensitive,
            ),
            suspicious=_compile_entries(
                PatternCategory.SUSPICIOUS,
                document.entries(PatternCategory.SUSPICIOUS),
                case_sensitive=case_sensitive,
            ),
            whitelisted=_compile_entries(
                PatternCategory.WHITELISTED,
                document.entries(PatternCategory.WHITELISTED),
                case_sensitive=case_sensitive,
            ),
            settings=document.settings,
        )
        with self._lock:
            self._snapshot = snapshot
            self._version = document.version
            self._using_defaults = False
            self._disabled = disabled
        logger.info(
            f"Loaded command patterns: {len(snapshot.dangerous)} dangerous, "
            f"{len(snapshot.suspicious)} suspicious, {len(snapshot.whitelisted)} whitelisted"
        )

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def add_pattern(
        self,
        category: PatternCategory | str,
        *,
        name: str,
        expression: str,
        description: str = "",
        severity: Severity | str | None = None,
        examples: Iterable[str] = (),
    ) -> CommandPattern:
        """Append a pattern to a category at runtime.

        The change is in-memory only; call :meth:`save` to persist it.

        Args:
            category: ``dangerous``, ``suspicious`` or ``whitelisted``.
            name: Pattern name.
            expression: Regular expression source.
            description: Human-readable description.
            severity: Severity. Defaults to ``medium``; ignored for whitelisted.
            examples: Informational examples.

        Returns:
            The compiled pattern that was added.

        Raises:
            InvalidPatternError: If the category is unknown, the severity is
                invalid or the expression does not compile. The registry is
                left unchanged.
        """
        try:
            category = PatternCategory(category)
        except ValueError as e:
            raise InvalidPatternError(
                f"Invalid pattern type: {category}", pattern_name=name, expression=expression
            ) from e

        if category is PatternCategory.WHITELISTED:
            severity = None
        else:
            try:
                severity = Severity(severity) if severity else Severity.MEDIUM
            except ValueError as e:
                raise InvalidPatternError(
                    f"Invalid severity '{severity}' for pattern '{name}'",
                    pattern_name=name,
                    expression=expression,
                    category=category.value,
                ) from e

        with self._lock:
            current = self._snapshot
            try:
                pattern = CommandPattern.compile(
                    name,
                    expression,
                    description=description,
                    severity=severity,
                    examples=examples,
                    case_sensitive=current.settings.case_sensitive,
                )
            except InvalidPatternError as e:
                e.category = category.value
                logger.error(f"Failed to add pattern: {e.message}")
                raise
            updated = (*current.patterns(category), pattern)
            self._snapshot = RegistrySnapshot(
                dangerous=updated if category is PatternCategory.DANGEROUS else current.dangerous,
                suspicious=updated if category is PatternCategory.SUSPICIOUS else current.suspicious,
                whitelisted=updated if category is PatternCategory.WHITELISTED else current.whitelisted,
                settings=current.settings,
            )

        logger.info(f"Added custom {category.value} pattern: {name}")
        return pattern

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def to_document(self) -> PatternDocument:
        """Current in-memory state in configuration document form."""
        snapshot = self._snapshot
        groups = {
            f"{category.value}_patterns": PatternGroup(
                description=_GROUP_DESCRIPTIONS[category],
                patterns=[
                    *(p.to_entry() for p in snapshot.patterns(category)),
                    *self._disabled.get(category, ()),
                ],
            )
            for category in PatternCategory
        }
        return PatternDocument(
            version=self._version,
            custom_patterns=CustomPatterns(),
            settings=snapshot.settings,
            **groups,
        )

    def save(self, path: str | Path | None = None) -> Path:
        """Write the full in-memory state back to the configuration source.

        Custom overlay entries are written into their category group and
        disabled entries are kept with ``enabled: false``. Entries dropped at
        load time (invalid expression, duplicate name) are not written.

        Args:
            path: Destination. Defaults to the registry's configuration path.
                ``.yaml``/``.yml`` files are written as YAML, anything else as JSON.

        Returns:
            The path written.

        Raises:
            ConfigurationError: If the file cannot be written.
        """
        target = Path(path) if path else self._config_path
        data = self.to_document().model_dump(mode="json", exclude_none=True)
        _write_document(target, data)
        logger.info(f"Saved patterns to {target}")
        return target

    def export(self, path: str | Path) -> Path:
        """Export a flat ``{dangerous, suspicious, whitelisted, settings}`` dump.

        Raises:
            ConfigurationError: If the file cannot be written.
        """
        target = Path(path)
        snapshot = self._snapshot
        data: dict[str, Any] = {
            category.value: [
                p.to_entry().model_dump(mode="json", exclude_none=True, exclude={"enabled"})
                for p in snapshot.patterns(category)
            ]
            for category in PatternCategory
        }
        data["settings"] = snapshot.settings.model_dump()
        _write_document(target, data)
        logger.info(f"Exported patterns to {target}")
        return target

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def patterns(self, category: PatternCategory | str) -> tuple[CommandPattern, ...]:
        return self._snapshot.patterns(PatternCategory(category))

    def match_dangerous(self, command: str) -> list[CommandPattern]:
        return self._snapshot.match_dangerous(command)

    def match_suspicious(self, command: str) -> list[CommandPattern]:
        return self._snapshot.match_suspicious(command)

    def match_whitelisted(self, command: str) -> bool:
        return self._snapshot.match_whitelisted(command)

    def stats(self) -> PatternStats:
        return PatternStats.from_snapshot(self._snapshot)


# =============================================================================
# Process-wide Registry
# =============================================================================

_registry: PatternRegistry | None = None
_registry_lock = threading.Lock()


def get_pattern_registry() -> PatternRegistry:
    """Get the process-wide pattern registry.

    The registry is loaded from :func:`default_patterns_path` on the first
    call, not at import time.
    """
    global _registry
    with _registry_lock:
        if _registry is None:
            _registry = PatternRegistry.load()
        return _registry


def set_pattern_registry(registry: PatternRegistry | None) -> None:
    """Replace the process-wide pattern registry (None resets it)."""
    global _registry
    with _registry_lock:
        _registry = registry
