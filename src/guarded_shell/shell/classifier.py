"""Command safety classification.

Classifies a command against one registry snapshot. Precedence:

1. Whitelist (when ``allow_whitelist_override`` is on) wins unconditionally.
2. Dangerous patterns make the command unsafe and set ``blocked_reason``.
3. Suspicious patterns are evaluated independently and only add warnings.
4. Anything else is safe.

Classification is a pure function of (command, snapshot) and never raises.

Example:
    >>> verdict = classify("rm -rf /", registry)
    >>> verdict.dangerous, verdict.blocked_reason
    (True, 'Potentially destructive command detected')
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from guarded_shell.shell.patterns import (
    CommandPattern,
    PatternRegistry,
    RegistrySnapshot,
    Severity,
    get_pattern_registry,
)

__all__ = [
    "BLOCKED_REASON",
    "PatternMatch",
    "Verdict",
    "classify",
    "CommandClassifier",
]

BLOCKED_REASON = "Potentially destructive command detected"


@dataclass(frozen=True, slots=True)
class PatternMatch:
    """A pattern that matched a command, kept for audit."""

    name: str
    description: str
    severity: Severity | None = None

    @classmethod
    def from_pattern(cls, pattern: CommandPattern) -> PatternMatch:
        return cls(name=pattern.name, description=pattern.description, severity=pattern.severity)

    @property
    def warning(self) -> str:
        """Warning line in ``[SEVERITY] description`` form."""
        level = self.severity.value if self.severity else "unknown"
        return f"[{level.upper()}] {self.description}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "severity": self.severity.value if self.severity else None,
        }


@dataclass(frozen=True, slots=True)
class Verdict:
    """Safety classification of one command.

    Attributes:
        command: The classified command text.
        safe: False only when a dangerous pattern matched (and no whitelist).
        dangerous: At least one dangerous pattern matched.
        suspicious: At least one suspicious pattern matched.
        whitelisted: A whitelist pattern overrode classification.
        blocked_reason: Set only when ``dangerous`` is True.
        warnings: One ``[SEVERITY] description`` line per match, dangerous first.
        matched_dangerous: Dangerous patterns that matched, in registration order.
        matched_suspicious: Suspicious patterns that matched, in registration order.
        matched_whitelist: Name of the whitelist pattern that applied.
    """

    command: str
    safe: bool = True
    dangerous: bool = False
    suspicious: bool = False
    whitelisted: bool = False
    blocked_reason: str | None = None
    warnings: tuple[str, ...] = ()
    matched_dangerous: tuple[PatternMatch, ...] = ()
    matched_suspicious: tuple[PatternMatch, ...] = ()
    matched_whitelist: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "command": self.command,
            "safe": self.safe,
            "dangerous": self.dangerous,
            "suspicious": self.suspicious,
            "whitelisted": self.whitelisted,
            "blocked_reason": self.blocked_reason,
            "warnings": list(self.warnings),
        }
        if self.matched_dangerous:
            d["matched_dangerous"] = [m.to_dict() for m in self.matched_dangerous]
        if self.matched_suspicious:
            d["matched_suspicious"] = [m.to_dict() for m in self.matched_suspicious]
        if self.matched_whitelist:
            d["matched_whitelist"] = self.matched_whitelist
        return d


def classify(command: str, registry: PatternRegistry | RegistrySnapshot) -> Verdict:
    """Classify a command against a registry.

    Args:
        command: Command text as it will be sent to the shell.
        registry: A registry (its current snapshot is used) or a snapshot.

    Returns:
        The verdict. An empty registry classifies everything as safe.
    """
    snapshot = registry.snapshot() if isinstance(registry, PatternRegistry) else registry

    whitelist = snapshot.find_whitelisted(command)
    if whitelist is not None:
        return Verdict(command=command, whitelisted=True, matched_whitelist=whitelist.name)

    dangerous = tuple(PatternMatch.from_pattern(p) for p in snapshot.match_dangerous(command))
    suspicious = tuple(PatternMatch.from_pattern(p) for p in snapshot.match_suspicious(command))

    return Verdict(
        command=command,
        safe=not dangerous,
        dangerous=bool(dangerous),
        suspicious=bool(suspicious),
        blocked_reason=BLOCKED_REASON if dangerous else None,
        warnings=tuple(m.warning for m in (*dangerous, *suspicious)),
        matched_dangerous=dangerous,
        matched_suspicious=suspicious,
    )


class CommandClassifier:
    """Classifier bound to a registry.

    Uses the process-wide registry when none is given.
    """

    def __init__(self, registry: PatternRegistry | None = None) -> None:
        self._registry = registry

    @property
    def registry(self) -> PatternRegistry:
        if self._registry is None:
            self._registry = get_pattern_registry()
        return self._registry

    def classify(self, command: str) -> Verdict:
        return classify(command, self.registry)

    def is_dangerous(self, command: str) -> bool:
        return self.classify(command).dangerous

    def is_suspicious(self, command: str) -> bool:
        return self.classify(command).suspicious
