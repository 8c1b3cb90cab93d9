"""Tests for the command pattern registry."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

import pytest
import yaml

from guarded_shell.errors import ConfigurationError, InvalidPatternError
from guarded_shell.shell.classifier import classify
from guarded_shell.shell.patterns import (
    DEFAULT_DANGEROUS_PATTERNS,
    DEFAULT_PATTERNS_PATH,
    DEFAULT_SUSPICIOUS_PATTERNS,
    CommandPattern,
    PatternCategory,
    PatternDocument,
    PatternRegistry,
    PatternSettings,
    Severity,
    default_patterns_path,
    get_pattern_registry,
    read_pattern_document,
    set_pattern_registry,
)


def _document(**overrides: Any) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "version": "1.0.0",
        "dangerous_patterns": {
            "description": "Commands that will be BLOCKED by default",
            "patterns": [
                {
                    "name": "delete_root_filesystem",
                    "pattern": r"^rm\s+-rf\s+/$",
                    "description": "Delete root filesystem",
                    "severity": "critical",
                },
            ],
        },
        "suspicious_patterns": {
            "description": "Commands that trigger WARNINGS",
            "patterns": [
                {
                    "name": "sudo_with_rm",
                    "pattern": r"sudo\s+rm",
                    "description": "Using sudo with rm",
                    "severity": "medium",
                },
            ],
        },
        "whitelisted_patterns": {"description": "Never blocked", "patterns": []},
    }
    doc.update(overrides)
    return doc


def _write_json(path: Path, data: dict[str, Any]) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


# =============================================================================
# Test CommandPattern
# =============================================================================


class TestCommandPattern:
    """Tests for compiled patterns."""

    def test_compile_and_match(self) -> None:
        """Patterns match anywhere in the command (search semantics)."""
        pattern = CommandPattern.compile("sudo_rm", r"sudo\s+rm", severity=Severity.MEDIUM)
        assert pattern.matches("cd /tmp && sudo rm -rf cache")
        assert not pattern.matches("rm -rf cache")

    def test_case_insensitive_by_default(self) -> None:
        """Matching ignores case unless case_sensitive is set."""
        pattern = CommandPattern.compile("mkfs", r"^mkfs")
        assert pattern.matches("MKFS.ext4 /dev/sda1")

    def test_case_sensitive(self) -> None:
        """case_sensitive=True compiles without IGNORECASE."""
        pattern = CommandPattern.compile("mkfs", r"^mkfs", case_sensitive=True)
        assert pattern.matches("mkfs.ext4 /dev/sda1")
        assert not pattern.matches("MKFS.ext4 /dev/sda1")

    def test_invalid_expression_raises(self) -> None:
        """Invalid regex raises InvalidPatternError with context."""
        with pytest.raises(InvalidPatternError) as exc_info:
            CommandPattern.compile("broken", "[unclosed")

        assert exc_info.value.pattern_name == "broken"
        assert exc_info.value.expression == "[unclosed"
        assert "broken" in exc_info.value.message

    def test_equality_ignores_compiled_regex(self) -> None:
        """Two compilations of the same rule compare equal."""
        a = CommandPattern.compile("mkfs", r"^mkfs", severity=Severity.CRITICAL)
        b = CommandPattern.compile("mkfs", r"^mkfs", severity=Severity.CRITICAL)
        assert a == b

    def test_to_entry(self) -> None:
        """to_entry round-trips the rule's metadata."""
        pattern = CommandPattern.compile(
            "mkfs",
            r"^mkfs",
            description="Format filesystem commands",
            severity=Severity.CRITICAL,
            examples=["mkfs.ext4 /dev/sda1"],
        )
        entry = pattern.to_entry()

        assert entry.name == "mkfs"
        assert entry.pattern == r"^mkfs"
        assert entry.severity is Severity.CRITICAL
        assert entry.enabled is True
        assert entry.examples == ["mkfs.ext4 /dev/sda1"]


# =============================================================================
# Test PatternDocument
# =============================================================================


class TestPatternDocument:
    """Tests for the configuration document schema."""

    def test_severity_normalized(self) -> None:
        """Severity strings are case-insensitive."""
        doc = _document()
        doc["dangerous_patterns"]["patterns"][0]["severity"] = "CRITICAL"
        parsed = PatternDocument.model_validate(doc)
        assert parsed.dangerous_patterns.patterns[0].severity is Severity.CRITICAL

    def test_defaults_for_optional_sections(self) -> None:
        """custom_patterns and settings default when absent."""
        parsed = PatternDocument.model_validate(_document())
        assert parsed.custom_patterns.dangerous == []
        assert parsed.settings == PatternSettings()

    def test_entries_append_custom_overlay(self) -> None:
        """Custom entries follow built-in entries of the same category."""
        doc = _document(
            custom_patterns={
                "dangerous": [{"name": "shutdown", "pattern": "^shutdown", "severity": "high"}],
            }
        )
        parsed = PatternDocument.model_validate(doc)
        names = [e.name for e in parsed.entries(PatternCategory.DANGEROUS)]
        assert names == ["delete_root_filesystem", "shutdown"]

    def test_missing_group_is_invalid(self) -> None:
        """A document without the category groups fails validation."""
        with pytest.raises(ValueError):
            PatternDocument.model_validate({"version": "1.0.0"})


# =============================================================================
# Test Document I/O
# =============================================================================


class TestReadPatternDocument:
    """Tests for read_pattern_document."""

    def test_reads_json(self, tmp_path: Path) -> None:
        path = _write_json(tmp_path / "patterns.json", _document())
        doc = read_pattern_document(path)
        assert doc.dangerous_patterns.patterns[0].name == "delete_root_filesystem"

    def test_reads_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "patterns.yaml"
        path.write_text(yaml.safe_dump(_document()), encoding="utf-8")
        doc = read_pattern_document(path)
        assert doc.suspicious_patterns.patterns[0].name == "sudo_with_rm"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            read_pattern_document(tmp_path / "absent.json")
        assert exc_info.value.path == str(tmp_path / "absent.json")

    def test_unparseable(self, tmp_path: Path) -> None:
        path = tmp_path / "patterns.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            read_pattern_document(path)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "patterns.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            read_pattern_document(path)

    def test_unknown_suffix_accepts_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "patterns.conf"
        path.write_text(yaml.safe_dump(_document()), encoding="utf-8")
        doc = read_pattern_document(path)
        assert doc.dangerous_patterns.patterns[0].name == "delete_root_filesystem"

    def test_json_suffix_is_strict(self, tmp_path: Path) -> None:
        """YAML text in a .json file is not accepted."""
        path = tmp_path / "patterns.json"
        path.write_text(yaml.safe_dump(_document()), encoding="utf-8")
        with pytest.raises(ConfigurationError, match="not valid JSON or YAML"):
            read_pattern_document(path)

    def test_schema_errors_in_details(self, tmp_path: Path) -> None:
        path = _write_json(tmp_path / "patterns.json", {"version": "1.0.0"})
        with pytest.raises(ConfigurationError) as exc_info:
            read_pattern_document(path)
        assert exc_info.value.details["errors"]


class TestDefaultPatternsPath:
    """Tests for default_patterns_path."""

    def test_default(self) -> None:
        assert default_patterns_path() == DEFAULT_PATTERNS_PATH

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("GUARDED_SHELL_PATTERNS_FILE", str(tmp_path / "rules.yaml"))
        assert default_patterns_path() == tmp_path / "rules.yaml"

    def test_registry_uses_env_path(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        path = _write_json(tmp_path / "rules.json", _document())
        monkeypatch.setenv("GUARDED_SHELL_PATTERNS_FILE", str(path))

        registry = PatternRegistry.load()

        assert registry.config_path == path
        assert registry.using_defaults is False
        assert len(registry.dangerous) == 1


# =============================================================================
# Test Loading
# =============================================================================


class TestPatternRegistryLoading:
    """Tests for loading and fallback behaviour."""

    def test_new_registry_is_empty(self, tmp_path: Path) -> None:
        """Nothing is read until reload()."""
        registry = PatternRegistry(tmp_path / "patterns.json")
        assert registry.dangerous == ()
        assert registry.suspicious == ()
        assert registry.whitelisted == ()

    def test_load_defaults(self, registry: PatternRegistry) -> None:
        """Built-in defaults: 7 dangerous, 4 suspicious, no whitelist."""
        assert registry.using_defaults is True
        assert len(registry.dangerous) == len(DEFAULT_DANGEROUS_PATTERNS) == 7
        assert len(registry.suspicious) == len(DEFAULT_SUSPICIOUS_PATTERNS) == 4
        assert registry.whitelisted == ()
        assert registry.settings == PatternSettings()

    def test_load_from_file(self, tmp_path: Path) -> None:
        path = _write_json(tmp_path / "patterns.json", _document())
        registry = PatternRegistry.load(path)

        assert registry.using_defaults is False
        assert [p.name for p in registry.dangerous] == ["delete_root_filesystem"]
        assert [p.name for p in registry.suspicious] == ["sudo_with_rm"]

    def test_shipped_config_matches_defaults(self) -> None:
        """The shipped config/command-patterns.json holds the default rule set."""
        path = Path(__file__).resolve().parents[3] / "config" / "command-patterns.json"
        registry = PatternRegistry.load(path)

        assert registry.using_defaults is False
        assert [p.name for p in registry.dangerous] == [e.name for e in DEFAULT_DANGEROUS_PATTERNS]
        assert [p.name for p in registry.suspicious] == [e.name for e in DEFAULT_SUSPICIOUS_PATTERNS]

    def test_missing_file_falls_back(self, tmp_path: Path) -> None:
        registry = PatternRegistry.load(tmp_path / "absent.json")
        assert registry.using_defaults is True
        assert len(registry.dangerous) == 7

    def test_corrupt_file_falls_back(self, tmp_path: Path) -> None:
        path = tmp_path / "patterns.json"
        path.write_text("{not json", encoding="utf-8")
        registry = PatternRegistry.load(path)
        assert registry.using_defaults is True
        assert len(registry.suspicious) == 4

    def test_invalid_document_falls_back(self, tmp_path: Path) -> None:
        path = _write_json(tmp_path / "patterns.json", {"version": "1.0.0"})
        registry = PatternRegistry.load(path)
        assert registry.using_defaults is True

    def test_invalid_expression_skipped(self, tmp_path: Path) -> None:
        """A bad regex drops only that entry."""
        doc = _document()
        doc["dangerous_patterns"]["patterns"].append(
            {"name": "broken", "pattern": "[unclosed", "severity": "high"},
        )
        registry = PatternRegistry.load(_write_json(tmp_path / "patterns.json", doc))

        assert registry.using_defaults is False
        assert [p.name for p in registry.dangerous] == ["delete_root_filesystem"]

    def test_disabled_entry_skipped(self, tmp_path: Path) -> None:
        doc = _document()
        doc["suspicious_patterns"]["patterns"][0]["enabled"] = False
        registry = PatternRegistry.load(_write_json(tmp_path / "patterns.json", doc))
        assert registry.suspicious == ()

    def test_duplicate_name_skipped(self, tmp_path: Path) -> None:
        """The first entry with a given name wins."""
        doc = _document(
            custom_patterns={
                "dangerous": [{"name": "delete_root_filesystem", "pattern": "^rm", "severity": "low"}],
            }
        )
        registry = PatternRegistry.load(_write_json(tmp_path / "patterns.json", doc))

        assert len(registry.dangerous) == 1
        assert registry.dangerous[0].severity is Severity.CRITICAL

    def test_custom_overlay_loaded(self, tmp_path: Path) -> None:
        doc = _document(
            custom_patterns={
                "whitelisted": [{"name": "tmp_cleanup", "pattern": r"^rm\s+-rf\s+/tmp/"}],
            }
        )
        registry = PatternRegistry.load(_write_json(tmp_path / "patterns.json", doc))
        assert [p.name for p in registry.whitelisted] == ["tmp_cleanup"]

    def test_whitelist_severity_dropped(self, tmp_path: Path) -> None:
        """Whitelist patterns carry no severity."""
        doc = _document(
            whitelisted_patterns={
                "patterns": [{"name": "tmp_cleanup", "pattern": "^rm", "severity": "high"}],
            }
        )
        registry = PatternRegistry.load(_write_json(tmp_path / "patterns.json", doc))
        assert registry.whitelisted[0].severity is None

    def test_case_sensitive_setting(self, tmp_path: Path) -> None:
        doc = _document(settings={"case_sensitive": True})
        registry = PatternRegistry.load(_write_json(tmp_path / "patterns.json", doc))

        assert registry.match_dangerous("rm -rf /")
        assert not registry.match_dangerous("RM -RF /")

    def test_reload_picks_up_changes(self, tmp_path: Path) -> None:
        path = _write_json(tmp_path / "patterns.json", _document())
        registry = PatternRegistry.load(path)

        doc = _document()
        doc["suspicious_patterns"]["patterns"] = []
        _write_json(path, doc)
        registry.reload()

        assert registry.suspicious == ()

    def test_from_document(self) -> None:
        registry = PatternRegistry.from_document(_document())
        assert registry.using_defaults is False
        assert len(registry.dangerous) == 1

    def test_json_with_trailing_comma_falls_back(self, tmp_path: Path) -> None:
        """A .json document is parsed as strict JSON; a syntax error means defaults."""
        text = json.dumps(_document(whitelisted_patterns={"patterns": [{"name": "home", "pattern": "^rm -rf /home/"}]}))
        path = tmp_path / "patterns.json"
        path.write_text(text[:-1] + ",}", encoding="utf-8")

        registry = PatternRegistry.load(path)

        assert registry.using_defaults is True
        assert registry.whitelisted == ()

    def test_invalid_entry_skipped(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        """An entry failing validation drops only that entry."""
        doc = _document(
            whitelisted_patterns={"patterns": [{"name": "home_cleanup", "pattern": r"^rm\s+-rf\s+/home/"}]},
        )
        doc["suspicious_patterns"]["patterns"].append({"name": "odd", "pattern": "^odd", "severity": "warning"})
        doc["dangerous_patterns"]["patterns"].append({"name": "no_expression", "severity": "high"})

        with caplog.at_level(logging.WARNING, logger="guarded_shell.shell.patterns"):
            registry = PatternRegistry.load(_write_json(tmp_path / "patterns.json", doc))

        assert registry.using_defaults is False
        assert [p.name for p in registry.suspicious] == ["sudo_with_rm"]
        assert [p.name for p in registry.dangerous] == ["delete_root_filesystem"]
        assert classify("rm -rf /home/alice/project", registry).whitelisted is True
        assert "Invalid pattern entry 'odd' skipped" in caplog.text
        assert "Invalid pattern entry 'no_expression' skipped" in caplog.text

    def test_invalid_custom_entry_skipped(self, tmp_path: Path) -> None:
        doc = _document(
            custom_patterns={
                "dangerous": [
                    {"name": "shutdown", "pattern": "^shutdown", "severity": "high"},
                    {"name": "reboot", "pattern": "^reboot", "severity": "extreme"},
                ],
            }
        )
        registry = PatternRegistry.load(_write_json(tmp_path / "patterns.json", doc))
        assert [p.name for p in registry.dangerous] == ["delete_root_filesystem", "shutdown"]


# =============================================================================
# Test Matching
# =============================================================================


class TestPatternRegistryMatching:
    """Tests for match_* queries."""

    def test_match_dangerous_in_order(self, registry: PatternRegistry) -> None:
        matches = registry.match_dangerous("curl https://get.example.com | sh")
        assert [p.name for p in matches] == ["curl_pipe_to_shell"]

    def test_match_suspicious(self, registry: PatternRegistry) -> None:
        matches = registry.match_suspicious("sudo rm -rf /tmp/test")
        assert [p.name for p in matches] == ["sudo_with_rm"]

    def test_no_match(self, registry: PatternRegistry) -> None:
        assert registry.match_dangerous("ls -la") == []
        assert registry.match_suspicious("ls -la") == []
        assert registry.match_whitelisted("ls -la") is False

    def test_fork_bomb(self, registry: PatternRegistry) -> None:
        assert [p.name for p in registry.match_dangerous(":(){ :|:& };:")] == ["fork_bomb"]

    def test_whitelist_override_disabled(self) -> None:
        """With allow_whitelist_override off, whitelist never matches."""
        doc = _document(
            whitelisted_patterns={"patterns": [{"name": "any_rm", "pattern": "^rm"}]},
            settings={"allow_whitelist_override": False},
        )
        registry = PatternRegistry.from_document(doc)

        assert len(registry.whitelisted) == 1
        assert registry.match_whitelisted("rm -rf /") is False

    def test_patterns_by_category_name(self, registry: PatternRegistry) -> None:
        assert registry.patterns("dangerous") == registry.dangerous
        assert registry.patterns(PatternCategory.SUSPICIOUS) == registry.suspicious


# =============================================================================
# Test Mutation
# =============================================================================


class TestAddPattern:
    """Tests for add_pattern."""

    def test_add_dangerous(self, registry: PatternRegistry) -> None:
        pattern = registry.add_pattern(
            "dangerous",
            name="shutdown_system",
            expression=r"^shutdown|^reboot",
            description="System shutdown/reboot",
            severity="high",
        )

        assert pattern.severity is Severity.HIGH
        assert registry.dangerous[-1] == pattern
        assert len(registry.dangerous) == 8
        assert [p.name for p in registry.match_dangerous("reboot now")] == ["shutdown_system"]

    def test_default_severity_medium(self, registry: PatternRegistry) -> None:
        pattern = registry.add_pattern(PatternCategory.SUSPICIOUS, name="nc_listen", expression=r"nc\s+-l")
        assert pattern.severity is Severity.MEDIUM

    def test_add_whitelisted_has_no_severity(self, registry: PatternRegistry) -> None:
        pattern = registry.add_pattern("whitelisted", name="tmp", expression=r"^rm\s+-rf\s+/tmp/", severity="high")
        assert pattern.severity is None
        assert registry.match_whitelisted("rm -rf /tmp/cache")

    def test_invalid_category(self, registry: PatternRegistry) -> None:
        with pytest.raises(InvalidPatternError, match="Invalid pattern type"):
            registry.add_pattern("forbidden", name="x", expression="x")

    def test_invalid_severity(self, registry: PatternRegistry) -> None:
        with pytest.raises(InvalidPatternError, match="Invalid severity"):
            registry.add_pattern("dangerous", name="x", expression="x", severity="apocalyptic")
        assert len(registry.dangerous) == 7

    def test_invalid_expression_leaves_registry_unchanged(self, registry: PatternRegistry) -> None:
        before = registry.snapshot()
        with pytest.raises(InvalidPatternError) as exc_info:
            registry.add_pattern("dangerous", name="broken", expression="(unclosed")

        assert exc_info.value.category == "dangerous"
        assert registry.snapshot() is before

    def test_existing_snapshot_unaffected(self, registry: PatternRegistry) -> None:
        """Snapshots are immutable; a later add is not visible through them."""
        snapshot = registry.snapshot()
        registry.add_pattern("dangerous", name="shutdown", expression="^shutdown")

        assert len(snapshot.dangerous) == 7
        assert len(registry.snapshot().dangerous) == 8


# =============================================================================
# Test Persistence
# =============================================================================


class TestPersistence:
    """Tests for save and export."""

    def test_save_round_trip(self, tmp_path: Path, registry: PatternRegistry) -> None:
        registry.add_pattern("suspicious", name="nc_listen", expression=r"nc\s+-l", severity="low")
        path = registry.save(tmp_path / "patterns.json")

        reloaded = PatternRegistry.load(path)

        assert reloaded.using_defaults is False
        assert [p.name for p in reloaded.suspicious] == [p.name for p in registry.suspicious]
        assert reloaded.suspicious[-1].severity is Severity.LOW

    def test_save_defaults_to_config_path(self, tmp_path: Path) -> None:
        path = _write_json(tmp_path / "patterns.json", _document())
        registry = PatternRegistry.load(path)
        registry.add_pattern("dangerous", name="shutdown", expression="^shutdown", severity="high")

        assert registry.save() == path
        data = json.loads(path.read_text(encoding="utf-8"))
        names = [p["name"] for p in data["dangerous_patterns"]["patterns"]]
        assert names == ["delete_root_filesystem", "shutdown"]

    def test_save_yaml(self, tmp_path: Path, registry: PatternRegistry) -> None:
        path = registry.save(tmp_path / "patterns.yaml")
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert len(data["dangerous_patterns"]["patterns"]) == 7
        assert data["settings"]["block_dangerous_by_default"] is True

    def test_save_whitelist_omits_severity(self, tmp_path: Path, registry: PatternRegistry) -> None:
        registry.add_pattern("whitelisted", name="tmp", expression="^rm -rf /tmp/")
        data = json.loads(registry.save(tmp_path / "p.json").read_text(encoding="utf-8"))
        assert "severity" not in data["whitelisted_patterns"]["patterns"][0]

    def test_save_unwritable(self, tmp_path: Path, registry: PatternRegistry) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            registry.save(blocker / "patterns.json")

    def test_save_keeps_disabled_entries(self, tmp_path: Path) -> None:
        doc = _document()
        doc["suspicious_patterns"]["patterns"].append(
            {"name": "nc_listen", "pattern": r"nc\s+-l", "severity": "low", "enabled": False},
        )
        path = _write_json(tmp_path / "patterns.json", doc)
        registry = PatternRegistry.load(path)
        registry.add_pattern("suspicious", name="curl_insecure", expression=r"curl\s+-k")

        registry.save()

        data = json.loads(path.read_text(encoding="utf-8"))
        entries = data["suspicious_patterns"]["patterns"]
        assert [(e["name"], e["enabled"]) for e in entries] == [
            ("sudo_with_rm", True),
            ("curl_insecure", True),
            ("nc_listen", False),
        ]
        assert [p.name for p in PatternRegistry.load(path).suspicious] == ["sudo_with_rm", "curl_insecure"]

    def test_export(self, tmp_path: Path, registry: PatternRegistry) -> None:
        path = registry.export(tmp_path / "export.json")
        data = json.loads(path.read_text(encoding="utf-8"))

        assert set(data) == {"dangerous", "suspicious", "whitelisted", "settings"}
        assert len(data["dangerous"]) == 7
        assert data["dangerous"][0]["name"] == "delete_root_filesystem"
        assert data["dangerous"][0]["severity"] == "critical"
        assert "enabled" not in data["dangerous"][0]
        assert data["whitelisted"] == []


# =============================================================================
# Test Statistics
# =============================================================================


class TestPatternStats:
    """Tests for stats()."""

    def test_default_counts(self, registry: PatternRegistry) -> None:
        stats = registry.stats()

        assert stats.dangerous == {"total": 7, "critical": 5, "high": 2, "medium": 0, "low": 0}
        assert stats.suspicious == {"total": 4, "critical": 0, "high": 0, "medium": 2, "low": 2}
        assert stats.whitelisted == {"total": 0}

    def test_to_dict(self, registry: PatternRegistry) -> None:
        d = registry.stats().to_dict()
        assert d["dangerous"]["total"] == 7
        assert d["settings"]["warn_on_suspicious"] is True


# =============================================================================
# Test Process-wide Registry
# =============================================================================


class TestGlobalRegistry:
    """Tests for get_pattern_registry / set_pattern_registry."""

    def test_lazy_singleton(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("GUARDED_SHELL_PATTERNS_FILE", str(tmp_path / "absent.json"))
        first = get_pattern_registry()
        assert first is get_pattern_registry()
        assert first.using_defaults is True

    def test_set_registry(self, registry: PatternRegistry) -> None:
        set_pattern_registry(registry)
        assert get_pattern_registry() is registry

# =============================================================================
# Test Concurrent Access
# =============================================================================


class TestConcurrentAccess:
    """add_pattern from several threads while another thread classifies."""

    WRITERS = 4
    PER_WRITER = 50

    def test_add_pattern_during_classification(self, registry: PatternRegistry) -> None:
        barrier = threading.Barrier(self.WRITERS + 1)
        writers_done = threading.Event()
        observed: list[tuple[int, int, int]] = []
        errors: list[BaseException] = []

        def writer(n: int) -> None:
            try:
                barrier.wait()
                for i in range(self.PER_WRITER):
                    registry.add_pattern(
                        "dangerous",
                        name=f"deploy_{n}_{i}",
                        expression=r"^deploy\b",
                        description=f"Deploy rule {n}.{i}",
                        severity="high",
                    )
            except BaseException as e:
                errors.append(e)

        def reader() -> None:
            try:
                barrier.wait()
                while not writers_done.is_set():
                    snapshot = registry.snapshot()
                    verdict = classify("deploy --all", snapshot)
                    added = sum(1 for p in snapshot.dangerous if p.name.startswith("deploy_"))
                    observed.append((len(snapshot.dangerous), added, len(verdict.warnings)))
            except BaseException as e:
                errors.append(e)

        reader_thread = threading.Thread(target=reader)
        writer_threads = [threading.Thread(target=writer, args=(n,)) for n in range(self.WRITERS)]
        reader_thread.start()
        for thread in writer_threads:
            thread.start()
        for thread in writer_threads:
            thread.join()
        writers_done.set()
        reader_thread.join()

        assert errors == []
        for total, added, warnings in observed:
            assert total == len(DEFAULT_DANGEROUS_PATTERNS) + added
            assert warnings == added
        added_counts = [added for _, added, _ in observed]
        assert added_counts == sorted(added_counts)

        expected = self.WRITERS * self.PER_WRITER
        names = [p.name for p in registry.dangerous]
        assert len(names) == len(DEFAULT_DANGEROUS_PATTERNS) + expected
        assert len(set(names)) == len(names)
        assert len(classify("deploy --all", registry).warnings) == expected
