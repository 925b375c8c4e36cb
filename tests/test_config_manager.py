from __future__ import annotations

import json
import os

import pytest

from sessionguard.core.config.manager import ConfigManager
from sessionguard.core.config.models import ConflictPolicy
from sessionguard.core.config.paths import ConfigFsPaths
from sessionguard.core.errors import ConfigError


class DummyLogger:
    def info(self, *_a, **_k): ...
    def warning(self, *_a, **_k): ...
    def error(self, *_a, **_k): ...


def _mk_cm(tmp_path, *, read_only: bool = False) -> ConfigManager:
    return ConfigManager(fs=ConfigFsPaths(root=str(tmp_path)), logger=DummyLogger(), read_only=read_only)


def test_missing_files_are_written_with_defaults(tmp_path):
    cm = _mk_cm(tmp_path)
    cfg = cm.load_all()
    assert cfg.security.lockout.max_attempts == 5
    assert cfg.security.lockout.window_minutes == 15
    assert cfg.sessions.sweep_interval_seconds == 300.0
    assert cfg.security.conflict.default_policy == ConflictPolicy.prevent
    for name in ("security.json", "sessions.json", "store.json", "web.json", "events.json"):
        assert os.path.exists(os.path.join(cm.fs.config_dir, name))


def test_validation_rejects_unknown_fields(tmp_path):
    cm = _mk_cm(tmp_path)
    bad = cm.load_all().web.model_dump()
    bad["unknown_field"] = 1
    with pytest.raises(ConfigError):
        cm.save("web", bad)


def test_invalid_values_on_disk_are_a_hard_error(tmp_path):
    cm = _mk_cm(tmp_path)
    cm.load_all()
    with open(cm.fs.sessions, "w", encoding="utf-8") as f:
        json.dump({"sweep_interval_seconds": -1}, f)
    with pytest.raises(ConfigError):
        cm.load_all()


def test_corrupt_json_triggers_recovery_and_backup(tmp_path):
    cm = _mk_cm(tmp_path)
    cm.load_all()
    with open(cm.fs.web, "w", encoding="utf-8") as f:
        f.write("{not json")
    cfg = cm.load_all()
    assert cfg.web.port == 8080
    backups = os.listdir(cm.fs.backups_dir)
    assert any("web.json" in b and "corrupt" in b for b in backups)


def test_atomic_write_preserves_integrity(tmp_path):
    cm = _mk_cm(tmp_path)
    web = cm.load_all().web.model_dump()
    web["port"] = 8123
    cfg = cm.save("web", web)
    assert cfg.web.port == 8123
    with open(cm.fs.web, "r", encoding="utf-8") as f:
        obj = json.load(f)
    assert obj["port"] == 8123
    assert not [n for n in os.listdir(cm.fs.config_dir) if n.startswith(".tmp_")]


def test_unknown_section_rejected(tmp_path):
    cm = _mk_cm(tmp_path)
    with pytest.raises(ConfigError):
        cm.save("nope", {})


def test_read_only_never_writes(tmp_path):
    cm = _mk_cm(tmp_path, read_only=True)
    cfg = cm.load_all()
    assert cfg.store.backend == "json"
    assert not os.path.exists(cm.fs.config_dir)
    with pytest.raises(ConfigError):
        cm.save("web", cfg.web.model_dump())


def test_relative_paths_resolve_against_root(tmp_path):
    fs = ConfigFsPaths(root=str(tmp_path))
    assert fs.resolve("data/store.json") == os.path.join(str(tmp_path), "data/store.json")
    absolute = os.path.join(str(tmp_path), "x.json")
    assert fs.resolve(absolute) == absolute
