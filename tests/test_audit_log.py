"""Tests for the JSON-lines vault audit trail."""

import json
import uuid
from datetime import date

from secure_vault.core import audit_log as audit_mod
from secure_vault.core.audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    get_audit_logger,
    log_security_event,
    set_audit_logger,
)


def _events(path):
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines if line.strip()]


class TestAuditLogger:

    def test_creates_log_dir(self, tmp_path):
        log = AuditLogger(log_dir=tmp_path / "audit")
        assert (tmp_path / "audit").is_dir()
        assert log.log_file.parent == tmp_path / "audit"
        assert log.log_file.name.startswith("audit_")
        assert log.log_file.suffix == ".log"

    def test_event_line(self, tmp_path):
        log = AuditLogger(log_dir=tmp_path / "audit")
        event_id = log.log_event(
            EventType.VAULT_UNLOCKED,
            EventSeverity.INFO,
            "Vault unlocked",
            details={"existing_vault": True},
            user_id="user-1",
        )
        uuid.UUID(event_id)

        entry = _events(log.log_file)[-1]
        assert entry["event"] == "vault.unlocked"
        assert entry["event_id"] == event_id
        assert entry["severity"] == "info"
        assert entry["message"] == "Vault unlocked"
        assert entry["user_id"] == "user-1"
        assert entry["details"] == {"existing_vault": True}
        assert entry["host"]
        assert entry["pid"] > 0
        assert "timestamp" in entry
        log.close()

    def test_missing_details_and_user(self, tmp_path):
        log = AuditLogger(log_dir=tmp_path / "audit")
        log.log_event(EventType.VAULT_LOCKED, EventSeverity.INFO, "Vault locked")
        entry = _events(log.log_file)[-1]
        assert entry["details"] == {}
        assert entry["user_id"] is None
        log.close()

    def test_appends(self, tmp_path):
        log = AuditLogger(log_dir=tmp_path / "audit")
        for _ in range(3):
            log.log_event(EventType.VAULT_LOCKED, EventSeverity.INFO, "Vault locked")
        assert len(_events(log.log_file)) == 3
        log.close()

    def test_instances_share_daily_file(self, tmp_path):
        first = AuditLogger(log_dir=tmp_path / "audit")
        second = AuditLogger(log_dir=tmp_path / "audit")
        first.log_event(EventType.VAULT_LOCKED, EventSeverity.INFO, "one")
        second.log_event(EventType.VAULT_LOCKED, EventSeverity.INFO, "two")
        assert [e["message"] for e in _events(first.log_file)] == ["one", "two"]
        first.close()
        second.close()

    def test_rolls_over_at_day_change(self, tmp_path, monkeypatch):
        log = AuditLogger(log_dir=tmp_path / "audit")
        monkeypatch.setattr(AuditLogger, "_today", staticmethod(lambda: date(2026, 1, 1)))
        log.log_event(EventType.VAULT_LOCKED, EventSeverity.INFO, "day one")
        monkeypatch.setattr(AuditLogger, "_today", staticmethod(lambda: date(2026, 1, 2)))
        log.log_event(EventType.VAULT_LOCKED, EventSeverity.INFO, "day two")
        log.close()

        day_one = _events(tmp_path / "audit" / "audit_2026-01-01.log")
        day_two = _events(tmp_path / "audit" / "audit_2026-01-02.log")
        assert [e["message"] for e in day_one] == ["day one"]
        assert [e["message"] for e in day_two] == ["day two"]

    def test_usable_after_close(self, tmp_path):
        log = AuditLogger(log_dir=tmp_path / "audit")
        log.log_event(EventType.VAULT_LOCKED, EventSeverity.INFO, "before")
        log.close()
        log.log_event(EventType.VAULT_LOCKED, EventSeverity.INFO, "after")
        log.close()
        assert len(_events(log.log_file)) == 2


class TestSingleton:

    def test_set_and_get(self, tmp_path):
        instance = AuditLogger(log_dir=tmp_path / "singleton")
        set_audit_logger(instance)
        assert get_audit_logger() is instance

    def test_lazy_default_from_config(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SECURE_VAULT_AUDIT_DIR", str(tmp_path / "from-env"))
        set_audit_logger(None)
        log = get_audit_logger()
        assert log.log_dir == tmp_path / "from-env"
        assert audit_mod._audit_logger is log

    def test_log_security_event(self):
        event_id = log_security_event(
            EventType.VAULT_IMPORT_REJECTED,
            EventSeverity.ALERT,
            "Import rejected",
            details={"reason": "Invalid JSON format"},
        )
        entry = _events(get_audit_logger().log_file)[-1]
        assert entry["event_id"] == event_id
        assert entry["event"] == "vault.import.rejected"
        assert entry["severity"] == "alert"
