"""Tests for chartdesk.db — the SQLite snapshot store."""

from dataclasses import replace

from chartdesk.db import ChartdeskDB
from chartdesk.models import Memo


class TestSchema:
    def test_tables(self, tmp_db):
        assert tmp_db.summary() == {"command_log": 0, "patients": 0, "record_snapshots": 0}

    def test_init_schema_twice(self, tmp_db):
        tmp_db.init_schema()
        assert "record_snapshots" in tmp_db.summary()


class TestSaveRecord:
    def test_save_and_load(self, tmp_db, sample_record):
        result = tmp_db.save_record(sample_record, reason="import")
        assert not result.skipped
        assert result.snapshot_id == 1
        assert len(result.content_hash) == 64
        assert tmp_db.load_record("pt_sarah") == sample_record

    def test_identical_save_skipped(self, tmp_db, sample_record):
        first = tmp_db.save_record(sample_record)
        second = tmp_db.save_record(sample_record)
        assert second.skipped
        assert second.snapshot_id is None
        assert second.content_hash == first.content_hash
        assert tmp_db.summary()["record_snapshots"] == 1

    def test_changed_record_appends(self, tmp_db, sample_record, now):
        tmp_db.save_record(sample_record, reason="import")
        memo = Memo(id="memo_new", note="Called patient.", created_date=now)
        changed = replace(sample_record, memos=(memo,) + sample_record.memos)
        result = tmp_db.save_record(changed, reason="cli:memo")

        assert result.snapshot_id == 2
        assert tmp_db.load_record("pt_sarah").memos[0].id == "memo_new"
        assert tmp_db.load_snapshot(1) == sample_record

    def test_history(self, tmp_db, sample_record, now):
        tmp_db.save_record(sample_record, reason="import")
        memo = Memo(id="memo_new", note="x", created_date=now)
        tmp_db.save_record(replace(sample_record, memos=(memo,)), reason="cli:memo")

        history = tmp_db.history("pt_sarah")
        assert [h["reason"] for h in history] == ["cli:memo", "import"]
        assert history[1]["charges_count"] == 4
        assert history[1]["total_outstanding"] == "255.00"
        assert "payload" not in history[0]

    def test_patients(self, tmp_db, sample_record):
        tmp_db.save_record(sample_record)
        rows = tmp_db.patients()
        assert len(rows) == 1
        assert rows[0]["id"] == "pt_sarah"
        assert rows[0]["last_name"] == "Johnson"
        assert rows[0]["date_of_birth"] == "1985-07-15"

    def test_unknown_patient(self, tmp_db):
        assert tmp_db.load_record("pt_nobody") is None
        assert tmp_db.load_snapshot(99) is None


class TestCommandLog:
    def test_log_and_read(self, tmp_db):
        tmp_db.log_command("pt_sarah", "AddMemo", "ok")
        tmp_db.log_command("pt_sarah", "ChargeNow", "rejected", "INVALID_SELECTION", "No charges selected")
        rows = tmp_db.command_log("pt_sarah")
        assert [r["command"] for r in rows] == ["ChargeNow", "AddMemo"]
        assert rows[0]["error_code"] == "INVALID_SELECTION"
        assert rows[1]["outcome"] == "ok"

    def test_limit(self, tmp_db):
        for i in range(5):
            tmp_db.log_command("pt_sarah", f"Cmd{i}", "ok")
        assert len(tmp_db.command_log("pt_sarah", limit=2)) == 2


class TestContextManager:
    def test_with_block(self, tmp_path, sample_record):
        path = str(tmp_path / "ctx.db")
        with ChartdeskDB(path) as db:
            db.init_schema()
            db.save_record(sample_record)
        with ChartdeskDB(path) as db:
            assert db.load_record("pt_sarah") == sample_record

    def test_query(self, tmp_db, sample_record):
        tmp_db.save_record(sample_record)
        rows = tmp_db.query("SELECT patient_id, memos_count FROM record_snapshots")
        assert rows == [{"patient_id": "pt_sarah", "memos_count": 1}]
