"""
Tests for the hash-chained audit log store.
"""

import io
import json
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import timedelta

import pytest
from govgate.audit import (
    GENESIS_HASH,
    AuditEntry,
    AuditEventType,
    AuditFilter,
    AuditLogStore,
    JsonlAuditBackend,
    MemoryAuditBackend,
    SqlAuditBackend,
    compute_record_hash,
    verify_export,
)
from govgate.core.errors import AuditIntegrityError
from govgate.core.reasons import Verdict
from govgate.db import init_session_factory


def _entry(action_id="act-1", verdict=Verdict.ALLOWED, actor="bot", reason="allowed"):
    return AuditEntry(action_id=action_id, verdict=verdict, reason=reason, actor=actor)


def _fill(store, count=5):
    verdicts = [Verdict.ALLOWED, Verdict.DENIED, Verdict.PENDING]
    return [
        store.append(_entry(f"act-{i}", verdicts[i % 3], actor=f"user-{i % 2}"))
        for i in range(count)
    ]


class TestAppend:
    """Test chaining on append."""

    def test_first_record_links_to_genesis(self, audit):
        record = audit.append(_entry())

        assert record.sequence_no == 0
        assert record.prior_hash == GENESIS_HASH
        assert record.record_hash == compute_record_hash(GENESIS_HASH, record.body())

    def test_records_link_to_predecessor(self, audit):
        records = _fill(audit, 3)

        assert [r.sequence_no for r in records] == [0, 1, 2]
        assert records[1].prior_hash == records[0].record_hash
        assert records[2].prior_hash == records[1].record_hash
        assert audit.head() == records[2]
        assert len(audit) == 3

    def test_hash_is_deterministic(self, clock):
        first = AuditLogStore(MemoryAuditBackend(), clock).append(_entry())
        second = AuditLogStore(MemoryAuditBackend(), clock).append(_entry())

        assert first.record_hash == second.record_hash

    def test_persisted_before_return(self, clock):
        backend = MemoryAuditBackend()
        store = AuditLogStore(backend, clock)

        record = store.append(_entry())

        assert backend.records == [record]

    def test_concurrent_appends_are_totally_ordered(self, audit):
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda i: audit.append(_entry(f"act-{i}")), range(200)))

        assert len(audit) == 200
        assert audit.verify().valid
        assert [r.sequence_no for r in audit.query()] == list(range(200))


class TestVerify:
    """Test chain verification and tamper detection."""

    def test_intact_chain_verifies(self, audit):
        _fill(audit, 10)

        result = audit.verify()

        assert result
        assert result.checked == 10
        assert result.first_divergence is None

    def test_empty_chain_verifies(self, audit):
        assert audit.verify().valid

    def test_mutation_detected_at_first_altered_record(self, clock):
        backend = MemoryAuditBackend()
        store = AuditLogStore(backend, clock)
        _fill(store, 6)

        backend.records[3] = replace(backend.records[3], reason="tampered")

        result = store.verify()
        assert not result
        assert result.first_divergence == 3
        assert result.reason == "record hash mismatch"

    def test_rehashed_record_breaks_link(self, clock):
        backend = MemoryAuditBackend()
        store = AuditLogStore(backend, clock)
        _fill(store, 6)

        forged = replace(backend.records[2], actor="mallory")
        forged = replace(forged, record_hash=compute_record_hash(forged.prior_hash, forged.body()))
        backend.records[2] = forged

        result = store.verify()
        assert result.first_divergence == 3
        assert result.reason == "prior hash mismatch"

    def test_range_verification_ignores_damage_outside_range(self, clock):
        backend = MemoryAuditBackend()
        store = AuditLogStore(backend, clock)
        _fill(store, 6)
        backend.records[5] = replace(backend.records[5], reason="tampered")

        assert store.verify(0, 5).valid
        assert store.verify(2, 5).checked == 3
        assert store.verify(3).first_divergence == 5

    def test_break_halts_appends_until_resume(self, clock):
        backend = MemoryAuditBackend()
        store = AuditLogStore(backend, clock)
        _fill(store, 3)
        backend.records[1] = replace(backend.records[1], reason="tampered")

        assert not store.verify()
        assert store.halted
        with pytest.raises(AuditIntegrityError):
            store.append(_entry())

        resumed = store.resume("operator-1", note="investigated")

        assert not store.halted
        assert resumed.event_type == AuditEventType.INTEGRITY
        assert resumed.reason == "integrity_resumed"
        assert resumed.actor == "operator-1"
        assert store.append(_entry()).sequence_no == 4

    def test_verify_runs_alongside_writers(self, audit):
        _fill(audit, 5)
        results = []

        def verify_loop():
            for _ in range(5):
                results.append(audit.verify().valid)

        thread = threading.Thread(target=verify_loop)
        thread.start()
        for i in range(20):
            audit.append(_entry(f"late-{i}"))
        thread.join()

        assert all(results)


class TestQuery:
    """Test filtered, lazy, restartable queries."""

    def test_filter_by_action_verdict_actor(self, audit):
        _fill(audit, 6)

        assert [r.action_id for r in audit.query(AuditFilter(action_id="act-4"))] == ["act-4"]
        denied = list(audit.query(AuditFilter(verdict=Verdict.DENIED)))
        assert [r.sequence_no for r in denied] == [1, 4]
        by_actor = list(audit.query(AuditFilter(actor="user-1")))
        assert [r.sequence_no for r in by_actor] == [1, 3, 5]

    def test_filter_by_time_window(self, audit, clock):
        audit.append(_entry("early"))
        clock.advance(60)
        middle = audit.append(_entry("middle"))
        clock.advance(60)
        audit.append(_entry("late"))

        window = AuditFilter(
            since=middle.occurred_at,
            until=middle.occurred_at + timedelta(seconds=60),
        )
        assert [r.action_id for r in audit.query(window)] == ["middle"]

    def test_filter_by_event_type(self, audit):
        audit.append(_entry())
        audit.append(
            AuditEntry(
                action_id=None,
                verdict=None,
                reason="budget_reset",
                actor="admin",
                event_type=AuditEventType.BUDGET_ADMIN,
            )
        )

        admin = list(audit.query(AuditFilter(event_type=AuditEventType.BUDGET_ADMIN)))
        assert [r.reason for r in admin] == ["budget_reset"]

    def test_query_is_restartable(self, audit):
        _fill(audit, 4)
        result = audit.query()

        assert list(result) == list(result)

    def test_query_sees_consistent_prefix(self, audit):
        _fill(audit, 3)
        result = audit.query()
        audit.append(_entry("after"))

        assert len(list(result)) == 3


class TestExport:
    """Test line-delimited export and offline verification."""

    def test_export_round_trip_verifies(self, audit):
        _fill(audit, 5)
        buffer = io.StringIO()

        written = audit.export(buffer)

        lines = buffer.getvalue().splitlines()
        assert written == 5
        assert all(json.loads(line)["record_hash"] for line in lines)
        assert verify_export(lines) == audit.verify()

    def test_tampered_export_matches_live_verdict(self, clock):
        backend = MemoryAuditBackend()
        store = AuditLogStore(backend, clock)
        _fill(store, 5)
        backend.records[2] = replace(backend.records[2], verdict=Verdict.ALLOWED, reason="x")
        buffer = io.StringIO()
        store.export(buffer)

        exported = verify_export(buffer.getvalue().splitlines())

        assert exported == store.verify()
        assert exported.first_divergence == 2

    def test_unparseable_export_line(self, audit):
        _fill(audit, 3)
        buffer = io.StringIO()
        audit.export(buffer)
        lines = buffer.getvalue().splitlines()
        lines[1] = "{not json"

        result = verify_export(lines)

        assert result.first_divergence == 1
        assert result.reason == "unparseable record"


class TestJsonlBackend:
    """Test the durable JSON Lines backend."""

    def test_reload_restores_chain(self, tmp_path, clock):
        path = tmp_path / "audit" / "audit.jsonl"
        store = AuditLogStore(JsonlAuditBackend(path), clock)
        records = _fill(store, 4)
        store.close()

        reopened = AuditLogStore(JsonlAuditBackend(path), clock)

        assert len(reopened) == 4
        assert reopened.head().record_hash == records[-1].record_hash
        assert reopened.verify().valid
        assert reopened.append(_entry()).prior_hash == records[-1].record_hash
        reopened.close()

    def test_file_is_independently_verifiable(self, tmp_path, clock):
        path = tmp_path / "audit.jsonl"
        store = AuditLogStore(JsonlAuditBackend(path), clock)
        _fill(store, 4)
        store.close()

        with path.open() as f:
            assert verify_export(f).valid

    def test_tampered_file_halts_on_load(self, tmp_path, clock):
        path = tmp_path / "audit.jsonl"
        store = AuditLogStore(JsonlAuditBackend(path), clock)
        _fill(store, 4)
        store.close()

        lines = path.read_text().splitlines()
        record = json.loads(lines[1])
        record["reason"] = "rewritten"
        lines[1] = json.dumps(record)
        path.write_text("\n".join(lines) + "\n")

        reopened = AuditLogStore(JsonlAuditBackend(path), clock)
        assert reopened.halted
        with pytest.raises(AuditIntegrityError):
            reopened.append(_entry())
        reopened.close()


    def test_resume_refused_while_lines_unreadable(self, tmp_path, clock):
        path = tmp_path / "audit.jsonl"
        store = AuditLogStore(JsonlAuditBackend(path), clock)
        _fill(store, 3)
        store.close()

        lines = path.read_text().splitlines()
        lines[1] = "{not json"
        path.write_text("\n".join(lines) + "\n")

        reopened = AuditLogStore(JsonlAuditBackend(path), clock)
        assert reopened.halted
        assert len(reopened) == 2
        with pytest.raises(AuditIntegrityError, match="repair"):
            reopened.resume("operator")
        reopened.close()

        sequence_nos = [json.loads(line)["sequence_no"] for line in (lines[0], lines[2])]
        assert sequence_nos == [0, 2]
        assert len(path.read_text().splitlines()) == 3
        assert reopened.halted

class TestSqlBackend:
    """Test the SQLAlchemy backend on in-memory SQLite."""

    @pytest.fixture
    def backend(self):
        return SqlAuditBackend(init_session_factory(database_url="sqlite://"))

    def test_append_and_reload(self, backend, clock):
        store = AuditLogStore(backend, clock)
        _fill(store, 3)

        reopened = AuditLogStore(backend, clock)

        assert len(reopened) == 3
        assert reopened.verify().valid
        assert [r.action_id for r in reopened.query()] == ["act-0", "act-1", "act-2"]

    def test_details_survive_round_trip(self, backend, clock):
        store = AuditLogStore(backend, clock)
        store.append(
            AuditEntry(
                action_id="act-1",
                verdict=Verdict.DENIED,
                reason="scope_violation",
                actor="bot",
                details={"scope": ["infra"], "cost_estimate": 5.0},
            )
        )

        assert store.verify().valid
        reopened = AuditLogStore(backend, clock)
        assert reopened.head().details == {"scope": ["infra"], "cost_estimate": 5.0}
