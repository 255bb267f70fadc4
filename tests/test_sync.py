"""Tests for manual and scheduled data source syncs."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from app.modules.data_sources.schemas import DataSourceResponse, DatabaseConnection
from app.modules.data_sources.sync_scheduler import find_due_sources, run_due_syncs
from app.modules.data_sources.sync_service import (
    RESET_MESSAGE,
    SyncService,
    compute_next_sync,
    is_sync_stuck,
)

from tests.conftest import ORG_ID

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
EVERY_5_MINUTES = {"enabled": True, "interval": 5, "intervalUnit": "minutes"}


def seed_source(fake_supabase, **fields):
    row = {
        "name": "Scores",
        "type": "api",
        "active": True,
        "organization_id": ORG_ID,
        "sync_status": "idle",
        "sync_config": EVERY_5_MINUTES,
    }
    row.update(fields)
    return fake_supabase.seed("data_sources", row)[0]


def make_source(**fields) -> DataSourceResponse:
    values = {"id": "ds-1", "name": "Scores", "type": "api", "sync_config": EVERY_5_MINUTES}
    values.update(fields)
    return DataSourceResponse(**values)


@pytest.fixture
def service(fake_supabase):
    return SyncService(fake_supabase, clock=lambda: NOW)


class TestComputeNextSync:
    def test_interval(self):
        assert compute_next_sync({"enabled": True, "interval": 2, "intervalUnit": "hours"}, NOW) == NOW + timedelta(hours=2)

    def test_disabled_or_missing(self):
        assert compute_next_sync({"enabled": False, "interval": 2}, NOW) is None
        assert compute_next_sync(None, NOW) is None


class TestIsSyncStuck:
    def test_running_past_threshold(self):
        source = make_source(sync_status="running", last_sync_at=NOW - timedelta(minutes=10))
        assert is_sync_stuck(source, NOW, threshold_seconds=300)

    def test_recent_run_is_not_stuck(self):
        source = make_source(sync_status="running", last_sync_at=NOW - timedelta(minutes=1))
        assert not is_sync_stuck(source, NOW, threshold_seconds=300)

    def test_naive_timestamps_are_utc(self):
        source = make_source(sync_status="running", last_sync_at=datetime(2024, 5, 1, 11, 0))
        assert is_sync_stuck(source, NOW, threshold_seconds=300)

    def test_idle_is_never_stuck(self):
        assert not is_sync_stuck(make_source(last_sync_at=NOW - timedelta(days=1)), NOW, threshold_seconds=300)


class TestTriggerManualSync:
    def test_success_records_outcome(self, service, fake_supabase):
        source = seed_source(fake_supabase)
        fake_supabase.functions.handlers["sync-api-integration"] = {"itemsProcessed": 7}

        result = service.trigger_manual_sync(source["id"])

        assert result.items_processed == 7
        assert result.message == "Synced 7 items"
        assert fake_supabase.functions.calls == [
            ("sync-api-integration", {"dataSourceId": source["id"], "force": False})
        ]
        row = fake_supabase.rows("data_sources")[0]
        assert row["sync_status"] == "success"
        assert row["last_sync_count"] == 7
        assert row["last_sync_error"] is None
        assert row["next_sync_at"] == (NOW + timedelta(minutes=5)).isoformat()

    def test_function_per_source_type(self, service, fake_supabase):
        source = seed_source(fake_supabase, type="file", sync_config=None)
        service.trigger_manual_sync(source["id"])
        assert fake_supabase.functions.calls[0][0] == "sync-file-integration"
        assert "next_sync_at" not in fake_supabase.rows("data_sources")[0]

    def test_status_written_by_function_is_kept(self, service, fake_supabase):
        source = seed_source(fake_supabase)

        def handler(body):
            fake_supabase.rows("data_sources")[0]["sync_status"] = "ready"
            return {"itemsProcessed": 1, "message": "Chunks queued"}

        fake_supabase.functions.handlers["sync-api-integration"] = handler
        result = service.trigger_manual_sync(source["id"])

        assert result.message == "Chunks queued"
        assert fake_supabase.rows("data_sources")[0]["sync_status"] == "ready"

    def test_running_sync_conflicts(self, service, fake_supabase):
        source = seed_source(fake_supabase, sync_status="running", last_sync_at=(NOW - timedelta(seconds=30)).isoformat())
        with pytest.raises(HTTPException) as exc:
            service.trigger_manual_sync(source["id"])
        assert exc.value.status_code == 409
        assert fake_supabase.functions.calls == []

    def test_force_overrides_running(self, service, fake_supabase):
        source = seed_source(fake_supabase, sync_status="running", last_sync_at=(NOW - timedelta(seconds=30)).isoformat())
        service.trigger_manual_sync(source["id"], force=True)
        assert fake_supabase.functions.calls[0][1]["force"] is True

    def test_stuck_sync_can_be_retriggered(self, service, fake_supabase):
        source = seed_source(fake_supabase, sync_status="running", last_sync_at=(NOW - timedelta(hours=1)).isoformat())
        assert service.trigger_manual_sync(source["id"]).success

    def test_failure_is_persisted(self, service, fake_supabase):
        source = seed_source(fake_supabase)
        fake_supabase.functions.handlers["sync-api-integration"] = Exception("connection refused")

        with pytest.raises(HTTPException) as exc:
            service.trigger_manual_sync(source["id"])

        assert exc.value.status_code == 502
        row = fake_supabase.rows("data_sources")[0]
        assert row["sync_status"] == "error"
        assert row["last_sync_error"] == "connection refused"

    def test_error_reply_is_a_failure(self, service, fake_supabase):
        source = seed_source(fake_supabase)
        fake_supabase.functions.handlers["sync-api-integration"] = {"error": {"message": "bad credentials"}}
        with pytest.raises(HTTPException) as exc:
            service.trigger_manual_sync(source["id"])
        assert "bad credentials" in exc.value.detail

    def test_malformed_reply_is_recorded_as_error(self, service, fake_supabase):
        source = seed_source(fake_supabase)
        fake_supabase.functions.handlers["sync-api-integration"] = {"itemsProcessed": "n/a"}

        with pytest.raises(HTTPException) as exc:
            service.trigger_manual_sync(source["id"])

        assert exc.value.status_code == 500
        row = fake_supabase.rows("data_sources")[0]
        assert row["sync_status"] == "error"
        assert "n/a" in row["last_sync_error"]

    def test_invalid_stored_schedule_is_recorded_as_error(self, service, fake_supabase):
        source = seed_source(fake_supabase, sync_config={"enabled": True, "interval": 0})
        fake_supabase.functions.handlers["sync-api-integration"] = {"itemsProcessed": 2}

        with pytest.raises(HTTPException):
            service.trigger_manual_sync(source["id"])

        row = fake_supabase.rows("data_sources")[0]
        assert row["sync_status"] == "error"
        assert row["last_sync_error"]

    def test_unknown_source(self, service):
        with pytest.raises(HTTPException) as exc:
            service.trigger_manual_sync("missing")
        assert exc.value.status_code == 404


class TestResetAndStatus:
    def test_reset_stuck_sync(self, service, fake_supabase):
        source = seed_source(fake_supabase, sync_status="running", last_sync_at=(NOW - timedelta(hours=1)).isoformat())
        reset = service.reset_stuck_sync(source["id"])
        assert reset.sync_status == "idle"
        assert reset.last_sync_error == RESET_MESSAGE

    def test_status_reports_stuck(self, service, fake_supabase):
        source = seed_source(fake_supabase, sync_status="running", last_sync_at=(NOW - timedelta(hours=1)).isoformat())
        status = service.get_sync_status(source["id"])
        assert status.status == "running"
        assert status.is_stuck is True


class TestConfigurationTests:
    def test_database_parent_child(self, service, fake_supabase):
        service.test_sync_configuration({
            "type": "database",
            "database_config": {"queries": {"q1": {"mode": "parent-child"}}},
        })
        assert fake_supabase.functions.calls[0][0] == "test-database-parent-child"

    def test_database_simple(self, service, fake_supabase):
        service.test_sync_configuration({
            "type": "database",
            "database_config": {"queries": {"q1": {"mode": "simple", "sql": "SELECT 1"}}},
        })
        assert fake_supabase.functions.calls[0][0] == "test-database-simple"

    def test_database_query_mode_is_validated(self, service, fake_supabase):
        with pytest.raises(HTTPException) as exc:
            service.test_sync_configuration({
                "type": "database",
                "database_config": {"queries": {"q1": {"mode": "nested", "sql": "SELECT 1"}}},
            })
        assert exc.value.status_code == 400
        assert fake_supabase.functions.calls == []

    def test_other_types(self, service, fake_supabase):
        config = {"type": "api", "api_config": {"url": "https://example.com"}}
        service.test_sync_configuration(config)
        assert fake_supabase.functions.calls == [("test-sync-configuration", {"config": config})]

    def test_query_needs_sql(self, service):
        with pytest.raises(HTTPException) as exc:
            service.test_database_query(DatabaseConnection(host="db"), "   ")
        assert exc.value.status_code == 400

    def test_connection_test_body(self, service, fake_supabase):
        connection = DatabaseConnection(host="db", port=3306, database="stats", username="reader", password="pw")
        service.test_database_connection(connection)
        name, body = fake_supabase.functions.calls[0]
        assert name == "test-database-connection"
        assert body["user"] == "reader"
        assert body["type"] == "mysql"

    def test_function_failure_is_502(self, service, fake_supabase):
        fake_supabase.functions.handlers["test-sync-configuration"] = Exception("timeout")
        with pytest.raises(HTTPException) as exc:
            service.test_sync_configuration({"type": "rss"})
        assert exc.value.status_code == 502


class TestFindDueSources:
    def test_selection(self):
        due = make_source(id="due", next_sync_at=NOW - timedelta(seconds=1))
        never_synced = make_source(id="never")
        later = make_source(id="later", next_sync_at=NOW + timedelta(minutes=1))
        inactive = make_source(id="inactive", active=False)
        disabled = make_source(id="disabled", sync_config={"enabled": False})
        running = make_source(id="running", sync_status="running")

        result = find_due_sources([due, never_synced, later, inactive, disabled, running], NOW)

        assert [s.id for s in result] == ["due", "never"]


class TestRunDueSyncs:
    @pytest.mark.asyncio
    async def test_triggers_due_sources_once(self, fake_supabase):
        due = seed_source(fake_supabase, next_sync_at=(NOW - timedelta(minutes=1)).isoformat())
        seed_source(fake_supabase, name="Later", next_sync_at=(NOW + timedelta(hours=1)).isoformat())

        await run_due_syncs(now=NOW, supabase=fake_supabase)

        assert fake_supabase.functions.calls == [
            ("sync-api-integration", {"dataSourceId": due["id"], "force": False})
        ]

    @pytest.mark.asyncio
    async def test_stuck_sources_are_left_alone(self, fake_supabase):
        seed_source(fake_supabase, sync_status="running", last_sync_at=(NOW - timedelta(hours=2)).isoformat())

        await run_due_syncs(now=NOW, supabase=fake_supabase)

        assert fake_supabase.functions.calls == []
        assert fake_supabase.rows("data_sources")[0]["sync_status"] == "running"

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_rest(self, fake_supabase):
        seed_source(fake_supabase, name="Broken", type="rss")
        seed_source(fake_supabase, name="Healthy")
        fake_supabase.functions.handlers["sync-rss-integration"] = Exception("feed down")

        await run_due_syncs(now=NOW, supabase=fake_supabase)

        names = [call[0] for call in fake_supabase.functions.calls]
        assert names == ["sync-rss-integration", "sync-api-integration"]
        statuses = {row["name"]: row["sync_status"] for row in fake_supabase.rows("data_sources")}
        assert statuses == {"Broken": "error", "Healthy": "success"}
