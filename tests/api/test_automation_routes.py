"""Tests for the scheduled trigger and manual automation endpoints."""

from datetime import UTC, datetime, timedelta

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from stratagen.db.models import AutomationExecution, AutomationRule, to_iso
from stratagen.services.generation_pipeline import AUTOMATION_TOOL
from tests.helpers.api_client import AUTH_HEADERS, CRON_SECRET
from tests.helpers.fake_upstream import tool_path

CRON_URL = "/api/v1/cron/daily-intelligence"
CRON_HEADERS = {"Authorization": f"Bearer {CRON_SECRET}"}
AUTOMATION_RESULT = {"success": True, "cardsCreated": 3, "tokensUsed": 1200, "cost": 0.036}


def _rule(db: Session, due: bool = True, **overrides) -> AutomationRule:
    offset = timedelta(minutes=-5) if due else timedelta(days=1)
    values = dict(
        user_id="user-1",
        name="Morning scan",
        automation_enabled=True,
        schedule_frequency="daily",
        next_run_at=to_iso(datetime.now(UTC) + offset),
    )
    values.update(overrides)
    rule = AutomationRule(**values)
    db.add(rule)
    db.commit()
    db.refresh(rule)
    return rule


class TestScheduledSweep:
    def test_rejects_missing_secret(self, client: TestClient, test_db: Session, fake_upstream):
        _rule(test_db)

        response = client.post(CRON_URL)

        assert response.status_code == 401
        assert fake_upstream.calls == []
        assert test_db.query(AutomationExecution).count() == 0

    def test_rejects_wrong_secret(self, client: TestClient):
        response = client.get(CRON_URL, headers={"Authorization": "Bearer wrong"})

        assert response.status_code == 401

    def test_rejects_non_bearer_scheme(self, client: TestClient):
        response = client.get(CRON_URL, headers={"Authorization": CRON_SECRET})

        assert response.status_code == 401

    def test_runs_due_rules(self, client: TestClient, test_db: Session, fake_upstream):
        due = _rule(test_db)
        _rule(test_db, due=False, name="Later")
        _rule(test_db, automation_enabled=False, name="Off")
        previous_next_run = due.next_run_at
        fake_upstream.route(tool_path(AUTOMATION_TOOL), (200, AUTOMATION_RESULT))

        response = client.post(CRON_URL, headers=CRON_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Daily intelligence automation completed"
        assert body["processedAutomationRules"] == 1
        assert body["successfulRules"] == 1
        assert body["timestamp"]

        test_db.refresh(due)
        assert due.next_run_at > previous_next_run
        execution = test_db.query(AutomationExecution).one()
        assert execution.status == "completed"
        assert execution.trigger_type == "scheduled"
        assert execution.cards_created == 3

    def test_get_is_accepted(self, client: TestClient):
        response = client.get(CRON_URL, headers=CRON_HEADERS)

        assert response.status_code == 200
        assert response.json()["processedAutomationRules"] == 0

    def test_failed_rule_counts_as_processed(
        self, client: TestClient, test_db: Session, fake_upstream
    ):
        _rule(test_db)
        fake_upstream.route(tool_path(AUTOMATION_TOOL), (500, "boom"))

        body = client.post(CRON_URL, headers=CRON_HEADERS).json()

        assert body["processedAutomationRules"] == 1
        assert body["successfulRules"] == 0
        execution = test_db.query(AutomationExecution).one()
        assert execution.status == "failed"
        assert "boom" in execution.error_message


class TestManualRun:
    def test_runs_rule_without_moving_schedule(
        self, client: TestClient, test_db: Session, fake_upstream
    ):
        rule = _rule(test_db, due=False)
        next_run = rule.next_run_at
        fake_upstream.route(tool_path(AUTOMATION_TOOL), (200, AUTOMATION_RESULT))

        response = client.post(
            f"/api/v1/automation/rules/{rule.id}/run", headers=AUTH_HEADERS
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["trigger_type"] == "manual"
        assert body["cards_created"] == 3
        assert body["tokens_used"] == 1200
        test_db.refresh(rule)
        assert rule.next_run_at == next_run

        sent = fake_upstream.calls_to(tool_path(AUTOMATION_TOOL))[0].body
        assert sent["ruleId"] == rule.id
        assert sent["triggerType"] == "manual"

    def test_failure_is_recorded(self, client: TestClient, test_db: Session, fake_upstream):
        rule = _rule(test_db)
        fake_upstream.route(
            tool_path(AUTOMATION_TOOL), (200, {"success": False, "error": "No sources"})
        )

        body = client.post(
            f"/api/v1/automation/rules/{rule.id}/run", headers=AUTH_HEADERS
        ).json()

        assert body["status"] == "failed"
        assert body["error_message"] == "No sources"
        assert body["error_details"]["code"] == "E-3004"

    def test_other_owner_is_404(self, client: TestClient, test_db: Session, fake_upstream):
        rule = _rule(test_db, user_id="user-2")

        response = client.post(
            f"/api/v1/automation/rules/{rule.id}/run", headers=AUTH_HEADERS
        )

        assert response.status_code == 404
        assert fake_upstream.calls == []

    def test_requires_caller_identity(self, client: TestClient, test_db: Session):
        rule = _rule(test_db)

        response = client.post(f"/api/v1/automation/rules/{rule.id}/run")

        assert response.status_code == 401


class TestListExecutions:
    def test_lists_own_executions(self, client: TestClient, test_db: Session, fake_upstream):
        mine = _rule(test_db)
        other = _rule(test_db, user_id="user-2")
        fake_upstream.route(tool_path(AUTOMATION_TOOL), (200, AUTOMATION_RESULT))
        client.post(f"/api/v1/automation/rules/{mine.id}/run", headers=AUTH_HEADERS)
        client.post(
            f"/api/v1/automation/rules/{other.id}/run", headers={"X-User-Id": "user-2"}
        )

        body = client.get("/api/v1/automation/executions", headers=AUTH_HEADERS).json()

        assert body["total"] == 1
        assert body["executions"][0]["rule_id"] == mine.id

    def test_filters_by_rule(self, client: TestClient, test_db: Session, fake_upstream):
        first = _rule(test_db)
        second = _rule(test_db, name="Second")
        fake_upstream.route(tool_path(AUTOMATION_TOOL), (200, AUTOMATION_RESULT))
        for rule in (first, second):
            client.post(f"/api/v1/automation/rules/{rule.id}/run", headers=AUTH_HEADERS)

        body = client.get(
            "/api/v1/automation/executions",
            params={"rule_id": second.id},
            headers=AUTH_HEADERS,
        ).json()

        assert [e["rule_id"] for e in body["executions"]] == [second.id]

    def test_limit_out_of_range(self, client: TestClient):
        response = client.get(
            "/api/v1/automation/executions", params={"limit": 500}, headers=AUTH_HEADERS
        )

        assert response.status_code == 400
