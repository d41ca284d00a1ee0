"""Tests for portfolio analytics and the narrative insight client."""
import json

import httpx

from buildstream.models.enums import HazardLevel, LogStatus
from buildstream.services.analytics import executive_summary, portfolio_summary
from buildstream.services.insights import (
    MISSING_KEY_MESSAGE,
    NO_LOGS_MESSAGE,
    SYSTEM_INSTRUCTION,
    UNAVAILABLE_MESSAGE,
    InsightClient,
    build_prompt,
)
from buildstream.services.safety_intake import SafetyIntake
from buildstream.services.site_log_workflow import SiteLogWorkflow
from buildstream.services.store import RecordStore


def _logs(db_session, foreman, site):
    workflow = SiteLogWorkflow(db_session)
    workflow.create(foreman, site_id=site.id, workers_count=45, work_completed="Slab pour", log_date="2024-05-01")
    workflow.create(
        foreman,
        site_id=site.id,
        workers_count=30,
        work_completed="Rebar tying",
        incidents="Minor cut, first aid given",
        status=LogStatus.SUBMITTED,
        log_date="2024-05-02",
    )
    return RecordStore(db_session).get_site_logs()


class TestPortfolioAnalytics:

    def test_portfolio_kpis(self, db_session, foreman, safety_officer, site):
        logs = _logs(db_session, foreman, site)
        intake = SafetyIntake(db_session)
        intake.create(safety_officer, site_id=site.id, hazard_level=HazardLevel.CRITICAL, ppe_compliance=False)
        intake.create(safety_officer, site_id=site.id, hazard_level=HazardLevel.LOW, ppe_compliance=True)

        summary = portfolio_summary(RecordStore(db_session).get_sites(), logs, intake.list_reports())
        assert summary.total_workers == 75
        assert summary.pending_reviews == 1
        assert summary.log_counts["DRAFT"] == 1
        assert summary.incident_count == 1
        assert summary.escalated_hazards == 1

        skyline = summary.sites[0]
        assert skyline.name == "Skyline Towers"
        assert skyline.log_count == 2
        assert skyline.budget_utilization == 65.6
        assert skyline.over_budget_pace is True

    def test_serializes_camel_case(self, db_session, site):
        payload = portfolio_summary(RecordStore(db_session).get_sites(), [], []).model_dump(by_alias=True)
        assert payload["totalWorkers"] == 0
        assert payload["sites"][0]["budgetUtilization"] == 65.6

    def test_executive_summary(self, db_session, site):
        store = RecordStore(db_session)
        store.create_site("Harbor Bridge", budget=1_000_000, spent=100_000, progress=40)
        summary = executive_summary(store.get_sites())
        assert summary.site_count == 2
        assert summary.total_budget == 13_500_000
        assert summary.average_progress == 52.5
        assert summary.sites_over_budget_pace == ["Skyline Towers"]

    def test_empty_portfolio(self):
        summary = executive_summary([])
        assert summary.site_count == 0
        assert summary.budget_utilization == 0.0


class TestInsightClient:

    def test_no_logs(self):
        assert InsightClient(api_key="k").summarize([]) == NO_LOGS_MESSAGE

    def test_missing_api_key(self, db_session, foreman, site):
        assert InsightClient(api_key="").summarize(_logs(db_session, foreman, site)) == MISSING_KEY_MESSAGE

    def test_prompt_lists_each_log(self, db_session, foreman, site):
        prompt = build_prompt(_logs(db_session, foreman, site))
        assert "- 2024-05-02: Rebar tying (Status: SUBMITTED)" in prompt
        assert "- 2024-05-01: Slab pour (Status: DRAFT)" in prompt

    def test_summary_from_model(self, db_session, foreman, site):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "candidates": [{"content": {"parts": [{"text": "Productivity is steady. Watch rebar safety."}]}}]
            })

        client = InsightClient(
            api_key="secret",
            model="gemini-test",
            base_url="https://gemini.invalid/v1beta",
            transport=httpx.MockTransport(handler),
        )
        text = client.summarize(_logs(db_session, foreman, site))

        assert text == "Productivity is steady. Watch rebar safety."
        assert seen["url"].startswith("https://gemini.invalid/v1beta/models/gemini-test:generateContent")
        assert "key=secret" in seen["url"]
        assert seen["body"]["systemInstruction"]["parts"][0]["text"] == SYSTEM_INSTRUCTION

    def test_http_error_falls_back(self, db_session, foreman, site):
        client = InsightClient(
            api_key="secret",
            transport=httpx.MockTransport(lambda request: httpx.Response(500, json={"error": "boom"})),
        )
        assert client.summarize(_logs(db_session, foreman, site)) == UNAVAILABLE_MESSAGE

    def test_transport_failure_falls_back(self, db_session, foreman, site):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        client = InsightClient(api_key="secret", transport=httpx.MockTransport(handler))
        assert client.summarize(_logs(db_session, foreman, site)) == UNAVAILABLE_MESSAGE

    def test_malformed_response_falls_back(self, db_session, foreman, site):
        client = InsightClient(
            api_key="secret",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"candidates": []})),
        )
        assert client.summarize(_logs(db_session, foreman, site)) == UNAVAILABLE_MESSAGE
