"""
Analytics tests: run classification, the populate-analytics job, daily
summary endpoints, integration mirrors and the view refresh job.
"""

from datetime import date, datetime, timedelta

import pytest

from qahub.core.exceptions import ValidationError
from qahub.models import db
from qahub.models.analytics import BugAnalyticsDaily, GitlabMrLeadTime, TestExecutionSummary
from qahub.models.base import utcnow
from qahub.models.bug_budget import BugBudget
from qahub.models.project import Project
from qahub.services.analytics_service import bug_analytics, classify_run, populate_analytics, resolve_days

JOB = "/api/v1/jobs/populate-analytics"


@pytest.mark.parametrize("statuses,expected", [
    (["passed", "failed", "blocked"], "failed"),
    (["passed", "blocked"], "blocked"),
    (["skipped", "skipped"], "skipped"),
    ([], "skipped"),
    (["passed", "skipped"], "passed"),
    (["retest"], "passed"),
])
def test_classify_run(statuses, expected):
    assert classify_run(statuses) == expected


class TestResolveDays:
    def test_default_is_today(self):
        assert resolve_days() == [utcnow().date()]

    def test_yesterday(self):
        assert resolve_days(days=5, yesterday=True) == [utcnow().date() - timedelta(days=1)]

    def test_last_n_days_oldest_first(self):
        today = utcnow().date()
        assert resolve_days(days=3) == [today - timedelta(days=2), today - timedelta(days=1), today]

    def test_explicit_range(self):
        assert resolve_days(start_date="2024-02-28", end_date="2024-03-01") == [
            date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1),
        ]

    @pytest.mark.parametrize("start,end", [
        ("2024-03-02", "2024-03-01"),
        ("not-a-date", "2024-03-01"),
        ("2020-01-01", "2024-01-01"),
    ])
    def test_invalid_range(self, start, end):
        with pytest.raises(ValidationError):
            resolve_days(start_date=start, end_date=end)


# ═══════════════════════════════════════════════════════════════
# Daily summaries
# ═══════════════════════════════════════════════════════════════

class TestTestExecutionSummary:
    @pytest.fixture()
    def dated_run(self, client, auth_headers, project, test_plan, test_case):
        res = client.post(f"/api/v1/projects/{project['id']}/test-runs",
                          json={"title": "May 1st", "test_plan_id": test_plan["id"], "execution_date": "2024-05-01"},
                          headers=auth_headers)
        run = res.get_json()["data"]
        res = client.post(f"/api/v1/test-runs/{run['id']}/results",
                          json={"test_case_id": test_case["id"], "status": "passed", "execution_time": 4},
                          headers=auth_headers)
        assert res.status_code == 201, res.get_json()
        return run

    def test_populate_and_read(self, client, auth_headers, project, repository, dated_run):
        res = client.post(JOB, json={"start_date": "2024-05-01", "end_date": "2024-05-01"}, headers=auth_headers)
        assert res.status_code == 200
        assert res.get_json()["data"] == {
            "days": 1, "test_execution": 1, "bugs": 1, "test_cases": 1,
            "start_date": "2024-05-01", "end_date": "2024-05-01",
        }

        res = client.get(f"/api/v1/projects/{project['id']}/analytics/test-execution",
                         query_string={"start_date": "2024-05-01", "end_date": "2024-05-01"}, headers=auth_headers)
        body = res.get_json()
        assert len(body["data"]) == 1
        row = body["data"][0]
        assert row["date"] == "2024-05-01"
        assert (row["total_runs"], row["passed_runs"], row["failed_runs"]) == (1, 1, 0)
        assert (row["automated_count"], row["manual_count"]) == (0, 1)
        assert row["avg_execution_time"] == 4.0
        assert row["total_test_cases"] == 1
        assert body["totals"]["total_runs"] == 1

    def test_repopulate_upserts(self, client, auth_headers, project, dated_run):
        for _ in range(2):
            client.post(JOB, json={"start_date": "2024-05-01", "end_date": "2024-05-01"}, headers=auth_headers)
        assert TestExecutionSummary.query.filter_by(project_id=project["id"]).count() == 1

    def test_job_validation(self, client, auth_headers):
        assert client.post(JOB, json={"days": 0}, headers=auth_headers).status_code == 400
        res = client.post(JOB, json={"start_date": "2024-05-02", "end_date": "2024-05-01"}, headers=auth_headers)
        assert res.status_code == 400

    def test_unknown_project(self, client, auth_headers):
        res = client.get("/api/v1/projects/999/analytics/test-execution", headers=auth_headers)
        assert res.status_code == 404


class TestBugAnalytics:
    def test_daily_bug_counts(self, client, auth_headers, project):
        bugs = "/api/v1/bug-budget"
        client.post(bugs, json={
            "jira_key": "PAY-1", "summary": "Refund stuck", "status": "Done", "is_open": False,
            "priority": "High", "project_id": project["id"],
            "created_date": "2024-03-02T08:00:00Z", "resolved_date": "2024-03-02T20:00:00Z",
        }, headers=auth_headers)
        client.post(bugs, json={
            "jira_key": "PAY-2", "summary": "Card declined", "status": "Open", "priority": "Critical",
            "project_id": project["id"], "created_date": "2024-03-01T10:00:00Z",
        }, headers=auth_headers)

        client.post(JOB, json={"start_date": "2024-03-02", "end_date": "2024-03-02"}, headers=auth_headers)
        res = client.get(f"/api/v1/projects/{project['id']}/analytics/bugs",
                         query_string={"start_date": "2024-03-01", "end_date": "2024-03-31"}, headers=auth_headers)
        body = res.get_json()
        row = body["data"][0]
        assert row["project"] == "Checkout"
        assert (row["bugs_created"], row["bugs_resolved"], row["bugs_closed"]) == (1, 1, 1)
        assert row["open_bugs"] == 1
        assert row["critical_bugs"] == 1
        assert row["high_bugs"] == 0
        assert row["avg_resolution_hours"] == 12.0
        assert body["totals"] == {"bugs_created": 1, "bugs_resolved": 1, "bugs_closed": 1, "bugs_reopened": 0}

    def test_same_title_in_two_tenants_keeps_both_rows(self, default_tenant, other_tenant):
        mine = Project(tenant_id=default_tenant.id, title="Checkout")
        theirs = Project(tenant_id=other_tenant.id, title="Checkout")
        db.session.add_all([mine, theirs])
        db.session.flush()
        for key, proj in (("PAY-1", mine), ("SHOP-1", theirs)):
            db.session.add(BugBudget(
                tenant_id=proj.tenant_id, jira_key=key, summary="Totals off", status="Open",
                priority="High", project="Checkout", project_id=proj.id,
                created_date=datetime(2024, 3, 1, 9, 0),
            ))
        db.session.commit()

        day = date(2024, 3, 2)
        populate_analytics([day], tenant_id=default_tenant.id)
        populate_analytics([day], tenant_id=other_tenant.id)

        window = {"start_date": "2024-03-01", "end_date": "2024-03-31"}
        for proj in (mine, theirs):
            rows = bug_analytics(proj.id, window)
            assert [(r.project_id, r.open_bugs, r.high_bugs) for r in rows] == [(proj.id, 1, 1)]

    def test_unlinked_jira_project_is_summarized(self, default_tenant, project):
        db.session.add(BugBudget(
            tenant_id=default_tenant.id, jira_key="LEG-7", summary="Old checkout", status="Open",
            priority="Critical", project="Legacy", created_date=datetime(2024, 3, 2, 11, 0),
        ))
        db.session.commit()

        counts = populate_analytics([date(2024, 3, 2)], tenant_id=default_tenant.id)
        assert counts["bugs"] == 2
        row = BugAnalyticsDaily.query.filter_by(project="Legacy").one()
        assert row.project_id is None
        assert row.tenant_id == default_tenant.id
        assert (row.bugs_created, row.open_bugs, row.critical_bugs) == (1, 1, 1)

        populate_analytics([date(2024, 3, 2)], tenant_id=default_tenant.id)
        assert BugAnalyticsDaily.query.filter_by(project="Legacy").count() == 1


class TestTestCaseAnalytics:
    def test_priority_buckets(self, client, auth_headers, repo_url, suite, test_case):
        client.post(f"{repo_url}/suites/{suite['id']}/test-cases",
                    json={"title": "Refund", "priority": 4, "automated": True, "regression": False},
                    headers=auth_headers)
        client.post(JOB, json={}, headers=auth_headers)

        rows = client.get(f"{repo_url}/analytics/test-cases", headers=auth_headers).get_json()["data"]
        assert len(rows) == 1
        row = rows[0]
        assert row["date"] == utcnow().date().isoformat()
        assert (row["total_cases"], row["automated_cases"], row["manual_cases"]) == (2, 1, 1)
        assert row["regression_cases"] == 1
        assert (row["high_priority_cases"], row["medium_priority_cases"], row["low_priority_cases"]) == (1, 0, 1)


# ═══════════════════════════════════════════════════════════════
# Integration mirrors
# ═══════════════════════════════════════════════════════════════

class TestMirrors:
    def test_allure_reports(self, client, auth_headers, user):
        url = "/api/v1/analytics-integrations/allure-reports"
        res = client.post(url, json={"name": "nightly-e2e", "summary": {"passed": 40, "failed": 2},
                                     "status": "completed"}, headers=auth_headers)
        assert res.status_code == 201
        report = res.get_json()["data"]
        assert report["summary"] == {"passed": 40, "failed": 2}
        assert report["created_by"]["id"] == user["id"]

        client.post(url, json={"name": "smoke"}, headers=auth_headers)
        res = client.get(url, query_string={"status": "completed"}, headers=auth_headers).get_json()
        assert [r["name"] for r in res["data"]] == ["nightly-e2e"]

    def test_allure_invalid_status(self, client, auth_headers):
        res = client.post("/api/v1/analytics-integrations/allure-reports",
                          json={"name": "x", "status": "exploded"}, headers=auth_headers)
        assert res.status_code == 400

    def test_mr_lead_times_filter(self, client, auth_headers):
        for author in ("ana", "bo"):
            db.session.add(GitlabMrLeadTime(
                project_name="payments", mr_id=f"!{author}", title="MR", author=author,
                mr_created_at=datetime(2024, 1, 1), merged_at=datetime(2024, 1, 2), lead_time_hours=24,
            ))
        db.session.commit()
        res = client.get("/api/v1/analytics-integrations/gitlab/mr-lead-times",
                         query_string={"author": "bo"}, headers=auth_headers).get_json()
        assert [r["mr_id"] for r in res["data"]] == ["!bo"]
        assert res["pagination"]["total"] == 1


# ═══════════════════════════════════════════════════════════════
# View refresh job
# ═══════════════════════════════════════════════════════════════

class TestUpdateTestRunsViewJob:
    def test_single_run(self, client, auth_headers, test_run):
        res = client.post("/api/v1/jobs/update-test-runs-view", json={"test_run_id": test_run["id"]},
                          headers=auth_headers)
        assert res.get_json()["data"] == {"updated": 1}

    def test_all_runs(self, client, auth_headers, test_run):
        res = client.post("/api/v1/jobs/update-test-runs-view", json={}, headers=auth_headers)
        assert res.get_json()["data"] == {"updated": 1}

    def test_unknown_run(self, client, auth_headers):
        res = client.post("/api/v1/jobs/update-test-runs-view", json={"test_run_id": 999}, headers=auth_headers)
        assert res.status_code == 404

    def test_other_tenant_rebuild_skips_foreign_runs(self, client, test_run, other_tenant_headers):
        url = "/api/v1/jobs/update-test-runs-view"
        assert client.post(url, json={}, headers=other_tenant_headers).get_json()["data"] == {"updated": 0}
        res = client.post(url, json={"days": 7}, headers=other_tenant_headers)
        assert res.get_json()["data"] == {"updated": 0}

    def test_recent_runs(self, client, auth_headers, test_run):
        res = client.post("/api/v1/jobs/update-test-runs-view", json={"days": 7}, headers=auth_headers)
        assert res.get_json()["data"] == {"updated": 1}
