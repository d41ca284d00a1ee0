"""
Portfolio analytics - read-only aggregation over sites, logs and reports.

Simple, deterministic aggregation with no predictions.
"""
from typing import Dict, List

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from buildstream.models.enums import HazardLevel, LogStatus
from buildstream.models.records import SafetyReportRecord, SiteLogRecord, SiteRecord


class _Summary(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class SiteSummary(_Summary):
    site_id: str
    name: str
    location: str
    progress: int
    budget: float
    spent: float
    budget_utilization: float
    log_count: int
    workers_reported: int
    over_budget_pace: bool


class PortfolioSummary(_Summary):
    total_workers: int
    log_counts: Dict[str, int]
    pending_reviews: int
    incident_count: int
    escalated_hazards: int
    sites: List[SiteSummary]


class ExecutiveSummary(_Summary):
    site_count: int
    total_budget: float
    total_spent: float
    budget_utilization: float
    average_progress: float
    sites_over_budget_pace: List[str]


def _utilization(spent: float, budget: float) -> float:
    if not budget:
        return 0.0
    return round(spent / budget * 100, 1)


def _over_pace(site: SiteRecord) -> bool:
    """Spending has run ahead of physical progress."""
    return _utilization(site.spent, site.budget) > site.progress


def portfolio_summary(
    sites: List[SiteRecord],
    logs: List[SiteLogRecord],
    reports: List[SafetyReportRecord],
) -> PortfolioSummary:
    counts = {status.value: 0 for status in LogStatus}
    for log in logs:
        counts[log.status.value] += 1

    site_summaries = []
    for site in sites:
        site_logs = [log for log in logs if log.site_id == site.id]
        site_summaries.append(SiteSummary(
            site_id=site.id,
            name=site.name,
            location=site.location,
            progress=site.progress,
            budget=site.budget,
            spent=site.spent,
            budget_utilization=_utilization(site.spent, site.budget),
            log_count=len(site_logs),
            workers_reported=sum(log.workers_count for log in site_logs),
            over_budget_pace=_over_pace(site),
        ))

    return PortfolioSummary(
        total_workers=sum(log.workers_count for log in logs),
        log_counts=counts,
        pending_reviews=counts[LogStatus.SUBMITTED.value],
        incident_count=sum(1 for log in logs if log.incidents.strip()),
        escalated_hazards=sum(
            1 for report in reports if report.hazard_level.rank >= HazardLevel.HIGH.rank
        ),
        sites=site_summaries,
    )


def executive_summary(sites: List[SiteRecord]) -> ExecutiveSummary:
    total_budget = sum(site.budget for site in sites)
    total_spent = sum(site.spent for site in sites)
    average_progress = round(sum(site.progress for site in sites) / len(sites), 1) if sites else 0.0
    return ExecutiveSummary(
        site_count=len(sites),
        total_budget=total_budget,
        total_spent=total_spent,
        budget_utilization=_utilization(total_spent, total_budget),
        average_progress=average_progress,
        sites_over_budget_pace=[site.name for site in sites if _over_pace(site)],
    )
