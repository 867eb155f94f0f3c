import csv
import io
from collections import Counter, defaultdict
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from neurobridge.schemas import CandidateReport, ChartSeriesOut, ReportSummaryOut

CSV_HEADERS = ["Name", "Email", "Phone", "Position", "Experience", "Skills", "Rating", "Status", "Remarks"]
EXPERIENCE_BUCKETS = ["0-2 years", "3-5 years", "6-10 years", "10+ years"]


def capitalize_first(text: str) -> str:
    return text[:1].upper() + text[1:]


def build_candidate_report(profile, details=None, remark=None, skills: Optional[List[str]] = None) -> CandidateReport:
    return CandidateReport(
        id=profile.user_id,
        first_name=profile.first_name or "",
        last_name=profile.last_name or "",
        email=profile.email or "",
        phone=(details.phone if details else "") or "",
        skills=skills or [],
        experience_years=(details.experience_years if details else 0) or 0,
        current_position=(details.current_position if details else "") or "",
        bio=(details.bio if details else "") or "",
        rating=remark.rating if remark else 0,
        remarks=remark.remarks if remark else "No remarks yet",
        recommendation_status=remark.recommendation_status if remark else "pending",
    )


def matches_search(term: str, *, first_name: str, last_name: str, email: str, skills: Iterable[str]) -> bool:
    term = term.strip().lower()
    if not term:
        return True
    return (
        term in (first_name or "").lower()
        or term in (last_name or "").lower()
        or term in (email or "").lower()
        or any(term in skill.lower() for skill in skills)
    )


def filter_reports(reports: List[CandidateReport], status: str = "all", search: str = "") -> List[CandidateReport]:
    filtered = reports
    if status and status != "all":
        filtered = [r for r in filtered if r.recommendation_status == status]
    if search:
        filtered = [
            r
            for r in filtered
            if matches_search(search, first_name=r.first_name, last_name=r.last_name, email=r.email, skills=r.skills)
        ]
    return filtered


def summarize_reports(reports: List[CandidateReport]) -> ReportSummaryOut:
    total = len(reports)
    return ReportSummaryOut(
        total=total,
        recommended=sum(1 for r in reports if r.recommendation_status == "recommended"),
        pending=sum(1 for r in reports if r.recommendation_status == "pending"),
        avg_rating=round(sum(r.rating for r in reports) / total, 2) if total else 0.0,
    )


def export_reports_csv(reports: List[CandidateReport]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for report in reports:
        writer.writerow(
            [
                f"{report.first_name} {report.last_name}",
                report.email,
                report.phone,
                report.current_position,
                f"{report.experience_years} years",
                "; ".join(report.skills),
                report.rating,
                report.recommendation_status,
                report.remarks,
            ]
        )
    return buffer.getvalue()


def report_filename(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"candidate-reports-{today.isoformat()}.csv"


def experience_distribution(experience_years: Iterable[Optional[int]]) -> ChartSeriesOut:
    counts = dict.fromkeys(EXPERIENCE_BUCKETS, 0)
    for years in experience_years:
        years = years or 0
        if years <= 2:
            counts["0-2 years"] += 1
        elif years <= 5:
            counts["3-5 years"] += 1
        elif years <= 10:
            counts["6-10 years"] += 1
        else:
            counts["10+ years"] += 1
    return ChartSeriesOut(label="Number of Candidates", labels=list(counts), values=list(counts.values()))


def skill_distribution(skill_lists: Iterable[List[str]], limit: int = 10) -> ChartSeriesOut:
    counts: Counter = Counter()
    for skills in skill_lists:
        for skill in skills:
            normalized = skill.strip()
            if normalized:
                counts[normalized] += 1
    top = sorted(counts.items(), key=lambda item: item[1], reverse=True)[:limit]
    return ChartSeriesOut(
        label="Number of Candidates",
        labels=[skill for skill, _ in top],
        values=[count for _, count in top],
    )


def candidate_growth(created: Iterable[Optional[datetime]], months: int = 6) -> ChartSeriesOut:
    month_counts: Dict[str, int] = defaultdict(int)
    for created_at in created:
        if created_at:
            month_counts[created_at.strftime("%Y-%m")] += 1

    sorted_months = sorted(month_counts)
    cumulative = []
    running = 0
    for month in sorted_months:
        running += month_counts[month]
        cumulative.append(running)

    labels = [datetime.strptime(month, "%Y-%m").strftime("%b %Y") for month in sorted_months[-months:]]
    values = cumulative[-months:]
    if not labels:
        labels, values = ["No Data"], [0]
    return ChartSeriesOut(label="Total Candidates", labels=labels, values=values)


def quiz_type_distribution(results) -> ChartSeriesOut:
    counts: Dict[str, int] = {}
    for result in results:
        counts[result.quiz_type] = counts.get(result.quiz_type, 0) + 1
    return ChartSeriesOut(
        label="Number of Quizzes",
        labels=[capitalize_first(quiz_type) for quiz_type in counts],
        values=list(counts.values()),
    )


def domain_performance(results) -> ChartSeriesOut:
    totals: Dict[str, List[int]] = {}
    for result in results:
        bucket = totals.setdefault(result.domain_id, [0, 0])
        bucket[0] += result.score
        bucket[1] += 1
    return ChartSeriesOut(
        label="Average Score",
        labels=[capitalize_first(domain) for domain in totals],
        values=[round(total / count, 2) for total, count in totals.values()],
    )
