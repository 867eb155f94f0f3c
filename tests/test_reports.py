import csv
import io
from datetime import date, datetime
from types import SimpleNamespace

from neurobridge.reports import (
    CSV_HEADERS,
    build_candidate_report,
    candidate_growth,
    domain_performance,
    experience_distribution,
    export_reports_csv,
    filter_reports,
    quiz_type_distribution,
    report_filename,
    skill_distribution,
    summarize_reports,
)


def _profile(user_id, first, last, email):
    return SimpleNamespace(user_id=user_id, first_name=first, last_name=last, email=email)


def _reports():
    ada = build_candidate_report(
        _profile("u1", "Ada", "Lovelace", "ada@example.com"),
        SimpleNamespace(phone="555-0101", experience_years=4, current_position="Engineer", bio="Analytical"),
        SimpleNamespace(rating=5, remarks='Said "brilliant", twice', recommendation_status="recommended"),
        skills=["Python", "Math"],
    )
    alan = build_candidate_report(_profile("u2", "Alan", "Turing", "alan@example.com"), skills=["Cryptography"])
    return [ada, alan]


def test_candidate_without_details_or_remarks_gets_defaults():
    alan = _reports()[1]

    assert alan.rating == 0
    assert alan.remarks == "No remarks yet"
    assert alan.recommendation_status == "pending"
    assert alan.experience_years == 0


def test_filter_by_status_and_search():
    reports = _reports()

    assert [r.id for r in filter_reports(reports, "recommended")] == ["u1"]
    assert [r.id for r in filter_reports(reports, "all", "crypto")] == ["u2"]
    assert [r.id for r in filter_reports(reports, "all", "LOVELACE")] == ["u1"]
    assert filter_reports(reports, "pending", "ada") == []


def test_summary_counts_and_average():
    summary = summarize_reports(_reports())

    assert summary.total == 2
    assert summary.recommended == 1
    assert summary.pending == 1
    assert summary.avg_rating == 2.5
    assert summarize_reports([]).avg_rating == 0.0


def test_csv_export_quotes_every_field_and_escapes_quotes():
    text = export_reports_csv(_reports())

    assert text.splitlines()[0] == ",".join(f'"{h}"' for h in CSV_HEADERS)
    assert '"Said ""brilliant"", twice"' in text
    rows = list(csv.reader(io.StringIO(text)))
    assert rows[1] == [
        "Ada Lovelace",
        "ada@example.com",
        "555-0101",
        "Engineer",
        "4 years",
        "Python; Math",
        "5",
        "recommended",
        'Said "brilliant", twice',
    ]
    assert rows[2][8] == "No remarks yet"


def test_report_filename_uses_date():
    assert report_filename(date(2024, 3, 9)) == "candidate-reports-2024-03-09.csv"


def test_experience_buckets():
    series = experience_distribution([0, 2, 3, 5, 6, 10, 11, None])

    assert series.labels == ["0-2 years", "3-5 years", "6-10 years", "10+ years"]
    assert series.values == [3, 2, 2, 1]


def test_skill_distribution_orders_by_count():
    series = skill_distribution([["Python", "SQL"], ["python", "SQL"], ["SQL", " Go "]], limit=2)

    assert series.labels == ["SQL", "Python"]
    assert series.values == [3, 1]


def test_candidate_growth_is_cumulative_by_month():
    series = candidate_growth(
        [datetime(2024, 1, 5), datetime(2024, 1, 20), datetime(2024, 3, 2), None],
        months=6,
    )

    assert series.labels == ["Jan 2024", "Mar 2024"]
    assert series.values == [2, 3]
    assert candidate_growth([]).labels == ["No Data"]


def test_quiz_analytics_group_by_type_and_domain():
    results = [
        SimpleNamespace(quiz_type="cognitive", domain_id="python", score=8),
        SimpleNamespace(quiz_type="cognitive", domain_id="python", score=5),
        SimpleNamespace(quiz_type="motor", domain_id="networking", score=6),
    ]

    types = quiz_type_distribution(results)
    domains = domain_performance(results)

    assert types.labels == ["Cognitive", "Motor"]
    assert types.values == [2, 1]
    assert domains.labels == ["Python", "Networking"]
    assert domains.values == [6.5, 6]
