from assistant_bot.delivery.models import ConnectionReport, HealthIssue, HealthReport
from assistant_bot.routers.ai_router import format_connection, format_health


def test_health_text_lists_issues_and_performance():
    report = HealthReport(
        status="warning",
        checked_at=0.0,
        issues=[HealthIssue(type="error_rate", message="High failure rate: 50%")],
        performance={"failure_rate": 0.5, "throughput": 2},
    )
    text = format_health(report)

    assert text.splitlines()[0] == "🟡 Status: warning"
    assert "• error_rate: High failure rate: 50%" in text
    assert "• failure_rate: 0.5" in text


def test_connection_text_marks_failed_diagnostics():
    report = ConnectionReport(
        success=False,
        stage="diagnostics",
        elapsed_ms=120,
        diagnostics={"text_splitting": True, "markdown_formatting": False},
        success_rate=0.5,
    )
    text = format_connection(report)

    assert text.startswith("❌ Stage: diagnostics, 120ms")
    assert "• markdown_formatting: failed" in text
    assert "• text_splitting: ok" in text
