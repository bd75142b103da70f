from linguaspark.services.quality_metrics import QualityMetricsTracker


def test_empty_report():
    report = QualityMetricsTracker().report()
    assert report.overall_score == 0
    assert report.sections == []
    assert report.total_regenerations == 0


def test_aggregates_sections():
    tracker = QualityMetricsTracker()
    tracker.record("warmup", 100, 1, 120)
    tracker.record("grammar", 55, 2, 900, issues=1, regenerated=True, accepted=False)
    tracker.record("title", 70, 1, 5, warnings=1)
    tracker.add_warning("grammar: shipped after 2 attempts")

    report = tracker.report()

    assert report.overall_score == 75
    assert report.total_regenerations == 1
    assert report.regenerated_sections == 1
    assert [s.section for s in report.sections] == ["warmup", "grammar", "title"]
    assert report.sections[1].issue_count == 1
    assert not report.sections[1].accepted
    assert report.warnings == ["grammar: shipped after 2 attempts"]


def test_regenerated_defaults_to_attempt_count():
    tracker = QualityMetricsTracker()
    assert tracker.record("reading", 90, 2, 10).regenerated
    assert not tracker.record("reading", 90, 1, 10).regenerated


def test_reset_starts_a_new_lesson():
    tracker = QualityMetricsTracker()
    tracker.record("warmup", 100, 1, 10)
    tracker.add_warning("x")

    tracker.reset()

    assert tracker.records == []
    assert tracker.report().warnings == []


def test_records_returns_a_copy():
    tracker = QualityMetricsTracker()
    tracker.record("warmup", 100, 1, 10)
    tracker.records.clear()
    assert len(tracker.records) == 1


def test_separate_trackers_do_not_share_state():
    a, b = QualityMetricsTracker(), QualityMetricsTracker()
    a.record("warmup", 100, 1, 10)
    assert b.records == []
