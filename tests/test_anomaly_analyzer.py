# tests/test_anomaly_analyzer.py
from models import IssueCategory, IssueSource, Severity
from processing.anomaly_analyzer import StatisticalAnomalyAnalyzer


def test_spotlight_concentrated_in_few_chapters_is_medium():
    crowded = " ".join(["서연이 웃었다."] * 11)
    chapters = [(1, crowded), (2, "민준이 걸었다.")]
    issues = StatisticalAnomalyAnalyzer().analyze(
        chapters, [("char-seoyeon", "서연"), ("char-minjun", "민준")]
    )
    spotlight = [i for i in issues if i.entity_id == "char-seoyeon"]
    assert len(spotlight) == 1
    assert spotlight[0].severity == Severity.MEDIUM
    assert spotlight[0].source == IssueSource.STATISTICAL
    assert "11 behaviour mentions" in spotlight[0].description


def test_even_spotlight_is_not_flagged():
    chapters = [(i, "서연이 웃었다.") for i in range(1, 6)]
    analyzer = StatisticalAnomalyAnalyzer()
    stats = analyzer.character_statistics(chapters, [("char-seoyeon", "서연")])
    assert stats["char-seoyeon"].distinct_chapters == 5
    assert analyzer.spotlight_anomalies(stats) == []


def test_dialogue_length_outliers_are_low():
    short_lines = " ".join(f"\"{'가' * 10}\"" for _ in range(5))
    long_line = f"\"{'나' * 200}\""
    issues = StatisticalAnomalyAnalyzer().dialogue_length_anomalies(
        [(1, short_lines), (2, long_line)]
    )
    assert len(issues) == 2
    assert all(i.severity == Severity.LOW for i in issues)
    assert all(i.category == IssueCategory.CHARACTER for i in issues)
    assert "run over" in issues[0].description


def test_no_dialogue_no_length_issues():
    assert StatisticalAnomalyAnalyzer().dialogue_length_anomalies([(1, "서연이 걸었다.")]) == []


def test_unreadable_chapter_is_skipped():
    analyzer = StatisticalAnomalyAnalyzer()
    stats = analyzer.character_statistics(
        [(1, ""), (2, "서연이 웃었다.")], [("char-seoyeon", "서연")]
    )
    assert stats["char-seoyeon"].chapters == {2}
