import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from services.crisis_data.conflict_scoring import (
    default_assessment,
    event_goldstein_and_tone,
    hotspot_intensity,
    identify_hotspots,
    score_articles,
    score_events,
)


def test_five_killing_reports_score_critical(killing_articles):
    result = score_articles(killing_articles, "Sudan")

    assert result["intensityScore"] == 85
    assert result["conflictLevel"] == "CRITICAL"
    assert result["confidence"] == 0.9
    assert result["indicators"]["killingReports"] == 5
    assert result["trends"]["increasing"] is True
    assert len(result["recentEvents"]) == 5
    assert result["available"] is True


def test_article_bands_and_confidences():
    violence = [{"title": "Bomb attack near market"}]  # violence 1 + count 1 -> 12
    displacement = [{"title": f"Families flee fighting {i}"} for i in range(2)]  # 16 + 4 -> 20

    low = score_articles(violence, "Haiti")
    medium = score_articles(displacement, "Haiti")

    assert (low["intensityScore"], low["conflictLevel"], low["confidence"]) == (12, "LOW", 0.6)
    assert (medium["intensityScore"], medium["conflictLevel"], medium["confidence"]) == (20, "MEDIUM", 0.7)


def test_article_score_is_clamped_to_100():
    articles = [{"title": "Dozens killed in bomb attack as refugees flee"} for _ in range(10)]
    assert score_articles(articles, "Syria")["intensityScore"] == 100


def test_unrelated_titles_never_raise_the_score():
    articles = [{"title": f"Election results announced in region {i}"} for i in range(40)]

    result = score_articles(articles, "Kenya")

    assert result["intensityScore"] == 0
    assert result["conflictLevel"] == "LOW"
    assert result["totalArticles"] == 40
    assert result["matchedArticles"] == 0


def test_empty_article_list_returns_default_assessment():
    result = score_articles([], "Chad")
    assert result["intensityScore"] == 0
    assert result["conflictLevel"] == "LOW"
    assert result["recentEvents"] == []


def test_high_volume_flags_threat_indicators():
    articles = [{"title": f"Attack and bombing, many dead {i}"} for i in range(51)]
    indicators = score_articles(articles, "Yemen")["threatIndicators"]

    assert "High casualty reports" in indicators
    assert "Escalating violence" in indicators
    assert "High media attention" in indicators


def test_violent_goldstein_events_score_critical():
    events = [[f"a{i}", "b", "190", -6, 3, -4.0] for i in range(10)]
    events += [[f"c{i}", "d", "190", -6, 1, -2.0] for i in range(10)]

    result = score_events(events, "Sudan")

    assert result["intensityScore"] == 100
    assert result["conflictLevel"] == "CRITICAL"
    assert result["confidence"] == 0.95
    assert result["metrics"]["violentEvents"] == 20
    assert result["metrics"]["avgGoldsteinScale"] == -6


def test_event_bands():
    events = [{"goldsteinscale": -2, "avgtone": -1}]  # 20 + 0 + 2 -> 22
    result = score_events(events, "Mali")
    assert result["intensityScore"] == 22
    assert result["conflictLevel"] == "MEDIUM"
    assert result["confidence"] == 0.75

    assert score_events([], "Mali")["conflictLevel"] == "LOW"


def test_event_row_shapes_and_missing_values():
    assert event_goldstein_and_tone({"GoldsteinScale": "-7.5", "AvgTone": "-3"}) == (-7.5, -3.0)
    assert event_goldstein_and_tone(["a", "b", "190"]) == (0.0, 0.0)
    assert event_goldstein_and_tone({"goldsteinscale": float("nan")}) == (0.0, 0.0)
    assert event_goldstein_and_tone("garbage") == (0.0, 0.0)


def test_hotspots_attribute_each_assessment_to_its_country():
    busy = {**default_assessment("Sudan", available=True), "matchedArticles": 25, "conflictLevel": "CRITICAL"}
    moderate = {**default_assessment("Haiti", available=True), "matchedArticles": 6}
    quiet = {**default_assessment("Kenya", available=True), "matchedArticles": 2}
    down = {**default_assessment("Yemen"), "matchedArticles": 50}

    hotspots = identify_hotspots({"Haiti": moderate, "Sudan": busy, "Kenya": quiet, "Yemen": down})

    assert [h["country"] for h in hotspots] == ["Sudan", "Haiti"]
    assert hotspots[0]["intensity"] == 100
    assert hotspots[0]["riskLevel"] == "CRITICAL"
    assert hotspots[1]["intensity"] == 60
    assert hotspots[1]["riskLevel"] == "HIGH"


def test_hotspot_intensity_bonus_above_twenty_events():
    assert hotspot_intensity(5) == 50
    assert hotspot_intensity(20) == 100
    assert hotspot_intensity(3) == 30


def test_hotspots_are_capped_at_ten():
    assessments = {
        f"Country{i}": {**default_assessment(f"Country{i}", available=True), "matchedArticles": 5 + i}
        for i in range(15)
    }
    assert len(identify_hotspots(assessments)) == 10


def test_general_conflict_wording_alone_scores_zero():
    articles = [{"title": f"War of words over budget {i}"} for i in range(15)]

    result = score_articles(articles, "Kenya")

    assert result["intensityScore"] == 0
    assert result["conflictLevel"] == "LOW"
    assert result["indicators"] == {"killingReports": 0, "violenceKeywords": 0, "displacementMentions": 0}
    # still counted as matches for hotspot extraction
    assert result["matchedArticles"] == 15


def test_event_band_uses_unrounded_score():
    result = score_events([{"goldsteinscale": 5.7996, "avgtone": 0}], "Mali")  # 57.996 + 2

    assert result["conflictLevel"] == "HIGH"
    assert result["confidence"] == 0.85
    assert result["intensityScore"] == 60.0
