"""Conflict heuristics over GDELT articles and events.

Both scorers produce the same assessment shape (camelCase keys, as sent
to the dashboard):

    {country, conflictLevel, confidence, intensityScore, totalArticles,
     recentEvents, trends, keyThemes, threatIndicators, lastUpdate,
     dataSource, available}

Scores are clamped to 0-100. Levels come from fixed bands; there is no
statistical model behind them.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from models.crisis import RiskLevel
from utils.utcnow import utc_iso
from .gdelt_client import CONFLICT_THEMES

# Title keyword groups
KILLING_TERMS = ("kill", "death", "dead")
VIOLENCE_TERMS = ("attack", "bomb", "shoot")
DISPLACEMENT_TERMS = ("flee", "refugee", "displace")
CONFLICT_TERMS = ("fight", "war", "conflict")

# (min score, level, confidence), checked top-down
ARTICLE_BANDS = (
    (70, RiskLevel.CRITICAL.value, 0.9),
    (40, RiskLevel.HIGH.value, 0.8),
    (20, RiskLevel.MEDIUM.value, 0.7),
)
ARTICLE_BASE = (RiskLevel.LOW.value, 0.6)

EVENT_BANDS = (
    (60, RiskLevel.CRITICAL.value, 0.95),
    (35, RiskLevel.HIGH.value, 0.85),
    (15, RiskLevel.MEDIUM.value, 0.75),
)
EVENT_BASE = (RiskLevel.LOW.value, 0.5)

VIOLENT_GOLDSTEIN = -5.0

HOTSPOT_MIN_EVENTS = 5
HOTSPOT_MIN_INTENSITY = 30
HOTSPOT_LIMIT = 10


def default_assessment(country: str, *, available: bool = False) -> dict[str, Any]:
    return {
        "country": country,
        "conflictLevel": RiskLevel.LOW.value,
        "confidence": 0.5,
        "totalArticles": 0,
        "matchedArticles": 0,
        "recentEvents": [],
        "intensityScore": 0,
        "trends": {"increasing": False, "stable": True, "decreasing": False},
        "keyThemes": [],
        "threatIndicators": [],
        "lastUpdate": utc_iso(),
        "dataSource": "GDELT",
        "available": available,
    }


def _band(score: float, bands, base) -> tuple[str, float]:
    for threshold, level, confidence in bands:
        if score >= threshold:
            return level, confidence
    return base


def _contains_any(text: str, terms: Iterable[str]) -> bool:
    return any(term in text for term in terms)


def score_articles(articles: Optional[list[dict[str, Any]]], country: str) -> dict[str, Any]:
    """Keyword-weighted intensity from article titles."""
    analysis = default_assessment(country, available=True)
    if not articles:
        return analysis

    killing = violence = displacement = matched = 0
    themes: dict[str, int] = {}
    recent: list[dict[str, Any]] = []

    for article in articles:
        title = str(article.get("title") or "").lower()
        hit_killing = _contains_any(title, KILLING_TERMS)
        hit_violence = _contains_any(title, VIOLENCE_TERMS)
        hit_displacement = _contains_any(title, DISPLACEMENT_TERMS)
        hit_conflict = _contains_any(title, CONFLICT_TERMS)

        killing += hit_killing
        violence += hit_violence
        displacement += hit_displacement
        if hit_killing or hit_violence or hit_displacement or hit_conflict:
            matched += 1

        for theme in CONFLICT_THEMES:
            if theme.lower() in title:
                themes[theme] = themes.get(theme, 0) + 1

        if hit_killing or hit_violence:
            recent.append(
                {
                    "title": article.get("title"),
                    "date": article.get("seendate"),
                    "url": article.get("url"),
                    "domain": article.get("domain"),
                }
            )

    count = len(articles)
    # Without a killing, violence or displacement hit, volume alone never
    # raises the score. General conflict wording only counts toward matches.
    if killing or violence or displacement:
        score = min(100, killing * 15 + violence * 10 + displacement * 8 + count * 2)
    else:
        score = 0
    level, confidence = _band(score, ARTICLE_BANDS, ARTICLE_BASE)

    analysis.update(
        conflictLevel=level,
        confidence=confidence,
        intensityScore=score,
        totalArticles=count,
        matchedArticles=matched,
        recentEvents=recent[:10],
        keyThemes=[
            {"theme": theme, "count": n}
            for theme, n in sorted(themes.items(), key=lambda item: item[1], reverse=True)[:5]
        ],
        indicators={
            "killingReports": killing,
            "violenceKeywords": violence,
            "displacementMentions": displacement,
        },
    )
    if score > 50:
        analysis["trends"] = {"increasing": True, "stable": False, "decreasing": False}

    indicators = []
    if killing > 5:
        indicators.append("High casualty reports")
    if displacement > 3:
        indicators.append("Population displacement")
    if violence > 10:
        indicators.append("Escalating violence")
    if count > 50:
        indicators.append("High media attention")
    analysis["threatIndicators"] = indicators
    return analysis


def _to_float(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    # NaN never compares, treat as missing
    return number if number == number else 0.0


def event_goldstein_and_tone(event: Any) -> tuple[float, float]:
    """Goldstein scale and average tone of one event row (list or dict)."""
    if isinstance(event, dict):
        return (
            _to_float(event.get("goldsteinscale", event.get("GoldsteinScale"))),
            _to_float(event.get("avgtone", event.get("AvgTone"))),
        )
    if isinstance(event, (list, tuple)):
        goldstein = event[3] if len(event) > 3 else None
        tone = event[5] if len(event) > 5 else None
        return _to_float(goldstein), _to_float(tone)
    return 0.0, 0.0


def score_events(events: Optional[list[Any]], country: str) -> dict[str, Any]:
    """Goldstein-weighted intensity from GDELT event rows."""
    analysis = default_assessment(country, available=True)
    if not events:
        return analysis

    total_goldstein = 0.0
    total_tone = 0.0
    violent = 0
    for event in events:
        goldstein, tone = event_goldstein_and_tone(event)
        total_goldstein += goldstein
        total_tone += tone
        if goldstein < VIOLENT_GOLDSTEIN:
            violent += 1

    count = len(events)
    avg_goldstein = total_goldstein / count
    avg_tone = total_tone / count
    score = min(100.0, abs(avg_goldstein) * 10 + violent * 5 + count * 2)
    level, confidence = _band(score, EVENT_BANDS, EVENT_BASE)

    analysis.update(
        conflictLevel=level,
        confidence=confidence,
        intensityScore=round(score, 2),
        totalArticles=count,
        matchedArticles=violent,
        metrics={
            "avgGoldsteinScale": avg_goldstein,
            "avgTone": avg_tone,
            "violentEvents": violent,
            "eventDensity": count,
        },
    )
    return analysis


def hotspot_intensity(event_count: int) -> int:
    return min(100, event_count * 10 + (30 if event_count > 20 else 0))


def hotspot_level(intensity: float) -> str:
    if intensity >= 70:
        return RiskLevel.CRITICAL.value
    if intensity >= 50:
        return RiskLevel.HIGH.value
    return RiskLevel.MEDIUM.value


def identify_hotspots(assessments: dict[str, dict[str, Any]]) -> list[dict[str, Any]]:
    """Rank queried countries by the number of conflict-matching reports.

    Each assessment is attributed to the country it was fetched for; a
    country without usable data never becomes a hotspot.
    """
    hotspots = []
    for country, assessment in assessments.items():
        if not assessment or not assessment.get("available", True):
            continue
        event_count = int(assessment.get("matchedArticles") or 0)
        if event_count < HOTSPOT_MIN_EVENTS:
            continue
        intensity = hotspot_intensity(event_count)
        if intensity < HOTSPOT_MIN_INTENSITY:
            continue
        hotspots.append(
            {
                "country": country,
                "intensity": intensity,
                "eventCount": event_count,
                "riskLevel": hotspot_level(intensity),
                "conflictLevel": assessment.get("conflictLevel"),
                "lastUpdate": utc_iso(),
            }
        )
    hotspots.sort(key=lambda item: item["intensity"], reverse=True)
    return hotspots[:HOTSPOT_LIMIT]
