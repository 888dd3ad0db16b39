"""
AI Crisis Analyzer.

Sends a crisis assessment (see ``services.aggregator``) to the chat model
and asks for a structured humanitarian analysis:
1. Risk level and confidence with reasoning
2. Displacement prediction (likelihood, timeframe, destinations)
3. Early warning signals and recommendations

The model reply is validated; replies that are not usable JSON are reduced
to a basic analysis, and a failed call yields a rule-based fallback so the
dashboard always gets the same shape.
"""

from __future__ import annotations

import json
import re
import time
from collections import deque
from typing import Any, Optional

from utils.cache import TTLCache
from utils.logger import ai_logger as logger
from utils.utcnow import utc_iso
from services.ai.llm_provider import (
    HuggingFaceRouterProvider,
    LLMMessage,
    json_list,
    json_section,
    parse_json_content,
)


ANALYSIS_VERSION = "1.0"
VALID_RISKS = ("CRITICAL", "HIGH", "MEDIUM", "LOW")
REQUIRED_FIELDS = ("aiRiskAssessment", "confidence", "reasoning", "displacementPrediction")
_HISTORY_LIMIT = 500

_RISK_RANK = {"CRITICAL": 4, "HIGH": 3, "MEDIUM": 2, "LOW": 1}
_PRIORITY_RISK = {"CRITICAL": 40, "HIGH": 30, "MEDIUM": 20, "LOW": 10}
_PRIORITY_URGENCY = {"immediate": 25, "high": 20, "medium": 10, "low": 5}
_PRIORITY_LIKELIHOOD = {"VERY_HIGH": 20, "HIGH": 15, "MEDIUM": 10, "LOW": 5}
_REVIEW_TIME = {"immediate": "6 hours", "high": "24 hours", "medium": "3 days"}
_OBJECT_SECTIONS = ("earlyWarning", "recommendations", "dataQualityAssessment")
_LIST_SECTIONS = ("keyFindings", "criticalFactors")

# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

CRISIS_ANALYSIS_SYSTEM_PROMPT = """\
You are RefugeeWatch AI, an expert humanitarian crisis analyst specializing \
in predicting and analyzing refugee displacement patterns. You receive \
near-real-time data from conflict monitoring (GDELT news and event streams) \
and displacement statistics (UNHCR).

Your role:
- Analyze complex crisis situations using careful reasoning
- Predict displacement patterns and population movements
- Assess risk levels and state how confident you are
- Provide actionable humanitarian insights

Key principles:
- Prioritize human life and dignity in all assessments
- Use evidence-based analysis over speculation
- Consider both immediate and long-term factors
- Provide clear, actionable recommendations

Output format: Respond with valid JSON containing your analysis and reasoning.\
"""

ANALYSIS_SCHEMA_EXAMPLE = """\
{
  "aiRiskAssessment": "CRITICAL|HIGH|MEDIUM|LOW",
  "confidence": 0.0-1.0,
  "reasoning": "Detailed explanation of your analysis and logic",
  "keyFindings": ["finding 1", "finding 2", "finding 3"],
  "displacementPrediction": {
    "likelihood": "VERY_HIGH|HIGH|MEDIUM|LOW",
    "timeframe": "1-2 weeks|2-8 weeks|2-6 months|6+ months",
    "estimatedPopulation": 0,
    "primaryTriggers": ["trigger1", "trigger2"],
    "likelyDestinations": ["country1", "country2"],
    "displacementType": "emergency_flight|planned_migration|gradual_exodus|internal_displacement"
  },
  "criticalFactors": [
    {"factor": "name", "severity": "CRITICAL|HIGH|MEDIUM", "trend": "escalating|stable|improving", "impact": "description"}
  ],
  "earlyWarning": {
    "immediateThreats": ["threat1"],
    "emergingConcerns": ["concern1"],
    "timeToAction": "hours|days|weeks|months",
    "urgency": "immediate|high|medium|low"
  },
  "recommendations": {
    "immediate": ["action1", "action2"],
    "shortTerm": ["action1", "action2"],
    "longTerm": ["action1", "action2"]
  },
  "dataQualityAssessment": {
    "reliability": "high|medium|low",
    "completeness": "excellent|good|fair|poor",
    "freshness": "current|recent|outdated",
    "gaps": ["gap1"]
  }
}\
"""


def _pct(value: Any) -> int:
    try:
        return round(float(value) * 100)
    except (TypeError, ValueError):
        return 0


def _source_block(title: str, source: dict[str, Any]) -> str:
    if not source.get("available"):
        return f"### {title}\n- No data available"
    lines = [
        f"### {title}",
        f"- Risk Level: {source.get('riskLevel')}",
        f"- Confidence: {_pct(source.get('confidence'))}%",
        f"- Score: {source.get('score')}",
        f"- Key Indicators: {json.dumps(source.get('indicators') or [])}",
    ]
    if "recentEvents" in source:
        lines.append(f"- Recent Events: {len(source.get('recentEvents') or [])} events tracked")
    if "totalDisplaced" in source:
        lines.append(f"- Total Displaced: {source['totalDisplaced']:,}")
    return "\n".join(lines)


def build_analysis_prompt(assessment: dict[str, Any]) -> str:
    sources = assessment.get("sources") or {}
    risk_factors = [
        f"- {f['factor'] if isinstance(f, dict) else f}" for f in assessment.get("riskFactors") or []
    ]
    protective = [f"- {f}" for f in assessment.get("protectiveFactors") or []]
    displacement = assessment.get("displacementRisk") or {}
    return f"""\
Analyze this crisis situation for {assessment.get('country')}:

## CURRENT SITUATION OVERVIEW
- Overall Risk Level: {assessment.get('overallRisk')}
- System Confidence: {_pct(assessment.get('confidence'))}%
- Data Quality: {assessment.get('dataQuality')}
- Assessment Time: {assessment.get('timestamp')}

## DATA SOURCE ANALYSIS

{_source_block("CONFLICT INDICATORS (GDELT news coverage)", sources.get("conflict") or {})}

{_source_block("CONFLICT EVENTS (GDELT event stream)", sources.get("events") or {})}

{_source_block("DISPLACEMENT (UNHCR population statistics)", sources.get("displacement") or {})}

## CURRENT RISK FACTORS
{chr(10).join(risk_factors) or "- None identified"}

## PROTECTIVE FACTORS
{chr(10).join(protective) or "- None identified"}

## DISPLACEMENT PREDICTION (Current System)
- Risk Level: {displacement.get('level')}
- Timeline: {displacement.get('timeline')}
- Estimated Numbers: {displacement.get('estimatedNumbers')}
- Primary Causes: {json.dumps(displacement.get('primaryCauses') or [])}
- Likely Destinations: {json.dumps(displacement.get('likelyDestinations') or [])}

## ANALYSIS REQUEST
Considering all of the data above, respond with a JSON object in this format:

{ANALYSIS_SCHEMA_EXAMPLE}

Consider:
1. Multi-source data correlation and consistency
2. Historical patterns and current trends
3. Population vulnerability and coping mechanisms
4. Regional stability and cross-border dynamics
5. Humanitarian access and response capacity"""


# ---------------------------------------------------------------------------
# Parsing and enrichment
# ---------------------------------------------------------------------------


def validate_analysis(parsed: dict[str, Any]) -> dict[str, Any]:
    """Raise ``ValueError`` unless the reply carries a usable analysis."""
    for field in REQUIRED_FIELDS:
        if not parsed.get(field) and parsed.get(field) != 0:
            raise ValueError(f"Missing required field: {field}")
    risk = str(parsed["aiRiskAssessment"]).upper()
    if risk not in VALID_RISKS:
        raise ValueError(f"Invalid risk assessment: {parsed['aiRiskAssessment']}")
    try:
        confidence = float(parsed["confidence"])
    except (TypeError, ValueError):
        raise ValueError(f"Invalid confidence value: {parsed['confidence']}") from None
    if not 0 <= confidence <= 1:
        raise ValueError(f"Invalid confidence value: {confidence}")
    if not isinstance(parsed["displacementPrediction"], dict):
        raise ValueError("displacementPrediction must be an object")
    for section in _OBJECT_SECTIONS:
        if section in parsed:
            parsed[section] = json_section(parsed, section)
    for section in _LIST_SECTIONS:
        if section in parsed:
            parsed[section] = json_list(parsed, section)
    parsed["aiRiskAssessment"] = risk
    parsed["confidence"] = confidence
    return parsed


def extract_basic_analysis(text: str) -> dict[str, Any]:
    """Minimal analysis from a reply that is not valid JSON."""
    match = re.search(r"\b(CRITICAL|HIGH|MEDIUM|LOW)\b", text or "", flags=re.IGNORECASE)
    return {
        "aiRiskAssessment": match.group(1).upper() if match else "MEDIUM",
        "confidence": 0.6,
        "reasoning": (text or "")[:500] + "...",
        "keyFindings": ["AI analysis completed with limited parsing"],
        "displacementPrediction": {
            "likelihood": "MEDIUM",
            "timeframe": "2-6 months",
            "estimatedPopulation": 0,
            "primaryTriggers": ["Multiple factors"],
            "likelyDestinations": ["Regional destinations"],
            "displacementType": "gradual_exodus",
        },
        "earlyWarning": {
            "immediateThreats": [],
            "emergingConcerns": ["Data parsing issues"],
            "timeToAction": "days",
            "urgency": "medium",
        },
        "dataQualityAssessment": {
            "reliability": "medium",
            "completeness": "fair",
            "freshness": "current",
            "gaps": ["AI response parsing"],
        },
    }


def parse_analysis(text: str) -> dict[str, Any]:
    try:
        return validate_analysis(parse_json_content(text))
    except ValueError as e:
        logger.warning("Failed to parse AI analysis", error=str(e))
        return extract_basic_analysis(text)


def calculate_agreement(system_risk: Optional[str], ai_risk: Optional[str]) -> str:
    if system_risk == ai_risk:
        return "PERFECT"
    diff = abs(_RISK_RANK.get(system_risk or "", 2) - _RISK_RANK.get(ai_risk or "", 2))
    if diff <= 1:
        return "HIGH"
    if diff <= 2:
        return "MODERATE"
    return "LOW"


def assess_risk_escalation(assessment: dict[str, Any], analysis: dict[str, Any]) -> dict[str, Any]:
    factors: list[str] = []
    risk = "LOW"
    if analysis.get("aiRiskAssessment") == "CRITICAL":
        factors.append("AI assessment indicates critical situation")
        risk = "HIGH"
    if json_section(analysis, "earlyWarning").get("urgency") == "immediate":
        factors.append("Immediate action required")
        risk = "HIGH"
    if (assessment.get("trends") or {}).get("overall") == "deteriorating":
        factors.append("Deteriorating trend across multiple indicators")
        if risk != "HIGH":
            risk = "MEDIUM"
    return {
        "risk": risk,
        "factors": factors,
        "timeframe": json_section(analysis, "displacementPrediction").get("timeframe") or "unknown",
    }


def calculate_priority_score(analysis: dict[str, Any]) -> int:
    urgency = json_section(analysis, "earlyWarning").get("urgency")
    likelihood = json_section(analysis, "displacementPrediction").get("likelihood")
    score = (
        _PRIORITY_RISK.get(analysis.get("aiRiskAssessment"), 20)
        + _PRIORITY_URGENCY.get(urgency, 10)
        + _PRIORITY_LIKELIHOOD.get(likelihood, 10)
        + round(float(analysis.get("confidence") or 0) * 15)
    )
    return min(100, score)


def extract_actionable_items(analysis: dict[str, Any]) -> list[dict[str, str]]:
    recommendations = json_section(analysis, "recommendations")
    items = [
        {"action": item, "priority": "IMMEDIATE", "timeframe": "24-48 hours"}
        for item in json_list(recommendations, "immediate")
    ]
    items += [
        {"action": item, "priority": "HIGH", "timeframe": "1-2 weeks"}
        for item in json_list(recommendations, "shortTerm")
    ]
    return items[:5]


def review_time(analysis: dict[str, Any]) -> str:
    return _REVIEW_TIME.get(json_section(analysis, "earlyWarning").get("urgency"), "1 week")


def _source_count(assessment: dict[str, Any]) -> int:
    return sum(1 for available in (assessment.get("dataAvailability") or {}).values() if available)


def fallback_analysis(assessment: dict[str, Any]) -> dict[str, Any]:
    """Rule-based analysis used when the model cannot be reached."""
    displacement = assessment.get("displacementRisk") or {}
    system_risk = assessment.get("overallRisk") or "MEDIUM"
    system_confidence = assessment.get("confidence")
    return {
        "aiRiskAssessment": system_risk,
        "confidence": max(0.3, (system_confidence or 0.5) - 0.2),
        "reasoning": "Analysis completed using fallback logic due to AI service limitations",
        "keyFindings": [
            "System assessment completed without AI enhancement",
            "Risk level based on multi-source data aggregation",
            "Recommend manual review of crisis situation",
        ],
        "displacementPrediction": {
            "likelihood": displacement.get("level") or "MEDIUM",
            "timeframe": displacement.get("timeline") or "2-6 months",
            "estimatedPopulation": displacement.get("estimatedNumbers") or 0,
            "primaryTriggers": displacement.get("primaryCauses") or [],
            "likelyDestinations": displacement.get("likelyDestinations") or [],
            "displacementType": "gradual_exodus",
        },
        "earlyWarning": {
            "immediateThreats": assessment.get("immediateThreats") or [],
            "emergingConcerns": assessment.get("emergingConcerns") or [],
            "timeToAction": "days",
            "urgency": "medium",
        },
        "recommendations": {
            "immediate": ["Monitor situation closely", "Verify data sources"],
            "shortTerm": ["Enhance data collection", "Prepare contingency plans"],
            "longTerm": ["Strengthen early warning systems"],
        },
        "dataQualityAssessment": {
            "reliability": "medium",
            "completeness": str(assessment.get("dataQuality") or "fair").lower(),
            "freshness": "current",
            "gaps": ["AI analysis unavailable"],
        },
        "metadata": {
            "analysisTimestamp": utc_iso(),
            "modelUsed": "Fallback Logic",
            "country": assessment.get("country"),
            "originalRiskLevel": system_risk,
            "dataSourceCount": _source_count(assessment),
            "analysisVersion": f"{ANALYSIS_VERSION}-fallback",
        },
        "comparison": {
            "systemRisk": system_risk,
            "aiRisk": system_risk,
            "agreement": "PERFECT",
            "systemConfidence": system_confidence,
            "aiConfidence": system_confidence,
            "confidenceDelta": 0,
        },
        "insights": {
            "riskEscalation": {"risk": "MEDIUM", "factors": [], "timeframe": "unknown"},
            "priorityScore": 50,
            "actionableItems": [],
            "timeToReview": "1 week",
        },
    }


class CrisisAnalyzer:
    def __init__(
        self,
        provider: HuggingFaceRouterProvider,
        cache: TTLCache,
        model_name: Optional[str] = None,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.model_name = model_name or provider.primary_model
        self._history: deque[dict[str, Any]] = deque(maxlen=_HISTORY_LIMIT)

    def enhance(self, analysis: dict[str, Any], assessment: dict[str, Any], model: str) -> dict[str, Any]:
        system_risk = assessment.get("overallRisk")
        system_confidence = float(assessment.get("confidence") or 0)
        return {
            **analysis,
            "metadata": {
                "analysisTimestamp": utc_iso(),
                "modelUsed": model,
                "country": assessment.get("country"),
                "originalRiskLevel": system_risk,
                "dataSourceCount": _source_count(assessment),
                "analysisVersion": ANALYSIS_VERSION,
            },
            "comparison": {
                "systemRisk": system_risk,
                "aiRisk": analysis.get("aiRiskAssessment"),
                "agreement": calculate_agreement(system_risk, analysis.get("aiRiskAssessment")),
                "systemConfidence": system_confidence,
                "aiConfidence": analysis.get("confidence"),
                "confidenceDelta": round(abs(system_confidence - float(analysis.get("confidence") or 0)), 3),
            },
            "insights": {
                "riskEscalation": assess_risk_escalation(assessment, analysis),
                "priorityScore": calculate_priority_score(analysis),
                "actionableItems": extract_actionable_items(analysis),
                "timeToReview": review_time(analysis),
            },
        }

    async def analyze(self, assessment: dict[str, Any], *, use_cache: bool = True) -> dict[str, Any]:
        """AI analysis of one assessment. Never raises for model failures."""
        country = assessment.get("country") or "Unknown"
        cache_key = f"analysis_{country.lower()}"
        if use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        started = time.monotonic()
        result = await self.provider.chat(
            [
                LLMMessage(role="system", content=CRISIS_ANALYSIS_SYSTEM_PROMPT),
                LLMMessage(role="user", content=build_analysis_prompt(assessment)),
            ],
            model=self.model_name,
            temperature=0.3,
            max_tokens=2048,
            top_p=0.9,
        )
        if not result.ok:
            logger.error("Crisis analysis failed", country=country, error=result.message)
            return fallback_analysis(assessment)

        try:
            analysis = self.enhance(parse_analysis(result.value.content), assessment, result.value.model)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error("Malformed AI analysis", country=country, error=str(e))
            return fallback_analysis(assessment)
        self.cache.set(cache_key, analysis)
        self._history.append(
            {
                "country": country,
                "timestamp": utc_iso(),
                "riskLevel": analysis["aiRiskAssessment"],
                "confidence": analysis["confidence"],
                "model": result.value.model,
            }
        )
        logger.info(
            "Crisis analysis complete",
            country=country,
            ai_risk=analysis["aiRiskAssessment"],
            confidence=analysis["confidence"],
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return analysis

    def history(self, limit: int = 10) -> list[dict[str, Any]]:
        """Most recent analyses first."""
        return list(reversed(self._history))[:limit]

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("AI analysis cache cleared")

    def stats(self) -> dict[str, Any]:
        return {
            "cache": self.cache.stats(),
            "analyses": len(self._history),
            "modelVersion": self.model_name,
        }
