"""
AI Response Plan Generator.

Turns an AI crisis analysis into a three-phase humanitarian response plan
(emergency, stabilization, integration). The model drafts the plan; costs,
staffing, timeline and funding split are always computed here from fixed
per-person rates so totals stay consistent whatever the model returns.
"""

from __future__ import annotations

import json
import math
import time
from collections import deque
from typing import Any, Optional

from models.crisis import PlanRequest
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


PLAN_VERSION = "1.0"
DEFAULT_POPULATION = 10_000
_HISTORY_LIMIT = 500

# ---------------------------------------------------------------------------
# Cost model (USD)
# ---------------------------------------------------------------------------

# Emergency phase, per person per day
EMERGENCY_DAILY_COSTS = {
    "water": 2.50,
    "food": 4.00,
    "shelter": 3.00,
    "medical": 2.00,
    "sanitation": 1.50,
    "blankets": 0.75,
}
EMERGENCY_DAYS = 28

# Stabilization phase, per person per month
STABILIZATION_MONTHLY_COSTS = {
    "housing": 85.00,
    "education": 25.00,
    "healthcare": 45.00,
    "food": 120.00,
    "utilities": 30.00,
    "psychosocial": 15.00,
}
STABILIZATION_MONTHS = 6

# Integration phase, per person per year
INTEGRATION_YEARLY_COSTS = {
    "housing": 1200.00,
    "livelihood": 800.00,
    "education": 400.00,
    "healthcare": 600.00,
    "integration": 300.00,
}
INTEGRATION_YEARS = 1.5

OVERHEAD_RATE = 0.15
CONTINGENCY_RATE = 0.10
REACTIVE_COST_MULTIPLIER = 1.7

# Staff per 1000 people
STAFF_REQUIREMENTS = {
    "emergency": {"coordinators": 2, "medical": 8, "logistics": 5, "protection": 3, "wash": 4, "food": 3},
    "stabilization": {
        "management": 3,
        "social_workers": 6,
        "teachers": 12,
        "medical": 10,
        "security": 5,
        "logistics": 4,
    },
    "integration": {
        "case_managers": 4,
        "job_counselors": 3,
        "teachers": 15,
        "healthcare": 8,
        "community_liaisons": 2,
    },
}

FUNDING_SPLIT = {"bilateral": 0.40, "multilateral": 0.35, "private": 0.15, "host_country": 0.10}
FUNDING_SOURCES = [
    "UN Central Emergency Response Fund (CERF)",
    "Country-based Pooled Funds",
    "Bilateral donor governments",
    "Private foundations and corporations",
    "Individual donations",
]

_PREPARATION_TIME = {"immediate": "24-48 hours", "high": "3-7 days", "medium": "1-2 weeks"}

MILESTONES = [
    {"week": 1, "milestone": "Emergency response activated", "critical": True},
    {"week": 2, "milestone": "Basic services operational", "critical": True},
    {"week": 4, "milestone": "Emergency phase evaluation", "critical": False},
    {"month": 2, "milestone": "Stabilization services launched", "critical": True},
    {"month": 6, "milestone": "Integration planning begins", "critical": False},
    {"month": 12, "milestone": "Self-reliance assessment", "critical": False},
    {"month": 24, "milestone": "Program evaluation and transition", "critical": True},
]

# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

PLAN_SYSTEM_PROMPT = """\
You are RefugeeWatch AI Response Planner, an expert in humanitarian response \
planning and refugee assistance. You create evidence-based response plans \
that save lives and provide dignity to displaced populations.

Planning principles:
- Prioritize immediate life-saving interventions
- Ensure protection and dignity for all displaced persons
- Plan for sustainable, long-term solutions
- Optimize resource utilization and cost-effectiveness
- Consider local capacity and cultural contexts
- Integrate cross-cutting issues (gender, age, disability)

Response phases:
1. EMERGENCY (Weeks 1-4): Life-saving interventions
2. STABILIZATION (Months 1-6): Establishing services and protection
3. INTEGRATION (Months 6-24): Durable solutions and self-reliance

Output format: Provide detailed, actionable plans in JSON format with \
specific resource requirements, timelines and implementation steps.\
"""

PLAN_SCHEMA_EXAMPLE = """\
{
  "planOverview": {
    "planName": "Descriptive plan name",
    "planType": "EMERGENCY|COMPREHENSIVE|PREVENTION",
    "targetPopulation": 0,
    "implementationPeriod": "timeframe",
    "priority": "CRITICAL|HIGH|MEDIUM|LOW",
    "coordinator": "Lead organization type"
  },
  "phases": {
    "emergency": {
      "duration": "weeks",
      "objectives": ["objective1"],
      "activities": [
        {"category": "WASH|Shelter|Food|Medical|Protection|Logistics", "action": "Specific action",
         "quantity": "Amount needed", "timeline": "When", "priority": "CRITICAL|HIGH|MEDIUM"}
      ],
      "resources": {"personnel": 0, "budget": 0, "materials": ["material1"]}
    },
    "stabilization": {
      "duration": "months",
      "objectives": ["objective1"],
      "activities": [],
      "resources": {"personnel": 0, "budget": 0, "infrastructure": ["item1"]}
    },
    "integration": {
      "duration": "months",
      "objectives": ["objective1"],
      "activities": [],
      "resources": {"personnel": 0, "budget": 0, "programs": ["program1"]}
    }
  },
  "crossCutting": {
    "protection": ["measure1"],
    "genderAge": ["consideration1"],
    "environment": ["consideration1"],
    "coordination": ["mechanism1"]
  },
  "riskMitigation": [
    {"risk": "description", "likelihood": "HIGH|MEDIUM|LOW", "impact": "HIGH|MEDIUM|LOW", "mitigation": "strategy"}
  ],
  "implementation": {
    "leadAgencies": ["agency1"],
    "partners": ["partner1"],
    "timeline": {"week1": ["activity1"], "month1": ["activity1"], "month6": ["activity1"]},
    "monitoringFramework": ["indicator1"]
  }
}\
"""


def build_plan_prompt(analysis: dict[str, Any], request: PlanRequest, population: int) -> str:
    prediction = json_section(analysis, "displacementPrediction")
    warning = json_section(analysis, "earlyWarning")
    recommendations = json_section(analysis, "recommendations")
    critical = [f.get("factor") for f in json_list(analysis, "criticalFactors") if isinstance(f, dict)]
    country = json_section(analysis, "metadata").get("country") or "Unknown"
    focus = ", ".join(request.focus) if request.focus else "comprehensive"
    confidence = round(float(analysis.get("confidence") or 0) * 100)
    return f"""\
Generate a humanitarian response plan for the following crisis scenario:

## CRISIS SITUATION
Country: {country}
AI Risk Assessment: {analysis.get('aiRiskAssessment')}
Confidence Level: {confidence}%
Displacement Prediction: {population} people
Timeline: {prediction.get('timeframe') or '2-8 weeks'}
Displacement Type: {prediction.get('displacementType') or 'unknown'}

## KEY CRISIS FACTORS
Primary Triggers: {json.dumps(json_list(prediction, 'primaryTriggers'))}
Critical Factors: {json.dumps(critical)}
Immediate Threats: {json.dumps(json_list(warning, 'immediateThreats'))}

## DISPLACEMENT DETAILS
Likely Destinations: {json.dumps(json_list(prediction, 'likelyDestinations'))}
Urgency Level: {warning.get('urgency') or 'medium'}
Time to Action: {warning.get('timeToAction') or 'days'}

## AI RECOMMENDATIONS
Immediate Actions: {json.dumps(json_list(recommendations, 'immediate'))}
Short-term Actions: {json.dumps(json_list(recommendations, 'shortTerm'))}
Long-term Actions: {json.dumps(json_list(recommendations, 'longTerm'))}

## REQUESTED PLAN PARAMETERS
Priority: {request.priority.value}
Implementation timeline: {request.timeline}
Focus areas: {focus}

Respond with a JSON plan in exactly this format:

{PLAN_SCHEMA_EXAMPLE}

Ensure the plan is realistic, evidence-based and immediately actionable."""


# ---------------------------------------------------------------------------
# Calculations
# ---------------------------------------------------------------------------


def emergency_cost(population: int) -> int:
    return round(population * sum(EMERGENCY_DAILY_COSTS.values()) * EMERGENCY_DAYS)


def stabilization_cost(population: int) -> int:
    return round(population * sum(STABILIZATION_MONTHLY_COSTS.values()) * STABILIZATION_MONTHS)


def integration_cost(population: int) -> int:
    return round(population * sum(INTEGRATION_YEARLY_COSTS.values()) * INTEGRATION_YEARS)


def calculate_costs(population: int) -> dict[str, int]:
    costs = {
        "emergency": emergency_cost(population),
        "stabilization": stabilization_cost(population),
        "integration": integration_cost(population),
    }
    operational = sum(costs.values())
    costs["overhead"] = round(operational * OVERHEAD_RATE)
    costs["contingency"] = round(operational * CONTINGENCY_RATE)
    costs["total"] = operational + costs["overhead"] + costs["contingency"]
    return costs


def calculate_staff(population: int) -> dict[str, dict[str, int]]:
    multiplier = math.ceil(population / 1000)
    staff: dict[str, dict[str, int]] = {"total": {}}
    for phase, roles in STAFF_REQUIREMENTS.items():
        staff[phase] = {role: count * multiplier for role, count in roles.items()}
        staff["total"][phase] = sum(staff[phase].values())
    return staff


def cost_comparison(preventive: int, population: int) -> dict[str, int]:
    reactive = round(preventive * REACTIVE_COST_MULTIPLIER)
    savings = reactive - preventive
    return {
        "preventive": preventive,
        "reactive": reactive,
        "savings": savings,
        "savingsPercentage": round(savings / reactive * 100) if reactive else 0,
        "costPerPersonPreventive": round(preventive / population),
        "costPerPersonReactive": round(reactive / population),
    }


def efficiency_metrics(costs: dict[str, int], population: int) -> dict[str, Any]:
    total = costs["total"] or 1
    return {
        "costPerBeneficiary": round(costs["total"] / population),
        "operationalEfficiency": round((costs["total"] - costs["overhead"]) / total * 100),
        "phaseDistribution": {
            phase: round(costs[phase] / total * 100) for phase in ("emergency", "stabilization", "integration")
        },
    }


def funding_strategy(costs: dict[str, int]) -> dict[str, Any]:
    return {
        "recommended": {name: round(costs["total"] * share) for name, share in FUNDING_SPLIT.items()},
        "timeline": {
            "immediate": costs["emergency"],
            "shortTerm": costs["stabilization"],
            "longTerm": costs["integration"],
        },
        "fundingSources": list(FUNDING_SOURCES),
    }


def implementation_timeline(analysis: dict[str, Any]) -> dict[str, Any]:
    urgency = json_section(analysis, "earlyWarning").get("urgency") or "medium"
    return {
        "preparation": _PREPARATION_TIME.get(urgency, "2-4 weeks"),
        "phases": {
            "emergency": {"start": "0 days", "end": "28 days", "status": "ready"},
            "stabilization": {"start": "29 days", "end": "6 months", "status": "planned"},
            "integration": {"start": "6 months", "end": "24 months", "status": "planned"},
        },
        "milestones": [dict(m) for m in MILESTONES],
    }


def resource_optimization() -> dict[str, Any]:
    return {
        "procurement": {
            "strategy": "Local procurement prioritized where possible",
            "timeline": "Emergency items pre-positioned, others procured locally",
            "suppliers": "Pre-qualified supplier network activated",
        },
        "logistics": {
            "distribution": "Decentralized distribution points",
            "transportation": "Multi-modal transport strategy",
            "warehousing": "Regional warehouse network",
        },
        "efficiency": {
            "sharing": "Resource sharing with host communities",
            "technology": "Digital systems for tracking and accountability",
            "coordination": "Inter-agency resource coordination",
        },
    }


def monitoring_framework() -> dict[str, Any]:
    return {
        "indicators": [
            {"indicator": "People receiving life-saving assistance", "target": "100%", "frequency": "Weekly"},
            {"indicator": "Crude mortality rate", "target": "<1/10,000/day", "frequency": "Daily"},
            {"indicator": "Access to safe water", "target": "15L/person/day", "frequency": "Daily"},
            {"indicator": "Children enrolled in education", "target": "80%", "frequency": "Monthly"},
            {"indicator": "Reported protection incidents", "target": "<5/week", "frequency": "Weekly"},
        ],
        "reporting": {
            "frequency": "Weekly situation reports",
            "dashboard": "Real-time monitoring dashboard",
            "evaluation": "Monthly outcome evaluations",
        },
        "accountability": {
            "feedback": "Community feedback mechanisms",
            "complaints": "24/7 complaint hotline",
            "transparency": "Public reporting of resource utilization",
        },
    }


def implementation_risks(analysis: dict[str, Any]) -> list[dict[str, str]]:
    critical = analysis.get("aiRiskAssessment") == "CRITICAL"
    very_likely = json_section(analysis, "displacementPrediction").get("likelihood") == "VERY_HIGH"
    return [
        {
            "risk": "Security constraints limiting access",
            "likelihood": "HIGH" if critical else "MEDIUM",
            "impact": "HIGH",
            "mitigation": "Security protocols, remote programming, local partnerships",
        },
        {
            "risk": "Funding shortfalls",
            "likelihood": "MEDIUM",
            "impact": "HIGH",
            "mitigation": "Diversified funding strategy, contingency planning",
        },
        {
            "risk": "Rapid influx overwhelming capacity",
            "likelihood": "HIGH" if very_likely else "MEDIUM",
            "impact": "HIGH",
            "mitigation": "Scalable response model, surge capacity planning",
        },
        {
            "risk": "Host community tensions",
            "likelihood": "MEDIUM",
            "impact": "MEDIUM",
            "mitigation": "Community engagement, benefit sharing, conflict prevention",
        },
    ]


def readiness_score(plan: dict[str, Any]) -> int:
    score = 70
    phases = json_section(plan, "phases")
    if len(json_list(json_section(phases, "emergency"), "activities")) > 5:
        score += 10
    if json_section(plan, "crossCutting").get("protection"):
        score += 10
    if json_section(plan, "implementation").get("timeline"):
        score += 10
    return min(100, score)


def extract_basic_plan(text: str) -> dict[str, Any]:
    """Skeleton plan for a reply that is not a usable JSON plan."""
    return {
        "planOverview": {
            "planName": "AI-Generated Crisis Response Plan",
            "planType": "COMPREHENSIVE",
            "targetPopulation": DEFAULT_POPULATION,
            "implementationPeriod": "24 months",
            "priority": "HIGH",
            "coordinator": "UNHCR",
        },
        "phases": {
            "emergency": {
                "duration": "4 weeks",
                "objectives": ["Provide immediate life-saving assistance", "Establish protection measures"],
                "activities": [],
                "resources": {"personnel": 100, "budget": 1_000_000, "materials": []},
            },
            "stabilization": {
                "duration": "6 months",
                "objectives": ["Establish temporary services", "Support community structures"],
                "activities": [],
                "resources": {"personnel": 200, "budget": 5_000_000, "infrastructure": []},
            },
            "integration": {
                "duration": "18 months",
                "objectives": ["Support durable solutions", "Promote self-reliance"],
                "activities": [],
                "resources": {"personnel": 150, "budget": 10_000_000, "programs": []},
            },
        },
        "aiResponseExtract": (text or "")[:500] + "...",
    }


def parse_plan(text: str) -> dict[str, Any]:
    try:
        parsed = parse_json_content(text)
        if not json_section(parsed, "planOverview") or not json_section(parsed, "phases"):
            raise ValueError("Invalid plan structure")
        for section in ("crossCutting", "implementation"):
            if section in parsed:
                parsed[section] = json_section(parsed, section)
        return parsed
    except ValueError as e:
        logger.warning("Failed to parse AI plan", error=str(e))
        return extract_basic_plan(text)


def _positive_int(value: Any) -> Optional[int]:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def fallback_plan(analysis: dict[str, Any], request: Optional[PlanRequest] = None) -> dict[str, Any]:
    """Emergency-only plan used when the model cannot be reached."""
    population = (
        (request.population if request else None)
        or _positive_int(json_section(analysis, "displacementPrediction").get("estimatedPopulation"))
        or DEFAULT_POPULATION
    )
    country = json_section(analysis, "metadata").get("country") or "Unknown"
    cost = emergency_cost(population)
    return {
        "planOverview": {
            "planName": f"Emergency Response Plan for {country}",
            "planType": "EMERGENCY",
            "targetPopulation": population,
            "implementationPeriod": "12 months",
            "priority": "HIGH",
            "coordinator": "UNHCR",
        },
        "phases": {
            "emergency": {
                "duration": "4 weeks",
                "objectives": ["Provide life-saving assistance", "Ensure protection"],
                "activities": [
                    {
                        "category": "WASH",
                        "action": "Provide clean water",
                        "quantity": "15L/person/day",
                        "timeline": "Immediate",
                        "priority": "CRITICAL",
                    },
                    {
                        "category": "Shelter",
                        "action": "Emergency shelter",
                        "quantity": "3.5m²/person",
                        "timeline": "48 hours",
                        "priority": "CRITICAL",
                    },
                    {
                        "category": "Food",
                        "action": "Food distribution",
                        "quantity": "2100 kcal/person/day",
                        "timeline": "Daily",
                        "priority": "CRITICAL",
                    },
                ],
                "resources": {
                    "personnel": math.ceil(population / 1000) * 25,
                    "budget": cost,
                    "materials": ["Tents", "Water containers", "Food rations"],
                },
            }
        },
        "metadata": {
            "generatedAt": utc_iso(),
            "modelUsed": "Fallback Logic",
            "targetPopulation": population,
            "country": country,
            "planVersion": f"{PLAN_VERSION}-fallback",
        },
        "summary": {
            "totalCost": cost,
            "costPerPerson": round(cost / population),
            "implementationPeriod": "4 weeks emergency response",
            "priority": "HIGH",
            "readinessScore": 60,
        },
        "totalCost": cost,
        "planType": "EMERGENCY",
        "fallbackReason": "AI plan generation unavailable",
    }


class ResponsePlanner:
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

    @staticmethod
    def target_population(plan: dict[str, Any], analysis: dict[str, Any], request: PlanRequest) -> int:
        return (
            request.population
            or _positive_int(json_section(plan, "planOverview").get("targetPopulation"))
            or _positive_int(json_section(analysis, "displacementPrediction").get("estimatedPopulation"))
            or DEFAULT_POPULATION
        )

    def enhance(
        self,
        plan: dict[str, Any],
        analysis: dict[str, Any],
        request: PlanRequest,
        model: str,
    ) -> dict[str, Any]:
        """Attach computed costs, staffing and timeline to a drafted plan."""
        population = self.target_population(plan, analysis, request)
        costs = calculate_costs(population)
        overview = json_section(plan, "planOverview")
        enhanced = {
            **plan,
            "metadata": {
                "generatedAt": utc_iso(),
                "modelUsed": model,
                "targetPopulation": population,
                "country": json_section(analysis, "metadata").get("country"),
                "crisisRisk": analysis.get("aiRiskAssessment"),
                "requestedPriority": request.priority.value,
                "requestedTimeline": request.timeline,
                "focus": list(request.focus),
                "planVersion": PLAN_VERSION,
            },
            "costAnalysis": {
                "breakdown": costs,
                "comparison": cost_comparison(costs["total"], population),
                "efficiency": efficiency_metrics(costs, population),
                "funding": funding_strategy(costs),
            },
            "staffPlan": calculate_staff(population),
            "implementationPlan": implementation_timeline(analysis),
            "resourceOptimization": resource_optimization(),
            "monitoringFramework": monitoring_framework(),
            "implementationRisks": implementation_risks(analysis),
            "summary": {
                "totalCost": costs["total"],
                "costPerPerson": round(costs["total"] / population),
                "implementationPeriod": overview.get("implementationPeriod") or request.timeline,
                "priority": overview.get("priority") or request.priority.value,
                "readinessScore": readiness_score(plan),
            },
        }
        enhanced["totalCost"] = costs["total"]
        enhanced["planType"] = overview.get("planType") or "COMPREHENSIVE"
        return enhanced

    async def generate_plan(
        self,
        analysis: dict[str, Any],
        request: Optional[PlanRequest] = None,
        *,
        use_cache: bool = True,
    ) -> dict[str, Any]:
        """Response plan for one analysed crisis. Never raises for model failures."""
        request = request or PlanRequest()
        country = json_section(analysis, "metadata").get("country") or "Unknown"
        cache_key = f"plan_{country.lower()}_{request.priority.value}_{request.timeline}"
        if use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        started = time.monotonic()
        population = self.target_population({}, analysis, request)
        result = await self.provider.chat(
            [
                LLMMessage(role="system", content=PLAN_SYSTEM_PROMPT),
                LLMMessage(role="user", content=build_plan_prompt(analysis, request, population)),
            ],
            model=self.model_name,
            temperature=0.2,
            max_tokens=3000,
            top_p=0.8,
        )
        if not result.ok:
            logger.error("Plan generation failed", country=country, error=result.message)
            return fallback_plan(analysis, request)

        try:
            plan = self.enhance(parse_plan(result.value.content), analysis, request, result.value.model)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error("Malformed AI plan", country=country, error=str(e))
            return fallback_plan(analysis, request)
        self.cache.set(cache_key, plan)
        self._history.append(
            {
                "country": country,
                "timestamp": utc_iso(),
                "planType": plan["planType"],
                "estimatedCost": plan["totalCost"],
            }
        )
        logger.info(
            "Plan generation complete",
            country=country,
            plan_type=plan["planType"],
            total_cost=plan["totalCost"],
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return plan

    def history(self, limit: int = 10) -> list[dict[str, Any]]:
        return list(reversed(self._history))[:limit]

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("Response plan cache cleared")

    def stats(self) -> dict[str, Any]:
        return {
            "cache": self.cache.stats(),
            "plans": len(self._history),
            "modelVersion": self.model_name,
        }
