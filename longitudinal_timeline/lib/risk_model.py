"""
Risk & Outcomes Model

Explainable heuristic risk scoring over a fixed feature set. This is not a
trained or calibrated model: every point of the score traces to one rule in
RISK_ADJUSTMENTS, and prediction confidence is capped below 1.0.

    risk = 0.5
         + 0.10 age > 65
         + 0.30 / 0.20 / 0.10 stage IV / III / II
         - 0.20 / 0.10 / + 0.20 best response complete / partial / progressive
         - 0.10 at least one actionable mutation
         - 0.05 TMB > 10
    clamped to [0, 1]

Usage:
    from longitudinal_timeline.lib.risk_model import assess_risk

    assessment = assess_risk(record_dict, enriched_events)
    assessment.risk_category   # e.g. 'moderate-high'
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .canonical_record import CanonicalRecord
from .clinical_event import AnyEvent, EventKind, ResponseCategory
from .clinical_vocabulary import stage_group
from .date_resolution import try_parse_date
from .treatment_response import best_observed_response

logger = logging.getLogger(__name__)


BASE_RISK = 0.5
MAX_PREDICTION_CONFIDENCE = 0.95
HIGH_TMB_THRESHOLD = 10.0
ADVANCED_AGE = 65
TOXICITY_BURDEN_THRESHOLD = 5
STAGE_DELTAS = {'IV': 0.30, 'III': 0.20, 'II': 0.10}

RISK_CATEGORIES = [
    (0.8, 'high'),
    (0.6, 'moderate-high'),
    (0.4, 'moderate'),
    (0.2, 'low-moderate'),
    (0.0, 'low'),
]

STRENGTH_RANK = {'high': 3, 'moderate': 2, 'low': 1}


@dataclass(frozen=True)
class PrognosticFactor:
    name: str
    impact: str
    strength: str
    rationale: str

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'impact': self.impact, 'strength': self.strength, 'rationale': self.rationale}


@dataclass
class RiskAssessment:
    """
    Composite outcomes risk.

    Attributes:
        risk_score: 0-1 heuristic risk
        risk_category: low | low-moderate | moderate | moderate-high | high
        prognostic_factors: Factors sorted by strength, strongest first
        prediction_confidence: Feature-completeness confidence, never above 0.95
        features: Extracted feature set
        score_components: (rule name, delta) for every rule that fired
        recommendations: Monitoring recommendations for the category
    """
    risk_score: float
    risk_category: str
    prognostic_factors: List[PrognosticFactor] = field(default_factory=list)
    prediction_confidence: float = 0.5
    features: Dict[str, Any] = field(default_factory=dict)
    score_components: List[Tuple[str, float]] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'risk_score': self.risk_score,
            'risk_category': self.risk_category,
            'prognostic_factors': [f.to_dict() for f in self.prognostic_factors],
            'prediction_confidence': self.prediction_confidence,
            'features': dict(self.features),
            'score_components': [{'rule': name, 'delta': delta} for name, delta in self.score_components],
            'recommendations': list(self.recommendations),
        }


# ============================================================================
# FEATURES
# ============================================================================

def _age_in_years(birth: datetime, reference: datetime) -> int:
    years = reference.year - birth.year
    if (reference.month, reference.day) < (birth.month, birth.day):
        years -= 1
    return years


def resolve_age(record: CanonicalRecord, events: Sequence[AnyEvent],
                as_of: Optional[datetime] = None) -> Optional[float]:
    """
    Patient age.

    Explicit age wins. Otherwise age from date of birth at as_of, else at the
    diagnosis date, else at the latest event date.
    """
    if record.demographics.age is not None:
        return record.demographics.age
    birth = try_parse_date(record.demographics.date_of_birth)
    if birth is None:
        return None
    reference = as_of or try_parse_date(record.cancer.diagnosis_date)
    if reference is None and events:
        reference = max(e.date for e in events)
    if reference is None:
        return None
    return float(_age_in_years(birth, reference))


def extract_outcome_features(record: CanonicalRecord, events: Sequence[AnyEvent],
                             as_of: Optional[datetime] = None) -> Dict[str, Any]:
    genomics = [e for e in events if e.kind == EventKind.GENOMICS]
    genomic_details = genomics[0].details if genomics else None
    starts = [e for e in events if e.kind == EventKind.TREATMENT_START]
    best = best_observed_response(events)

    return {
        'age': resolve_age(record, events, as_of),
        'sex': record.demographics.sex,
        'stage': record.cancer.stage,
        'histology': record.cancer.histology,
        'grade': record.cancer.grade,
        'number_of_treatments': len(starts),
        'treatment_types': sorted({e.details.treatment_type for e in starts if e.details.treatment_type}),
        'mutation_count': genomic_details.mutation_count if genomic_details else 0,
        'actionable_mutations': len(genomic_details.actionable_mutations) if genomic_details else 0,
        'tmb': genomic_details.tmb if genomic_details else None,
        'msi': genomic_details.msi if genomic_details else None,
        'best_response': best.value if best else None,
        'adverse_event_count': sum(1 for e in events if e.kind == EventKind.ADVERSE_EVENT),
    }


def _stage(features: Dict[str, Any]) -> Optional[str]:
    return stage_group(features.get('stage'))


def _is_msi_high(features: Dict[str, Any]) -> bool:
    msi = str(features.get('msi') or '').upper().replace('_', '-').replace(' ', '-')
    return msi in ('MSI-H', 'MSI-HIGH', 'HIGH')


# ============================================================================
# SCORING RULES
# ============================================================================

def _stage_delta(features: Dict[str, Any]) -> float:
    return STAGE_DELTAS.get(_stage(features), 0.0)


def _response_delta(features: Dict[str, Any]) -> float:
    return {
        ResponseCategory.COMPLETE_RESPONSE.value: -0.20,
        ResponseCategory.PARTIAL_RESPONSE.value: -0.10,
        ResponseCategory.PROGRESSIVE_DISEASE.value: 0.20,
    }.get(features.get('best_response'), 0.0)


RISK_ADJUSTMENTS: List[Tuple[str, Callable[[Dict[str, Any]], float]]] = [
    ('age_over_65', lambda f: 0.10 if (f.get('age') or 0) > ADVANCED_AGE else 0.0),
    ('stage', _stage_delta),
    ('best_response', _response_delta),
    ('actionable_mutation', lambda f: -0.10 if f.get('actionable_mutations', 0) >= 1 else 0.0),
    ('high_tmb', lambda f: -0.05 if (f.get('tmb') or 0) > HIGH_TMB_THRESHOLD else 0.0),
]


def calculate_risk_score(features: Dict[str, Any]) -> Tuple[float, List[Tuple[str, float]]]:
    """
    Returns:
        (score clamped to [0, 1], [(rule, delta) for rules that fired])
    """
    score = BASE_RISK
    components = []
    for name, rule in RISK_ADJUSTMENTS:
        delta = rule(features)
        if delta:
            components.append((name, delta))
            score += delta
    return round(max(0.0, min(1.0, score)), 4), components


def categorize_risk(score: float) -> str:
    for lower_bound, category in RISK_CATEGORIES:
        if score >= lower_bound:
            return category
    return 'low'


# ============================================================================
# PROGNOSTIC FACTORS
# ============================================================================

PROGNOSTIC_RULES = [
    ('Advanced Stage', lambda f: _stage(f) == 'IV', 'negative', 'high',
     'Stage IV disease is associated with poorer prognosis'),
    ('Locally Advanced Stage', lambda f: _stage(f) == 'III', 'negative', 'moderate',
     'Stage III disease carries elevated recurrence risk'),
    ('Advanced Age', lambda f: (f.get('age') or 0) > ADVANCED_AGE, 'negative', 'moderate',
     'Age over 65 may limit treatment tolerance'),
    ('Actionable Mutations', lambda f: f.get('actionable_mutations', 0) >= 1, 'positive', 'moderate',
     'Targeted therapy options available'),
    ('Complete Response', lambda f: f.get('best_response') == ResponseCategory.COMPLETE_RESPONSE.value,
     'positive', 'high', 'Achieved complete response to treatment'),
    ('Partial Response', lambda f: f.get('best_response') == ResponseCategory.PARTIAL_RESPONSE.value,
     'positive', 'moderate', 'Achieved partial response to treatment'),
    ('Progressive Disease', lambda f: f.get('best_response') == ResponseCategory.PROGRESSIVE_DISEASE.value,
     'negative', 'high', 'Disease progressed despite treatment'),
    ('High TMB', lambda f: (f.get('tmb') or 0) > HIGH_TMB_THRESHOLD, 'positive', 'moderate',
     'High tumor mutational burden may predict immunotherapy benefit'),
    ('MSI-High', _is_msi_high, 'positive', 'moderate',
     'Microsatellite instability may predict immunotherapy benefit'),
    ('Treatment Toxicity Burden', lambda f: f.get('adverse_event_count', 0) > TOXICITY_BURDEN_THRESHOLD,
     'negative', 'moderate', 'Multiple adverse events may limit further treatment'),
]


def identify_prognostic_factors(features: Dict[str, Any]) -> List[PrognosticFactor]:
    """Factors whose rule fires, strongest first (rule order within a strength)."""
    factors = [
        PrognosticFactor(name=name, impact=impact, strength=strength, rationale=rationale)
        for name, predicate, impact, strength, rationale in PROGNOSTIC_RULES
        if predicate(features)
    ]
    return sorted(factors, key=lambda f: STRENGTH_RANK[f.strength], reverse=True)


def calculate_prediction_confidence(features: Dict[str, Any]) -> float:
    """Rewards feature completeness; never exceeds 0.95."""
    non_null = sum(1 for value in features.values() if value is not None)
    confidence = 0.5 + (non_null / 20) * 0.3
    if features.get('stage'):
        confidence += 0.1
    if features.get('best_response'):
        confidence += 0.1
    if features.get('mutation_count', 0) > 0:
        confidence += 0.05
    return round(min(MAX_PREDICTION_CONFIDENCE, confidence), 4)


def actionable_genes(events: Sequence[AnyEvent]) -> List[str]:
    return [
        mutation.gene
        for event in events if event.kind == EventKind.GENOMICS
        for mutation in event.details.actionable_mutations
    ]


def generate_recommendations(category: str, features: Dict[str, Any], genes: Sequence[str] = ()) -> List[str]:
    if category in ('high', 'moderate-high'):
        recommendations = [
            'Consider intensive monitoring with imaging every 6-8 weeks',
            'Multidisciplinary tumor board review recommended',
            'Evaluate eligibility for clinical trials',
            'Optimize supportive care and symptom management',
        ]
    elif category == 'moderate':
        recommendations = [
            'Standard monitoring with imaging every 3 months',
            'Regular laboratory assessment of tumor markers and blood counts',
        ]
    else:
        recommendations = [
            'Routine surveillance per guidelines',
            'Focus on survivorship care planning',
        ]

    if genes:
        recommendations.append(f"Review targeted therapy options for {', '.join(genes)}")
    if not features.get('mutation_count') and features.get('tmb') is None:
        recommendations.append('Consider comprehensive genomic profiling')
    return recommendations


def assess_risk(record: Any, events: Sequence[AnyEvent], as_of: Optional[datetime] = None) -> RiskAssessment:
    """
    Composite outcomes risk for one patient.

    Args:
        record: Canonical Record mapping (or CanonicalRecord)
        events: Extracted (or enriched) events of the same record
        as_of: Reference time for age from date of birth

    Returns:
        RiskAssessment
    """
    canonical = CanonicalRecord.from_dict(record)
    features = extract_outcome_features(canonical, events, as_of)
    score, components = calculate_risk_score(features)
    category = categorize_risk(score)

    logger.debug(f"Risk score {score} ({category}) from {len(components)} adjustments")
    return RiskAssessment(
        risk_score=score,
        risk_category=category,
        prognostic_factors=identify_prognostic_factors(features),
        prediction_confidence=calculate_prediction_confidence(features),
        features=features,
        score_components=components,
        recommendations=generate_recommendations(category, features, actionable_genes(events)),
    )
