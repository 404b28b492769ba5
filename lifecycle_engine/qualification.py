"""
Lead qualification scoring.

BANT flags contribute fixed weights, auxiliary text and interest signals add
bonuses, and the named qualification rules add their own points on top. The
total is clamped to 0..100.
"""
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from common.enums import LeadStage
from common.schemas import Lead, QualificationCriteria
from lifecycle_engine.classifiers import BaseLeadClassifier, KeywordLeadClassifier


BANT_WEIGHT = 25
HIGH_INTEREST_BONUS = 10
MULTIPLE_DECISION_MAKERS_BONUS = 5
SPECIFIC_NEEDS_BONUS = 10

HIGH_INTEREST_LEVEL = 4
MIN_SCORE = 0
MAX_SCORE = 100

_default_classifier = KeywordLeadClassifier()


@dataclass(frozen=True)
class AutoTransition:
    to_stage: LeadStage
    min_score: int


@dataclass(frozen=True)
class QualificationRule:
    """A named (condition, score) pair evaluated over the raw lead."""
    id: str
    name: str
    description: str
    condition: Callable[[Lead, BaseLeadClassifier], bool]
    score: int
    auto_transition: Optional[AutoTransition] = None


def _lead_field_above(field: str, threshold: float) -> Callable[[Any, BaseLeadClassifier], bool]:
    def condition(lead: Any, classifier: BaseLeadClassifier) -> bool:
        value = getattr(lead, field, None)
        return value is not None and value > threshold
    return condition


QUALIFICATION_RULES: Tuple[QualificationRule, ...] = (
    QualificationRule(
        id="high-interest",
        name="High Interest Level",
        description="Lead has shown interest level of 4 or higher",
        condition=lambda lead, c: lead.interest_level >= HIGH_INTEREST_LEVEL,
        score=15,
    ),
    QualificationRule(
        id="decision-maker",
        name="Decision Maker Identified",
        description="Lead has identified decision makers",
        condition=lambda lead, c: c.classify(lead.decision_makers, None).decision_makers_named,
        score=20,
    ),
    QualificationRule(
        id="specific-needs",
        name="Specific Needs Identified",
        description="Lead has expressed specific needs",
        condition=lambda lead, c: c.classify(None, lead.specific_needs).needs_described,
        score=15,
    ),
    QualificationRule(
        id="package-seen",
        name="Package Viewed",
        description="Lead has viewed the package",
        condition=lambda lead, c: lead.package_seen is True,
        score=10,
    ),
    # Reads a score off the lead itself, which leads do not carry, so this
    # never matches. Kept as-is pending product confirmation.
    QualificationRule(
        id="auto-qualify-high-score",
        name="Auto-Qualify High Score",
        description="Automatically qualify leads with score > 70",
        condition=_lead_field_above("qualification_score", 70),
        score=0,
        auto_transition=AutoTransition(to_stage=LeadStage.QUALIFIED, min_score=70),
    ),
)


def count_bant(criteria: QualificationCriteria) -> int:
    """Number of BANT flags that are set."""
    return sum([
        criteria.has_budget,
        criteria.has_authority,
        criteria.has_need,
        criteria.has_timeline,
    ])


def matching_rules(
    lead: Lead,
    rules: Tuple[QualificationRule, ...] = QUALIFICATION_RULES,
    classifier: Optional[BaseLeadClassifier] = None
) -> Tuple[QualificationRule, ...]:
    """Qualification rules whose condition holds for the lead, in declared order."""
    classifier = classifier or _default_classifier
    return tuple(rule for rule in rules if rule.condition(lead, classifier))


def calculate_qualification_score(
    lead: Lead,
    criteria: Optional[QualificationCriteria] = None,
    rules: Tuple[QualificationRule, ...] = QUALIFICATION_RULES,
    classifier: Optional[BaseLeadClassifier] = None
) -> int:
    """
    Computes the lead's 0-100 qualification score.

    Args:
        lead: Lead being qualified
        criteria: BANT criteria; None counts as no flag set
        rules: Named qualification rules added on top of BANT and bonuses
        classifier: Free-text classifier for decision makers and needs

    Returns:
        int: Score clamped to [0, 100]. An uncapped sum above 100 is clamped,
             not rescaled.
    """
    criteria = criteria or QualificationCriteria()
    classifier = classifier or _default_classifier
    signals = classifier.classify(lead.decision_makers, lead.specific_needs)

    score = BANT_WEIGHT * count_bant(criteria)

    if lead.interest_level >= HIGH_INTEREST_LEVEL:
        score += HIGH_INTEREST_BONUS
    if signals.multiple_decision_makers:
        score += MULTIPLE_DECISION_MAKERS_BONUS
    if signals.needs_detailed:
        score += SPECIFIC_NEEDS_BONUS

    score += sum(rule.score for rule in matching_rules(lead, rules, classifier))

    return min(MAX_SCORE, max(MIN_SCORE, score))
