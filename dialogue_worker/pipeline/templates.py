"""
Template (persona) suggestion, validation and fallback.

Suggestion is a pure function over a MoodProfile: an ordered table of
(predicate, outcome) rules evaluated top to bottom, first match wins.
Validation and fallback check the suggestion against the live active set.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ..models import Mood, MoodProfile, Template, TemplateSuggestion

logger = logging.getLogger("dialogue_worker")

DEFAULT_TEMPLATE_ID = 'default-therapist'
CRISIS_TEMPLATE_ID = 'crisis-support-therapist'


@dataclass(frozen=True)
class SelectionFactors:
    overall_mood: Mood
    confidence_score: float
    sentiment_score: float
    primary_emotion: str
    intensity_level: str
    risk_indicators: int
    key_themes: tuple


@dataclass(frozen=True)
class SelectionRule:
    predicate: Callable[[SelectionFactors], bool]
    template_id: str
    confidence: float
    reasoning: str


def calculate_intensity_level(profile: MoodProfile) -> str:
    average = (profile.confidence_score + abs(profile.sentiment_score)) / 2
    if average < 0.3:
        return 'low'
    if average < 0.7:
        return 'medium'
    return 'high'


def extract_selection_factors(profile: MoodProfile) -> SelectionFactors:
    return SelectionFactors(
        overall_mood=profile.overall_mood,
        confidence_score=profile.confidence_score,
        sentiment_score=profile.sentiment_score,
        primary_emotion=profile.primary_emotion if profile.emotions else 'neutral',
        intensity_level=calculate_intensity_level(profile),
        risk_indicators=len(profile.risk_indicators),
        key_themes=tuple(profile.key_themes),
    )


def _themes_include(*themes: str) -> Callable[[SelectionFactors], bool]:
    return lambda f: any(theme in themes for theme in f.key_themes)


SELECTION_RULES: List[SelectionRule] = [
    SelectionRule(
        lambda f: f.risk_indicators > 0,
        CRISIS_TEMPLATE_ID, 0.95,
        'Risk indicators detected - using crisis support template',
    ),
    SelectionRule(
        lambda f: (f.overall_mood == Mood.POSITIVE and f.sentiment_score > 0.6
                   and f.primary_emotion in ('joy', 'excitement', 'happiness')),
        'motivational-coach', 0.85,
        'High positive sentiment with joy - using motivational coach template',
    ),
    SelectionRule(
        lambda f: (f.overall_mood == Mood.NEGATIVE and f.sentiment_score < -0.6
                   and f.primary_emotion in ('sadness', 'anxiety', 'stress')),
        'empathetic-therapist', 0.90,
        'High negative sentiment with distress - using empathetic therapist template',
    ),
    SelectionRule(
        lambda f: f.overall_mood == Mood.NEGATIVE and f.sentiment_score < -0.2,
        'supportive-counselor', 0.80,
        'Moderate negative sentiment - using supportive counselor template',
    ),
    SelectionRule(
        lambda f: f.overall_mood == Mood.NEUTRAL and f.intensity_level == 'low',
        'life-coach', 0.75,
        'Neutral mood with low intensity - using life coach template',
    ),
    SelectionRule(
        _themes_include('work', 'career', 'professional'),
        'career-counselor', 0.85,
        'Work-related themes detected - using career counselor template',
    ),
    SelectionRule(
        _themes_include('family', 'relationship', 'marriage'),
        'family-therapist', 0.85,
        'Family-related themes detected - using family therapist template',
    ),
    SelectionRule(
        _themes_include('health', 'wellness', 'fitness'),
        'wellness-coach', 0.80,
        'Health-related themes detected - using wellness coach template',
    ),
]

DEFAULT_RULE = SelectionRule(
    lambda f: True,
    'general-therapist', 0.70,
    'General mood profile - using general therapist template',
)


def _as_profile(mood: Union[MoodProfile, Dict[str, Any], None]) -> MoodProfile:
    if isinstance(mood, MoodProfile):
        return mood
    if isinstance(mood, dict):
        return MoodProfile.from_dict(mood)
    raise TypeError(f"Expected a mood profile, got {type(mood).__name__}")


def suggest_template(mood: Union[MoodProfile, Dict[str, Any], None],
                     rules: Sequence[SelectionRule] = SELECTION_RULES) -> TemplateSuggestion:
    """
    Suggest the best template for a mood profile.

    Never raises: a missing or malformed profile yields the default
    template with confidence 0.0 and fallback_used set.
    """
    try:
        factors = extract_selection_factors(_as_profile(mood))
        rule = next((r for r in rules if r.predicate(factors)), DEFAULT_RULE)
        suggestion = TemplateSuggestion(
            template_id=rule.template_id,
            confidence=rule.confidence,
            reasoning=rule.reasoning,
            fallback_used=False,
        )
        logger.info(
            f"Template suggestion: {suggestion.template_id} "
            f"(confidence {suggestion.confidence:.2f}, mood {factors.overall_mood.value})"
        )
        return suggestion
    except Exception as e:
        logger.error(f"Template suggestion failed, using default: {e}")
        return TemplateSuggestion(
            template_id=DEFAULT_TEMPLATE_ID,
            confidence=0.0,
            reasoning='Default template used due to analysis error',
            fallback_used=True,
        )


def _as_templates(templates: Optional[Sequence[Union[Template, Dict[str, Any]]]]) -> List[Template]:
    return [t if isinstance(t, Template) else Template.from_record(t) for t in templates or []]


def validate_template_id(template_id: Optional[str],
                         templates: Optional[Sequence[Union[Template, Dict[str, Any]]]]) -> bool:
    """True only if an active template carries this id"""
    if not template_id or not templates:
        return False
    available = _as_templates(templates)
    is_valid = any(t.id == template_id and t.is_active for t in available)
    logger.info(f"Template validation: {template_id} valid={is_valid} ({len(available)} available)")
    return is_valid


def get_fallback_template_id(templates: Optional[Sequence[Union[Template, Dict[str, Any]]]]) -> str:
    """Prefer an active general template, then the first active one, then the default id"""
    active = [t for t in _as_templates(templates) if t.is_active]
    for template in active:
        if template.category == 'general':
            return template.id
    if active:
        return active[0].id
    return DEFAULT_TEMPLATE_ID


def get_selection_reasoning(mood: Union[MoodProfile, Dict[str, Any]], selected_template_id: str,
                            suggested_template_id: str) -> str:
    """User-facing explanation of the final template choice"""
    if selected_template_id == suggested_template_id:
        return 'Template selected based on your mood analysis'

    if _as_profile(mood).risk_indicators:
        return ('Note: Risk indicators were detected in your dialogue. '
                'Consider speaking with a mental health professional.')

    return 'You selected a different template than suggested. The system will adapt to your preference.'
