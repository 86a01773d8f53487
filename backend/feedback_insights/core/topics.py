"""The four fixed feedback categories and the insight-type naming built on them."""

from enum import Enum
from typing import List, Optional


class Topic(str, Enum):
    PAIN_POINTS = "Pain Points"
    BLOCKERS = "Blockers"
    CUSTOMER_REQUESTS = "Customer Requests"
    SOLUTION_FEEDBACK = "Solution Feedback"


# Analysis order; also the tie-break order when topics have equal counts.
TOPICS: List[str] = [t.value for t in Topic]

QUOTE_SUFFIX = "_quote"
RECOMMENDATION_SUFFIX = "_recommendation"
SUMMARY_SUFFIX = "_summary"
GROUPED_INSIGHT_SUFFIX = "_grouped_insight"

UNKNOWN_TOPIC = "Unknown"

_SUMMARY_TEMPLATES = {
    Topic.PAIN_POINTS.value: "Customer pain point analysis reveals",
    Topic.BLOCKERS.value: "Implementation blocker feedback shows",
    Topic.CUSTOMER_REQUESTS.value: "Feature request analysis indicates",
    Topic.SOLUTION_FEEDBACK.value: "Solution effectiveness feedback demonstrates",
}

TOPIC_DEFINITIONS = {
    Topic.PAIN_POINTS.value: "Emotional frustrations, stress, confusion, and negative experiences that affect user satisfaction. Focus on feelings and experience quality rather than implementation barriers.",
    Topic.BLOCKERS.value: "Specific obstacles that prevent progress despite high customer motivation or desire to act. Must show clear intent blocked by external barriers, not general complaints.",
    Topic.CUSTOMER_REQUESTS.value: "Explicit asks for new features, enhancements, services, or program improvements. Concrete requests with specific implementation language like \"add\", \"provide\", or \"build\".",
    Topic.SOLUTION_FEEDBACK.value: "Feedback on existing solutions, how well current features work, and user experience with current offerings. Evaluates what's already implemented.",
}


def topic_key(topic: str) -> str:
    """'Customer Requests' -> 'customer_requests'."""
    return topic.lower().replace(" ", "_")


def insight_type(topic: str, suffix: str) -> str:
    return f"{topic_key(topic)}{suffix}"


def topic_insight_types(suffixes=(RECOMMENDATION_SUFFIX, QUOTE_SUFFIX, SUMMARY_SUFFIX)) -> List[str]:
    """Every insight_type produced by topic analysis, e.g. 'blockers_quote'."""
    return [insight_type(topic, suffix) for topic in TOPICS for suffix in suffixes]


def topic_from_insight_type(value: str, fallback: Optional[str] = None) -> str:
    """Map an insight_type back to its display topic by matching the topic key."""
    for topic in TOPICS:
        if topic_key(topic) in (value or ""):
            return topic
    return fallback or UNKNOWN_TOPIC


def generate_topic_summary(topic: str, total_mentions: int) -> str:
    template = _SUMMARY_TEMPLATES.get(topic, "Customer feedback shows")

    if total_mentions == 0:
        return f"{template} no specific feedback in this category."
    if total_mentions == 1:
        return f"{template} focused feedback around this theme."
    if total_mentions <= 3:
        return f"{template} some key insights in this area."
    return f"{template} significant discussion across {total_mentions} customer touchpoints."


def topic_definition_summary(topic: str, total_mentions: int) -> str:
    """Summary used for stored grouped views: the category definition itself."""
    if total_mentions == 0:
        return f"No specific {topic.lower()} found in customer feedback."
    return TOPIC_DEFINITIONS.get(topic, "Customer feedback in this category.")
