import pytest

from feedback_insights.core.prompts import (
    TOPIC_PROMPTS, format_quote_list, render_grouping_prompt, render_hallucination_prompt,
    render_relevance_prompt, render_topic_prompt,
)
from feedback_insights.core.topics import (
    TOPICS, generate_topic_summary, insight_type, topic_definition_summary,
    topic_from_insight_type, topic_insight_types, topic_key,
)


class TestTopicPrompts:

    def test_every_topic_has_a_prompt(self):
        assert set(TOPIC_PROMPTS) == set(TOPICS)

    @pytest.mark.parametrize("topic", TOPICS)
    def test_prompt_demands_json_shape_and_zero_fallback(self, topic):
        prompt = render_topic_prompt(topic, "some feedback")
        assert '"relevance_score"' in prompt
        assert '"snippets"' in prompt
        assert '"recommendations"' in prompt
        assert '{"relevance_score": 0, "snippets": [], "recommendations": []}' in prompt
        assert "{content}" not in prompt
        assert "some feedback" in prompt

    def test_unknown_topic(self):
        assert render_topic_prompt("Praise", "anything") is None

    def test_content_with_braces_is_literal(self):
        content = 'config was {"retries": 3} and {content} stayed'
        prompt = render_topic_prompt("Blockers", content)
        assert content in prompt

    def test_pain_points_excludes_blockers(self):
        assert "EXCLUDE technical implementation blockers" in render_topic_prompt("Pain Points", "x")


class TestJudgePrompts:

    def test_hallucination_prompt_values_are_not_rescanned(self):
        prompt = render_hallucination_prompt("Blockers", "source mentions {response}", "THE CLAIM")
        assert "source mentions {response}" in prompt
        assert "# Customer Insight: THE CLAIM" in prompt
        assert "# Topic Category: Blockers" in prompt

    def test_relevance_prompt(self):
        prompt = render_relevance_prompt("Customer Requests", "Please add SSO")
        assert "[Topic Category]: Customer Requests" in prompt
        assert "[Customer Insight]: Please add SSO" in prompt


class TestGroupingPrompt:

    def test_quote_list_format(self):
        quotes = [{"text": "too slow", "source": "Mike Chen"}, {"text": "crashes", "source": None}]
        assert format_quote_list(quotes) == '0. "too slow" (Source: Mike Chen)\n1. "crashes" (Source: Unknown)'

    def test_render(self):
        prompt = render_grouping_prompt("Pain Points", [{"text": "too slow"}])
        assert "TOPIC: Pain Points" in prompt
        assert '0. "too slow" (Source: Unknown)' in prompt


class TestTopics:

    def test_keys_and_types(self):
        assert topic_key("Customer Requests") == "customer_requests"
        assert insight_type("Pain Points", "_quote") == "pain_points_quote"
        assert len(topic_insight_types()) == 12
        assert "blockers_summary" in topic_insight_types()

    def test_topic_from_insight_type(self):
        assert topic_from_insight_type("solution_feedback_grouped_insight") == "Solution Feedback"
        assert topic_from_insight_type("misc_note") == "Unknown"
        assert topic_from_insight_type("misc_note", fallback="Blockers") == "Blockers"

    @pytest.mark.parametrize("mentions, fragment", [
        (0, "no specific feedback in this category."),
        (1, "focused feedback around this theme."),
        (3, "some key insights in this area."),
        (7, "significant discussion across 7 customer touchpoints."),
    ])
    def test_generate_topic_summary(self, mentions, fragment):
        summary = generate_topic_summary("Blockers", mentions)
        assert summary.startswith("Implementation blocker feedback shows")
        assert summary.endswith(fragment)

    def test_definition_summary(self):
        assert topic_definition_summary("Blockers", 0) == "No specific blockers found in customer feedback."
        assert topic_definition_summary("Blockers", 2).startswith("Specific obstacles")
