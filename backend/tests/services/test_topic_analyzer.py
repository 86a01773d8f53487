import json
from unittest.mock import patch

import pytest

from conftest import StubGateway
from feedback_insights.core.llm import ConfigurationError, LLMTimeoutError, ProviderError
from feedback_insights.services.topic_analyzer import TopicAnalyzer

CONTENT = "The API rate limiting is preventing our integration from working properly"


def analyzer_returning(payload):
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return TopicAnalyzer(gateway=StubGateway(lambda prompt: text))


def analyzer_raising(error):
    def responder(prompt):
        raise error
    return TopicAnalyzer(gateway=StubGateway(responder))


class TestTopicAnalyzer:

    def test_normalizes_valid_response(self):
        analyzer = analyzer_returning({
            "relevance_score": 5,
            "snippets": [
                {"text": "rate limiting is preventing our integration", "relevance": 7},
                {"text": "   "},
                {"text": "integration from working", "relevance": "4"},
                {"text": "a third quote", "relevance": 5},
            ],
            "recommendations": ["Raise limits", 42, "", "Add burst quota", "Publish limits", "Fourth"],
        })

        result = analyzer.analyze(CONTENT, "chunk-1", "Blockers", source_name="Mike Chen")

        assert result.relevance_score == 5
        assert [s.text for s in result.snippets] == [
            "rate limiting is preventing our integration",
            "integration from working",
        ]
        assert [s.relevance for s in result.snippets] == [5, 4]
        assert all(s.chunk_id == "chunk-1" and s.source == "Mike Chen" for s in result.snippets)
        assert result.recommendations == ["Raise limits", "Add burst quota", "Publish limits"]

    def test_snippet_relevance_defaults_to_three(self):
        result = analyzer_returning({"relevance_score": 4, "snippets": [{"text": "quote"}]}).analyze(CONTENT, "c", "Blockers")
        assert result.snippets[0].relevance == 3
        assert result.snippets[0].source is None

    @pytest.mark.parametrize("raw_score, expected", [(None, 0), ("4", 4), (9, 5), (-2, 0), ("high", 0), (3.7, 3)])
    def test_score_is_clamped_integer(self, raw_score, expected):
        payload = {"snippets": [], "recommendations": []}
        if raw_score is not None:
            payload["relevance_score"] = raw_score
        result = analyzer_returning(payload).analyze(CONTENT, "c", "Blockers")
        assert result.relevance_score == expected
        assert isinstance(result.relevance_score, int)

    def test_prose_wrapped_json(self):
        text = 'Here is my analysis:\n```json\n{"relevance_score": 4, "snippets": [], "recommendations": ["Do X"]}\n```'
        result = analyzer_returning(text).analyze(CONTENT, "c", "Customer Requests")
        assert result.relevance_score == 4
        assert result.recommendations == ["Do X"]

    def test_prompt_is_topic_specific(self):
        gateway = StubGateway()
        TopicAnalyzer(gateway=gateway).analyze(CONTENT, "c", "Blockers")
        (prompt,) = gateway.prompts
        assert "IMPLEMENTATION BLOCKERS" in prompt
        assert CONTENT in prompt

    @pytest.mark.parametrize("error", [
        LLMTimeoutError("timeout"),
        ProviderError("503"),
        ConfigurationError("no key"),
    ])
    def test_gateway_failures_give_zero_result(self, error):
        result = analyzer_raising(error).analyze(CONTENT, "c", "Blockers")
        assert result.relevance_score == 0
        assert result.snippets == []
        assert result.recommendations == []

    def test_unparsable_output_gives_zero_result(self):
        result = analyzer_returning("I think this is about blockers, score 5").analyze(CONTENT, "c", "Blockers")
        assert result.relevance_score == 0

    def test_unknown_topic_does_not_call_llm(self):
        gateway = StubGateway()
        result = TopicAnalyzer(gateway=gateway).analyze(CONTENT, "c", "Praise")
        assert result.relevance_score == 0
        assert gateway.prompts == []

    def test_missing_configuration_gives_zero_result(self):
        with patch(
            "feedback_insights.services.topic_analyzer.LLMManager.from_env",
            side_effect=ConfigurationError("Anthropic requires ANTHROPIC_API_KEY."),
        ):
            result = TopicAnalyzer().analyze(CONTENT, "c", "Blockers")
        assert result.relevance_score == 0
