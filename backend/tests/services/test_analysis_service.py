import json
import time
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from conftest import StubGateway, ZERO_RESULT, topic_of_prompt
from feedback_insights.core.llm import ConfigurationError
from feedback_insights.core.topics import TOPICS
from feedback_insights.db.session import StorageError
from feedback_insights.models.insight import LLMInsight
from feedback_insights.schemas.insight import ProgressEvent, Snippet
from feedback_insights.services.analysis_service import (
    NO_DATA_MESSAGE, AnalysisService, BatchOrchestrator, TopicAccumulator, stream_in_background,
)
from feedback_insights.services.topic_analyzer import TopicAnalysisResult, TopicAnalyzer

BLOCKER_TEXT = "The API rate limiting is preventing our integration from working properly"
BLOCKER_RESPONSE = {
    "relevance_score": 5,
    "snippets": [{"text": BLOCKER_TEXT, "relevance": 5}],
    "recommendations": ["Increase rate limit tiers for enterprise customers"],
}


def long_text(label):
    return f"{label}: this feedback is long enough to be analysed by the topic analyzer."


def result(topic, chunk_id, score, snippets=(), recommendations=()):
    return TopicAnalysisResult(
        topic=topic,
        chunk_id=chunk_id,
        relevance_score=score,
        snippets=[Snippet(text=text, chunk_id=chunk_id, relevance=rel) for text, rel in snippets],
        recommendations=list(recommendations),
    )


class ScriptedAnalyzer:
    """Returns scripted results per (chunk_id, topic); raises for pairs listed in `fail`."""

    def __init__(self, script=None, fail=()):
        self.script = script or {}
        self.fail = set(fail)
        self.calls = []

    def get_gateway(self):
        return None

    def analyze(self, chunk_content, chunk_id, topic, source_name=None):
        self.calls.append((chunk_id, topic))
        if (chunk_id, topic) in self.fail:
            raise RuntimeError(f"injected failure for {chunk_id}/{topic}")
        return self.script.get((chunk_id, topic)) or TopicAnalysisResult.zero(topic, chunk_id)


def chunk(chunk_id, content=None):
    return SimpleNamespace(id=chunk_id, content=content or long_text(chunk_id))


def orchestrator(analyzer, **kwargs):
    kwargs.setdefault("sleep", Mock())
    return BatchOrchestrator(analyzer, **kwargs)


class TestTopicAccumulator:

    def test_zero_score_contributes_nothing(self):
        acc = TopicAccumulator("Blockers")
        acc.add(result("Blockers", "c1", 0, [("q", 5)], ["r"]), threshold=4)
        assert acc.total_score == 0 and acc.snippets == [] and acc.recommendations == []

    def test_below_threshold_score_adds_recommendations_but_no_snippets(self):
        acc = TopicAccumulator("Blockers")
        acc.add(result("Blockers", "c1", 3, [("q", 5)], ["r1"]), threshold=4)
        assert acc.total_score == 3
        assert acc.mention_count == 1
        assert acc.snippets == []
        assert acc.recommendations == ["r1"]
        assert acc.finalize(threshold=4, max_recommendations=3) is None

    def test_finalize_filters_sorts_and_caps(self):
        acc = TopicAccumulator("Pain Points")
        acc.add(result("Pain Points", "c1", 5, [("low", 3), ("four", 4)], ["a", "b"]), threshold=4)
        acc.add(result("Pain Points", "c2", 4, [("five", 5)], ["b", "c", "d"]), threshold=4)

        insight = acc.finalize(threshold=4, max_recommendations=3)

        assert [s.text for s in insight.snippets] == ["five", "four"]
        assert insight.total_mentions == len(insight.snippets) == 2
        assert insight.recommendations == ["a", "b", "c"]
        assert insight.summary.startswith("Customer pain point analysis reveals")


class TestBatchOrchestrator:

    def test_blockers_scenario(self):
        def responder(prompt):
            return json.dumps(BLOCKER_RESPONSE) if topic_of_prompt(prompt) == "Blockers" else ZERO_RESULT

        orch = orchestrator(TopicAnalyzer(gateway=StubGateway(responder)))
        insights = orch.run(orch.select_chunks([chunk("chunk-1", BLOCKER_TEXT)]))

        assert [i.topic for i in insights] == ["Blockers"]
        blockers = insights[0]
        assert blockers.total_mentions == 1
        assert blockers.snippets[0].text == BLOCKER_TEXT
        assert blockers.snippets[0].chunk_id == "chunk-1"
        assert blockers.recommendations == ["Increase rate limit tiers for enterprise customers"]

    def test_every_chunk_is_analysed_for_every_topic(self):
        analyzer = ScriptedAnalyzer()
        orchestrator(analyzer).run([chunk("a"), chunk("b")])
        assert sorted(analyzer.calls) == sorted((c, t) for c in ("a", "b") for t in TOPICS)

    def test_fault_isolation(self):
        script = {
            ("a", "Pain Points"): result("Pain Points", "a", 5, [("a pain", 5)], ["fix a"]),
            ("b", "Pain Points"): result("Pain Points", "b", 5, [("b pain", 4)], ["fix b"]),
            ("b", "Blockers"): result("Blockers", "b", 4, [("b blocker", 4)], ["unblock"]),
        }
        baseline = orchestrator(ScriptedAnalyzer(script)).run([chunk("a"), chunk("b")])
        faulty = orchestrator(ScriptedAnalyzer(script, fail={("a", "Pain Points")})).run([chunk("a"), chunk("b")])

        baseline_by_topic = {i.topic: i for i in baseline}
        faulty_by_topic = {i.topic: i for i in faulty}
        assert faulty_by_topic["Blockers"] == baseline_by_topic["Blockers"]
        assert [s.text for s in faulty_by_topic["Pain Points"].snippets] == ["b pain"]
        assert faulty_by_topic["Pain Points"].recommendations == ["fix b"]

    def test_output_sorted_by_mentions_with_stable_ties(self):
        script = {
            ("a", "Solution Feedback"): result("Solution Feedback", "a", 5, [("s1", 5), ("s2", 5)]),
            ("a", "Blockers"): result("Blockers", "a", 5, [("b1", 4)]),
            ("a", "Pain Points"): result("Pain Points", "a", 5, [("p1", 4)]),
        }
        insights = orchestrator(ScriptedAnalyzer(script)).run([chunk("a")])
        assert [i.topic for i in insights] == ["Solution Feedback", "Pain Points", "Blockers"]
        for insight in insights:
            assert insight.total_mentions == len(insight.snippets)

    def test_batches_and_pauses(self):
        sleep = Mock()
        orch = orchestrator(ScriptedAnalyzer(), batch_size=3, pause_seconds=0.1, sleep=sleep)
        orch.run([chunk(f"c{i}") for i in range(7)])
        assert sleep.call_count == 2
        sleep.assert_called_with(0.1)

    def test_select_chunks_caps_and_drops_short(self):
        orch = orchestrator(ScriptedAnalyzer(), max_chunks=3, min_chunk_length=50)
        chunks = [chunk("a"), chunk("short", "too short"), chunk("b"), chunk("c")]
        assert [c.id for c in orch.select_chunks(chunks)] == ["a", "b"]

    def test_iter_run_progress_frames(self):
        orch = orchestrator(ScriptedAnalyzer(), batch_size=3)
        events = orch.iter_run([chunk(f"c{i}") for i in range(6)])
        frames = []
        while True:
            try:
                frames.append(next(events))
            except StopIteration as stop:
                insights = stop.value
                break

        assert insights == []
        assert [f.type for f in frames] == ["progress", "progress", "keepalive", "progress", "progress"]
        assert [f.progress for f in frames if f.type == "progress"] == [30, 60, 60, 90]


@pytest.fixture
def blocker_gateway():
    def responder(prompt):
        return json.dumps(BLOCKER_RESPONSE) if topic_of_prompt(prompt) == "Blockers" else ZERO_RESULT
    return StubGateway(responder)


@pytest.fixture
def service(blocker_gateway):
    analyzer = TopicAnalyzer(gateway=blocker_gateway)
    return AnalysisService(analyzer=analyzer, orchestrator=BatchOrchestrator(analyzer, sleep=Mock()))


class TestRunAnalysis:

    def test_no_chunks_returns_demo(self, db, service, blocker_gateway):
        response = service.run_analysis(db)
        assert response.isDemo is True
        assert blocker_gateway.prompts == []

    def test_analyses_and_persists(self, db, add_chunk, service):
        add_chunk("chunk-1", BLOCKER_TEXT)

        response = service.run_analysis(db)

        assert response.isDemo is False
        assert response.source == "processed_chunks"
        assert [c.model_dump() for c in response.chartData] == [{"name": "Blockers", "value": 1}]
        types = sorted(r.insight_type for r in db.query(LLMInsight).all())
        assert types == ["blockers_quote", "blockers_recommendation", "blockers_summary"]

    def test_second_call_reads_stored_results(self, db, add_chunk, service, blocker_gateway):
        add_chunk("chunk-1", BLOCKER_TEXT)
        first = service.run_analysis(db)
        calls = len(blocker_gateway.prompts)

        second = service.run_analysis(db)

        assert len(blocker_gateway.prompts) == calls
        assert second.source == "database_insights"
        assert second.chartData == first.chartData
        assert second.insights[0].snippets[0].text == BLOCKER_TEXT

    def test_refresh_does_not_inflate_counts(self, db, add_chunk, service):
        add_chunk("chunk-1", BLOCKER_TEXT)
        service.run_analysis(db)
        service.run_analysis(db, refresh=True)

        assert db.query(LLMInsight).filter(LLMInsight.insight_type == "blockers_quote").count() == 2
        view = service.run_analysis(db)
        assert view.source == "database_insights"
        assert view.insights[0].total_mentions == 1

    def test_large_dataset_without_stored_results_returns_demo(self, db, add_chunk, service, blocker_gateway):
        for i in range(31):
            add_chunk(f"chunk-{i}", long_text(str(i)))
        response = service.run_analysis(db)
        assert response.isDemo is True
        assert blocker_gateway.prompts == []

    def test_missing_configuration_returns_demo(self, db, add_chunk):
        add_chunk("chunk-1", BLOCKER_TEXT)
        analyzer = Mock(spec=TopicAnalyzer)
        analyzer.get_gateway.side_effect = ConfigurationError("Anthropic requires ANTHROPIC_API_KEY.")
        service = AnalysisService(analyzer=analyzer, orchestrator=BatchOrchestrator(analyzer, sleep=Mock()))

        assert service.run_analysis(db).isDemo is True
        analyzer.analyze.assert_not_called()

    def test_no_qualifying_topics_returns_demo_and_stores_nothing(self, db, add_chunk):
        add_chunk("chunk-1", long_text("neutral"))
        analyzer = TopicAnalyzer(gateway=StubGateway())
        service = AnalysisService(analyzer=analyzer, orchestrator=BatchOrchestrator(analyzer, sleep=Mock()))

        assert service.run_analysis(db).isDemo is True
        assert db.query(LLMInsight).count() == 0


class TestStreamAnalysis:

    def test_success_frames(self, db, add_chunk, service, session_factory):
        add_chunk("chunk-1", BLOCKER_TEXT)

        frames = list(service.stream_analysis(session_factory))

        assert frames[0].progress == 0
        assert frames[-1].type == "complete"
        assert frames[-1].progress == 100
        assert frames[-1].data.insights[0].topic == "Blockers"
        progress = [f.progress for f in frames if f.type == "progress"]
        assert progress == sorted(progress)
        assert 95 in progress
        assert db.query(LLMInsight).filter(LLMInsight.insight_type == "blockers_summary").count() == 1

    def test_no_data(self, service, session_factory):
        frames = list(service.stream_analysis(session_factory))
        assert [f.progress for f in frames[:-1]] == [0, 10]
        assert frames[-1].type == "error"
        assert frames[-1].message == NO_DATA_MESSAGE

    def test_missing_configuration(self, add_chunk, session_factory):
        add_chunk("chunk-1", BLOCKER_TEXT)
        analyzer = Mock(spec=TopicAnalyzer)
        analyzer.get_gateway.side_effect = ConfigurationError("Anthropic requires ANTHROPIC_API_KEY.")
        service = AnalysisService(analyzer=analyzer, orchestrator=BatchOrchestrator(analyzer, sleep=Mock()))

        frames = list(service.stream_analysis(session_factory))

        assert frames[-1].type == "error"
        assert frames[-1].message.startswith("LLM provider not configured")

    def test_database_error(self, service, session_factory):
        service.chunks = Mock()
        service.chunks.list_chunks.side_effect = StorageError("connection refused")

        frames = list(service.stream_analysis(session_factory))

        assert frames[-1].type == "error"
        assert frames[-1].message == "Database error: connection refused"


class TestStreamInBackground:

    def test_relays_frames_and_inserts_keepalives(self):
        def slow_events():
            yield ProgressEvent(type="progress", message="start", progress=0)
            time.sleep(0.3)
            yield ProgressEvent(type="complete", message="done", progress=100)

        frames = list(stream_in_background(slow_events(), keepalive_seconds=0.05))

        assert frames[0].message == "start"
        assert frames[-1].type == "complete"
        assert any(f.type == "keepalive" for f in frames[1:-1])

    def test_exception_becomes_error_frame(self):
        def broken_events():
            yield ProgressEvent(type="progress", message="start", progress=0)
            raise RuntimeError("kaboom")

        frames = list(stream_in_background(broken_events(), keepalive_seconds=1))

        assert frames[-1].type == "error"
        assert "kaboom" in frames[-1].message
