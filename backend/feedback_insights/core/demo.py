# Sample analysis returned when real analysis cannot run (no data yet, LLM
# not configured, or too much data for a synchronous request).

from feedback_insights.schemas.insight import TopicAnalysisResponse

_DEMO_PAYLOAD = {
    "isDemo": True,
    "source": "demo",
    "chartData": [
        {"name": "Pain Points", "value": 2},
        {"name": "Customer Requests", "value": 2},
    ],
    "insights": [
        {
            "topic": "Pain Points",
            "summary": "Customer pain point analysis reveals some key insights in this area.",
            "snippets": [
                {"text": "The system is slow and often times out during peak hours", "chunk_id": "demo-1", "relevance": 5, "source": "Sarah Johnson"},
                {"text": "I struggle with the confusing navigation and cant find basic features", "chunk_id": "demo-2", "relevance": 4, "source": "Mike Chen"},
            ],
            "recommendations": [
                "Optimize server performance and implement load balancing for peak hour traffic",
                "Redesign navigation with user-centric information architecture and usability testing",
            ],
            "total_mentions": 2,
        },
        {
            "topic": "Customer Requests",
            "summary": "Feature request analysis indicates some key insights in this area.",
            "snippets": [
                {"text": "Please add batch processing so I can handle multiple files at once", "chunk_id": "demo-3", "relevance": 5, "source": "David Kim"},
                {"text": "Integration with Slack would make our workflow so much smoother", "chunk_id": "demo-4", "relevance": 4, "source": "Rachel Green"},
            ],
            "recommendations": [
                "Develop batch processing functionality for file uploads and operations",
                "Build Slack integration for workflow notifications and team collaboration",
            ],
            "total_mentions": 2,
        },
    ],
}


def demo_response() -> TopicAnalysisResponse:
    """A fresh copy of the demo analysis."""
    return TopicAnalysisResponse.model_validate(_DEMO_PAYLOAD)
