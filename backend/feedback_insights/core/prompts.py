# In backend/core/prompts.py
#
# Prompt templates. Placeholders are substituted literally with str.replace,
# so feedback text containing braces is passed through untouched.

from typing import Any, Dict, Optional, Sequence

from feedback_insights.core.topics import Topic

_ZERO_RESULT = '{"relevance_score": 0, "snippets": [], "recommendations": []}'

TOPIC_PROMPTS: Dict[str, str] = {
    Topic.PAIN_POINTS.value: """Analyze the following customer feedback specifically for EMOTIONAL PAIN POINTS - frustrations, stress, confusion, dissatisfaction, and negative experiences that affect user satisfaction and sentiment. Focus on feelings and experiences, not implementation barriers.

CUSTOMER FEEDBACK:
"{content}"

EMOTIONAL PAIN POINT CRITERIA:
- User frustration and stress (feeling overwhelmed, confused, annoyed)
- Experience quality issues (poor usability, confusing interfaces, time-consuming processes)
- Satisfaction problems (unmet expectations, disappointing outcomes, quality concerns)
- Emotional reactions (anger, disappointment, confusion, feeling stuck)

EXCLUDE technical implementation blockers - focus on how customers FEEL about their experience.

TASKS:
1. Identify emotional pain points and experience quality issues (score 1-5, where 5 = severe emotional frustration clearly expressed, 1 = minor dissatisfaction)
2. If score >= 4, extract 1-2 quotes that show customer frustration, confusion, or negative sentiment
3. Generate 2-3 experience-focused recommendations to improve satisfaction and reduce frustration

RESPONSE FORMAT (JSON only):
{
  "relevance_score": number,
  "snippets": [{"text": "quote expressing frustration or negative experience", "relevance": number}],
  "recommendations": ["specific recommendation to improve user experience and satisfaction"]
}

If no emotional pain points exist, return: """ + _ZERO_RESULT,

    Topic.BLOCKERS.value: """Analyze the following customer feedback specifically for IMPLEMENTATION BLOCKERS - concrete obstacles that prevent customers from completing specific tasks, achieving their goals, or implementing solutions. Focus ONLY on actionable blockers, not general frustrations.

CUSTOMER FEEDBACK:
"{content}"

IMPLEMENTATION BLOCKER CRITERIA:
- Technical barriers preventing task completion (APIs not working, integrations failing, system limitations)
- Process obstacles stopping workflow progression (missing permissions, broken workflows, dependency issues)
- Resource constraints blocking implementation (missing tools, insufficient access, capability gaps)
- System limitations preventing goal achievement (performance bottlenecks, compatibility issues, feature gaps that block specific use cases)

EXCLUDE general complaints, wishes, or pain points that don't prevent specific goal completion.

TASKS:
1. Identify if this feedback contains specific IMPLEMENTATION BLOCKERS (score 1-5, where 5 = critical blocker preventing goal completion, 1 = minor implementation obstacle)
2. If score >= 4, extract 1-2 most specific quotes that describe what the customer CANNOT DO or CANNOT COMPLETE
3. Generate 2-3 precise, technical recommendations to remove these implementation barriers

RESPONSE FORMAT (JSON only):
{
  "relevance_score": number,
  "snippets": [{"text": "quote showing what customer cannot complete/implement", "relevance": number}],
  "recommendations": ["specific technical solution to remove implementation barrier"]
}

If no implementation blockers exist, return: """ + _ZERO_RESULT,

    Topic.CUSTOMER_REQUESTS.value: """Analyze the following customer feedback specifically for EXPLICIT PRODUCT/SERVICE REQUESTS - concrete asks for new features, enhancements, services, or program improvements. Focus ONLY on specific, actionable requests.

CUSTOMER FEEDBACK:
"{content}"

SPECIFIC REQUEST CRITERIA:
- NEW FEATURE REQUESTS: "Please add X feature", "We need Y functionality", "Can you build Z capability"
- FEATURE ENHANCEMENTS: "Improve X by adding Y", "Make Z feature work better", "Upgrade A to include B"
- SERVICE REQUESTS: "Provide X service", "Offer Y support", "Add Z customer service option"
- PROGRAM IMPROVEMENTS: "Add X to the program", "Include Y in the package", "Extend Z offering"
- INTEGRATION REQUESTS: "Connect with X platform", "Add Y integration", "Support Z system"

EXCLUDE: General suggestions, complaints, vague wishes, or conceptual ideas without specific implementation requests.

TASKS:
1. Identify explicit product/service requests (score 1-5, where 5 = specific feature/service request with clear ask, 1 = vague suggestion)
2. If score >= 4, extract 1-2 quotes with the most specific asks (must contain clear "add", "provide", "build", "include" language)
3. Generate 2-3 concrete development/implementation recommendations for the requested features/services

RESPONSE FORMAT (JSON only):
{
  "relevance_score": number,
  "snippets": [{"text": "quote with specific feature/service request", "relevance": number}],
  "recommendations": ["specific implementation plan for requested feature/service"]
}

If no explicit requests exist, return: """ + _ZERO_RESULT,

    Topic.SOLUTION_FEEDBACK.value: """Analyze the following customer feedback specifically for SOLUTION FEEDBACK - feedback on existing solutions, how well current features work, user experience with current offerings.

CUSTOMER FEEDBACK:
"{content}"

TASKS:
1. Determine if this feedback contains genuine solution feedback (score 1-5, where 5 = detailed experience with current solution, 1 = brief mention)
2. If score >= 4, extract 1-2 most insightful quotes about the solution experience
3. Generate 2-3 specific, actionable recommendations to improve the solution based on this feedback

RESPONSE FORMAT (JSON only):
{
  "relevance_score": number,
  "snippets": [{"text": "quote", "relevance": number}],
  "recommendations": ["specific actionable recommendation"]
}

If no solution feedback exists, return: """ + _ZERO_RESULT,
}

HALLUCINATION_PROMPT = """You are evaluating whether a customer insight is grounded in the source content or contains fabricated information.

    # Topic Category: {query}
    # Source Content: {reference}
    # Customer Insight: {response}

Determine if the Customer Insight is factually supported by the Source Content:

- "factual" means the insight accurately reflects information found in the source content
- "hallucinated" means the insight contains claims, details, or implications not supported by the source content

For recommendations and summaries: Be more lenient - they can extrapolate reasonably from the source as long as the core claims are grounded.

For quotes: Must be directly supported by the source content.

Your response must be a single word: either "factual" or "hallucinated"."""

RELEVANCE_PROMPT = """You are evaluating whether a customer insight is correctly categorized under a specific topic category. Here is the data:
    [BEGIN DATA]
    ************
    [Topic Category]: {query}
    ************
    [Customer Insight]: {reference}
    [END DATA]

Evaluate whether the Customer Insight above is correctly categorized under the Topic Category.

Topic Category Definitions:
- "Pain Points": Emotional frustrations, stress, confusion, dissatisfaction, negative experiences, user difficulties, workflow friction, or anything that causes customer discomfort or annoyance
- "Blockers": Technical barriers, implementation obstacles, system limitations, process bottlenecks, missing capabilities, API issues, integration problems, or anything that prevents customers from completing tasks or achieving goals
- "Customer Requests": Explicit asks for new features, enhancements, services, program improvements, integrations, or any specific functionality customers want added or changed
- "Solution Feedback": Feedback on existing solutions, current feature performance, user experience reports, product effectiveness, or opinions about how well current offerings work

Your response must be a single word, either "relevant" or "unrelated",
and should not contain any text or characters aside from that word.
"relevant" means the insight correctly belongs in this topic category.
"unrelated" means the insight does not belong in this topic category."""

GROUPING_PROMPT = """You are analyzing customer feedback quotes to group them into common insights. For each topic category, group related quotes together and create synthesized insight statements.

INSTRUCTIONS:
1. Group similar quotes that express the same underlying insight or concern
2. Create a clear, actionable insight statement for each group (1-2 sentences)
3. Generate 2-3 specific, actionable recommendations for each insight group
4. Each group should contain 2-8 related quotes that support the same insight
5. Insight statements should be specific and actionable, not generic
6. Recommendations should be concrete actions that directly address the grouped insight
7. Focus on the customer's perspective and pain points

TOPIC: {topic}
QUOTES TO ANALYZE:
{quotes}

Please respond with a JSON array of grouped insights in this exact format:
[
  {
    "insight_statement": "Clear, specific insight based on the grouped quotes",
    "quote_indices": [0, 2, 5],
    "recommendations": [
      "Specific actionable recommendation 1 for this insight",
      "Specific actionable recommendation 2 for this insight"
    ]
  },
  {
    "insight_statement": "Another distinct insight from different quotes",
    "quote_indices": [1, 3, 4],
    "recommendations": [
      "Different recommendation 1 for this different insight",
      "Different recommendation 2 for this different insight"
    ]
  }
]

Make sure insight statements are:
- Specific to the customer experience
- Actionable for product teams
- Distinct from each other
- Supported by multiple quotes when possible"""


def _substitute(template: str, values: Dict[str, str]) -> str:
    # Substituted values are never re-scanned, so a value containing
    # "{reference}" stays literal.
    out = template
    markers = {}
    for i, key in enumerate(values):
        marker = f"\x00{i}\x00"
        markers[marker] = values[key]
        out = out.replace("{" + key + "}", marker)
    for marker, value in markers.items():
        out = out.replace(marker, value)
    return out


def render_topic_prompt(topic: str, content: str) -> Optional[str]:
    """Return the analysis prompt for `topic`, or None for an unknown topic."""
    template = TOPIC_PROMPTS.get(topic)
    if template is None:
        return None
    return _substitute(template, {"content": content})


def render_hallucination_prompt(mode: str, reference: str, response: str) -> str:
    return _substitute(HALLUCINATION_PROMPT, {"query": mode, "reference": reference, "response": response})


def render_relevance_prompt(mode: str, reference: str) -> str:
    return _substitute(RELEVANCE_PROMPT, {"query": mode, "reference": reference})


def format_quote_list(quotes: Sequence[Dict[str, Any]]) -> str:
    return "\n".join(
        f'{index}. "{quote.get("text", "")}" (Source: {quote.get("source") or "Unknown"})'
        for index, quote in enumerate(quotes)
    )


def render_grouping_prompt(topic: str, quotes: Sequence[Dict[str, Any]]) -> str:
    return _substitute(GROUPING_PROMPT, {"topic": topic, "quotes": format_quote_list(quotes)})