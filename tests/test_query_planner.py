from __future__ import annotations

from practice_research.config import QueryStage
from practice_research.models.schemas import SearchContext
from practice_research.services import query_planner


def _context(topic: str = "Node.js error handling", stack: str = "Node.js") -> SearchContext:
    return SearchContext(topic=topic, stack=stack, objective="ship it")


def test_render_template_tolerates_spaces_and_collapses_whitespace():
    rendered = query_planner.render_template(
        "{{ topic }}  {{stack}} {{ keyword }}  {{objective}}",
        SearchContext(topic="react", stack="", objective="fast"),
        keyword="hooks",
    )

    assert rendered == "react hooks fast"


def test_build_queries_renders_templates_in_order():
    stage = QueryStage(templates=["{{topic}} {{stack}} best practices", "{{topic}} testing"], enable_expansion=False)

    queries = query_planner.build_queries(_context(), stage)

    assert queries == [
        "Node.js error handling Node.js best practices",
        "Node.js error handling testing",
    ]


def test_build_queries_appends_extra_keywords_query():
    stage = QueryStage(templates=["{{topic}}"], extra_keywords=["retry", " ", "logging"], enable_expansion=False)

    queries = query_planner.build_queries(_context(), stage)

    assert queries[-1] == "Node.js error handling Node.js retry logging"


def test_expansion_uses_matching_profiles_then_topic_tokens():
    stage = QueryStage(
        stack_profiles={"node|express": ["observability", "api design"], "python": ["typing"]},
        max_expansion_keywords=3,
    )

    keywords = query_planner.build_expansion_keywords(
        SearchContext(topic="Express best practice middleware", stack="Node"),
        stage,
    )

    # "best" and "practice" are stopwords; profile keywords come first
    assert keywords == ["observability", "api design", "express"]


def test_expansion_disabled_by_zero_cap():
    stage = QueryStage(max_expansion_keywords=0)

    assert query_planner.build_expansion_keywords(_context(), stage) == []


def test_build_queries_dedupes_and_caps():
    stage = QueryStage(
        templates=["{{topic}}", "{{topic}}", "{{topic}} {{stack}}"],
        expansion_templates=["{{topic}} {{keyword}}"],
        stack_profiles={},
        max_queries=2,
    )

    queries = query_planner.build_queries(_context(topic="kafka consumers", stack=""), stage)

    assert queries == ["kafka consumers", "kafka consumers kafka"]
