from __future__ import annotations

from practice_research.models.schemas import (
    CollectedResult,
    EvidenceLink,
    PromptDrafts,
    ReportSummary,
    SearchContext,
)
from practice_research.services.enricher import build_evidence_chain

HIGHLIGHT_COUNT = 5
PROMPT_LINK_COUNT = 5
PROMPT_EVIDENCE_COUNT = 3


def generate_highlights(results: list[CollectedResult]) -> list[str]:
    return [
        f"{index}. {item.title} ({item.domain}, score {item.total_score:.2f})"
        for index, item in enumerate(results[:HIGHLIGHT_COUNT], start=1)
    ]


def generate_recommendations(results: list[CollectedResult]) -> list[str]:
    has_official = any(item.source_tier == "official" for item in results)
    has_community = any(item.source_tier != "official" for item in results)

    recommendations: list[str] = []
    if has_official:
        recommendations.append(
            "Prioritize constraints, API boundaries and upgrade guidance from the official documentation"
        )
    if has_community:
        recommendations.append(
            "Cross-check highly voted community advice against the official guidance before adopting it"
        )
    recommendations.append(
        "Write failure-mode tests and a regression checklist before implementing, not just the happy path"
    )
    return recommendations


def generate_prompt_draft(
    context: SearchContext,
    results: list[CollectedResult],
    evidence_chain: list[EvidenceLink],
) -> str:
    top_links = [f"- {item.title} ({item.url})" for item in results[:PROMPT_LINK_COUNT]]
    evidence_lines = [
        f"{index}. {item.excerpt} ({item.url})"
        for index, item in enumerate(evidence_chain[:PROMPT_EVIDENCE_COUNT], start=1)
    ]

    return "\n".join(
        [
            "You are a senior full-stack engineer. Implement the requirement using the vetted references below.",
            f"Topic: {context.topic}",
            f"Stack: {context.stack or 'unspecified'}",
            f"Objective: {context.objective}",
            "",
            "References (ranked by quality):",
            *top_links,
            "",
            "Evidence excerpts:",
            *(evidence_lines or ["No page evidence yet; draft an initial plan from the links above"]),
            "",
            "Output requirements:",
            "1) Propose a minimal viable implementation, including its boundaries",
            "2) List the Do's and Don'ts",
            "3) Provide a test and regression checklist",
            "4) Call out version compatibility risks",
        ]
    )


def build_summary(results: list[CollectedResult]) -> ReportSummary:
    evidence_chain = build_evidence_chain(results, max_items=5, max_evidence_per_item=1)
    return ReportSummary(
        highlights=generate_highlights(results),
        recommendations=generate_recommendations(results),
        evidence_chain=evidence_chain,
    )


def build_prompts(
    context: SearchContext,
    results: list[CollectedResult],
    summary: ReportSummary,
    *,
    include_prompt_draft: bool,
) -> PromptDrafts:
    if not include_prompt_draft:
        return PromptDrafts()
    draft = generate_prompt_draft(context, results, summary.evidence_chain)
    return PromptDrafts(codex=draft, claude=draft)
