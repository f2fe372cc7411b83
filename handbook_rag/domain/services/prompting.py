"""System prompt assembly with a strict two-tier citation policy.

Pure functions: the system message depends only on the RetrievalResult and the
policy, so identical input gives byte-identical output.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..errors import RetrievalEmpty
from ..models import ChatMessage, RetrievalResult

REFUSAL_MESSAGE = (
    "I don't have enough information to answer that question. "
    "Please refer to your local church leaders for more specific guidance."
)


@dataclass(frozen=True)
class PromptPolicy:
    """Wording knobs for the system prompt.

    - focus:            one-line description of what the assistant is about
    - primary_label:    how the enumerated passages are introduced
    - secondary_source: the single external source the model may fall back to
    - secondary_label:  human-readable description of that source
    - refusal:          reply required when neither tier has the answer (verbatim)
    """

    focus: str = (
        "You are an AI assistant focused on providing information about The Church of "
        "Jesus Christ of Latter-day Saints, with special emphasis on the Elders Quorum."
    )
    primary_label: str = "Church Handbook excerpts"
    secondary_source: str = "churchofjesuschrist.org"
    secondary_label: str = "Official Church Website"
    refusal: str = REFUSAL_MESSAGE


DEFAULT_POLICY = PromptPolicy()


def format_passages(result: RetrievalResult) -> str:
    """Enumerate passages as ``[i] <text> [Source: <url>]``, 1-indexed in result order."""
    return "\n\n".join(
        f"[{i}] {entry.passage.text} [Source: {entry.passage.url}]"
        for i, entry in enumerate(result.entries, 1)
    )


def build_system_message(
    result: RetrievalResult, policy: PromptPolicy = DEFAULT_POLICY
) -> ChatMessage:
    """Build the single system message for one request.

    Args:
        result: Passages retrieved for the current request only
        policy: Prompt wording (defaults to the handbook policy)

    Returns:
        ChatMessage with role "system"

    Raises:
        RetrievalEmpty: If the result holds no passages (no grounding available)
    """
    if not result.entries:
        raise RetrievalEmpty("cannot build a grounded prompt without passages")

    n = len(result.entries)
    secondary = policy.secondary_source
    content = "\n".join(
        [
            policy.focus,
            "",
            f"PRIMARY SOURCE - {policy.primary_label}:",
            format_passages(result),
            "",
            f"SECONDARY SOURCE - {policy.secondary_label} ({secondary}):",
            "If you cannot find specific information in the excerpts above, you may ONLY "
            f"reference official information from {secondary}.",
            "",
            "RESPONSE GUIDELINES:",
            "1. First, try to answer using the excerpts provided above.",
            "2. If the excerpts don't contain the information, you may provide information "
            f"from {secondary}.",
            "3. Always cite your source:",
            f"   - For excerpts, cite the excerpt number in brackets, from [1] to [{n}]",
            f"   - For the website, cite as [{secondary}]",
            "4. Do not make assumptions or add information from any other source, and never "
            "cite a source that is not listed here.",
            "5. If the information cannot be found in either source, reply exactly: "
            f'"{policy.refusal}"',
        ]
    )
    return ChatMessage(role="system", content=content)


_CITATION = re.compile(r"\[([^\[\]\n]{1,80})\]")


def unapproved_citations(
    answer: str, passage_count: int, policy: PromptPolicy = DEFAULT_POLICY
) -> list[str]:
    """Return bracketed citations in answer that name neither a passage nor the secondary source.

    Markdown links (``[label](href)``) are not citations and are ignored.
    """
    bad: list[str] = []
    for m in _CITATION.finditer(answer):
        if answer[m.end() : m.end() + 1] == "(":
            continue
        label = m.group(1).strip()
        parts = [p.strip() for p in label.split(",")]
        if all(p.isdigit() and 1 <= int(p) <= passage_count for p in parts):
            continue
        if label.lower() == policy.secondary_source.lower():
            continue
        if label not in bad:
            bad.append(label)
    return bad
