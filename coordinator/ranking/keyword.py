"""Deterministic keyword-overlap ranking, used when the provider is unavailable."""
from __future__ import annotations

from typing import List, Sequence, Set
import re

from coordinator.catalog import ServiceDescriptor
from coordinator.ranking.candidate import Candidate

TOKEN_RE = re.compile(r"[a-z0-9]+")

STOP_WORDS = frozenset({
    "a", "an", "and", "are", "at", "be", "by", "can", "do", "for", "from",
    "get", "give", "how", "i", "in", "is", "it", "me", "my", "of", "on",
    "or", "please", "show", "the", "to", "what", "with", "you",
})


def tokenize(text: str) -> Set[str]:
    return {token for token in TOKEN_RE.findall(text.lower()) if token not in STOP_WORDS}


def keyword_rank(
    query: str,
    services: Sequence[ServiceDescriptor],
    limit: int = 10,
    include_unmatched: bool = False,
) -> List[Candidate]:
    """Score services by the share of query tokens found in their capability tags.

    Ties keep catalog registration order (``sorted`` is stable).
    """
    query_tokens = tokenize(query)
    scored = []
    unmatched = []
    for service in services:
        matched = []
        tag_tokens: Set[str] = set()
        for capability in service.capabilities:
            cap_tokens = tokenize(capability)
            if cap_tokens & query_tokens:
                matched.append(capability)
            tag_tokens |= cap_tokens
        overlap = query_tokens & tag_tokens
        if not overlap:
            unmatched.append(service)
            continue
        confidence = round(len(overlap) / len(query_tokens), 4)
        scored.append(Candidate(
            service_name=service.name,
            confidence=confidence,
            rationale=f"Keyword matching: capability match: {', '.join(matched)}",
        ))
    ranked = sorted(scored, key=lambda item: item.confidence, reverse=True)
    if include_unmatched:
        ranked.extend(
            Candidate(
                service_name=service.name,
                confidence=0.0,
                rationale="No keyword match, included for cascading fallback",
            )
            for service in unmatched
        )
    return ranked[:limit]
