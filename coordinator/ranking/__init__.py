"""Candidate ranking: pluggable providers with a deterministic fallback."""
from coordinator.ranking.candidate import Candidate, RankingOutcome
from coordinator.ranking.keyword import keyword_rank
from coordinator.ranking.provider import LLMRankingProvider, RankingProvider, RankingProviderError
from coordinator.ranking.ranker import CandidateRanker

__all__ = [
    "Candidate",
    "CandidateRanker",
    "LLMRankingProvider",
    "RankingOutcome",
    "RankingProvider",
    "RankingProviderError",
    "keyword_rank",
]
