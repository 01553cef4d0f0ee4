"""Technician scoring for automatic assignment."""

from fixflow.assignment.scorer import (
    Ranking,
    haversine_km,
    rank_candidates,
    score_candidate,
)

__all__ = [
    "Ranking",
    "haversine_km",
    "rank_candidates",
    "score_candidate",
]
