# src/consolidation/merge_groups.py — v1
"""Merge-group builder — stage 2 of theme consolidation.

Single-pass greedy clustering anchored on the first unassigned theme: each
group is seeded by the next unassigned theme in input order and collects
every later unassigned theme whose score *with the seed* is >= threshold.

The grouping is deliberately not transitive: if A~B and B~C but not A~C,
C only joins A's group when compared directly against A. Downstream stages
and tests rely on this exact policy.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from themetree.core.models import ConsolidatedTheme, SimilarityRecord, make_pair_key

logger = logging.getLogger(__name__)

DEFAULT_MERGE_THRESHOLD = 0.7


def cluster_by_similarity(
    theme_ids: Sequence[str],
    similarities: Mapping[str, SimilarityRecord],
    threshold: float = DEFAULT_MERGE_THRESHOLD,
) -> list[list[int]]:
    """Cluster theme indices by pairwise score.

    Pairs without a record score 0. Returns clusters as lists of indices
    into ``theme_ids``, in seed order.
    """
    n = len(theme_ids)
    visited = [False] * n
    clusters: list[list[int]] = []

    for i in range(n):
        if visited[i]:
            continue
        cluster = [i]
        visited[i] = True
        for j in range(i + 1, n):
            if visited[j]:
                continue
            record = similarities.get(make_pair_key(theme_ids[i], theme_ids[j]))
            if record is not None and record.combined_score >= threshold:
                cluster.append(j)
                visited[j] = True
        clusters.append(cluster)

    return clusters


def build_merge_groups(
    themes: Sequence[ConsolidatedTheme],
    similarities: Mapping[str, SimilarityRecord],
    threshold: float = DEFAULT_MERGE_THRESHOLD,
) -> list[list[ConsolidatedTheme]]:
    """Partition themes into disjoint merge groups."""
    clusters = cluster_by_similarity([t.id for t in themes], similarities, threshold)
    groups = [[themes[i] for i in cluster] for cluster in clusters]
    logger.info(
        "Merge groups: %d themes -> %d groups (%d multi-member)",
        len(themes), len(groups), sum(1 for g in groups if len(g) > 1),
    )
    return groups
