# src/core/similarity.py — v1
"""Lexical similarity utilities.

Cheap, deterministic scores used to pre-filter pairs before any oracle call:
token Jaccard over theme names and Jaccard overlap of affected-file sets.
Matrix variants compute every pair at once with numpy.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

logger = logging.getLogger(__name__)


def name_tokens(name: str) -> set[str]:
    """Lowercased whitespace tokens of a name."""
    return set(name.lower().split())


def jaccard(a: set[str], b: set[str]) -> float:
    """Jaccard index of two sets; 0.0 when both are empty."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def name_similarity(name_a: str, name_b: str) -> float:
    return jaccard(name_tokens(name_a), name_tokens(name_b))


def file_overlap(files_a: Sequence[str], files_b: Sequence[str]) -> float:
    return jaccard(set(files_a), set(files_b))


def jaccard_matrix(sets: Sequence[set[str]]) -> np.ndarray:
    """Compute the pairwise Jaccard matrix of a list of sets.

    Builds a binary incidence matrix (sets x vocabulary) so intersections are
    a single matrix product.

    Returns:
        Matrix of shape (n, n) with values in [0, 1]. Pairs of empty sets
        score 0.
    """
    n = len(sets)
    if n == 0:
        return np.empty((0, 0), dtype=np.float64)

    vocab: dict[str, int] = {}
    for s in sets:
        for item in s:
            vocab.setdefault(item, len(vocab))

    incidence = np.zeros((n, max(len(vocab), 1)), dtype=np.float64)
    for row, s in enumerate(sets):
        for item in s:
            incidence[row, vocab[item]] = 1.0

    intersection = incidence @ incidence.T
    sizes = incidence.sum(axis=1)
    union = sizes[:, None] + sizes[None, :] - intersection
    with np.errstate(divide="ignore", invalid="ignore"):
        result = np.where(union > 0, intersection / union, 0.0)
    return result


def name_similarity_matrix(names: Sequence[str]) -> np.ndarray:
    return jaccard_matrix([name_tokens(n) for n in names])


def file_overlap_matrix(file_lists: Sequence[Sequence[str]]) -> np.ndarray:
    return jaccard_matrix([set(files) for files in file_lists])
