"""Dynamic time warping between feature sequences.

Exact alignment with configurable step patterns and an optional
Sakoe-Chiba band, FastDTW approximation with band-limited refinement
around a projected coarse path, pairwise distance matrices, and
medoid-based clustering.

Feature sequences are ``(n_frames, n_features)`` arrays; a 1-D input is
treated as ``(n_frames, 1)``.
"""

from __future__ import annotations

import logging
import math
import os
import threading
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass

import numpy as np
from scipy.spatial.distance import cdist

from loopmeter.analysis.models import AlignmentResult, ClusterAssignment
from loopmeter.analysis.progress import raise_if_cancelled
from loopmeter.exceptions import DegenerateSequence, DimensionMismatch

logger = logging.getLogger(__name__)

METRICS = ("euclidean", "manhattan", "cosine")
DEFAULT_STEPS: tuple[tuple[int, int], ...] = ((1, 1), (1, 0), (0, 1))

# (lo, hi) inclusive column range of the local cost matrix allowed in each row
Window = list[tuple[int, int]]


@dataclass(frozen=True)
class AlignOptions:
    """Alignment configuration.

    ``step_sizes`` are (row, column) advances; on exactly equal cost the
    first listed step wins during backtracking. ``weights_add`` adds a fixed
    penalty per step (zeros by default). With ``global_constraint`` set,
    only cells with ``|i/n - j/m| <= band_rad`` are evaluated.
    """
    metric: str = "euclidean"
    step_sizes: tuple[tuple[int, int], ...] = DEFAULT_STEPS
    weights_add: tuple[float, ...] | None = None
    global_constraint: bool = False
    band_rad: float = 0.25
    backtrack: bool = True

    def __post_init__(self):
        if self.metric not in METRICS:
            raise ValueError(f"Unknown metric {self.metric!r}, expected one of {METRICS}")
        if not self.step_sizes:
            raise ValueError("At least one step is required")
        for di, dj in self.step_sizes:
            if di < 0 or dj < 0 or (di == 0 and dj == 0):
                raise ValueError(f"Invalid step ({di}, {dj})")
        if self.weights_add is not None and len(self.weights_add) != len(self.step_sizes):
            raise ValueError("weights_add must have one weight per step")
        if self.band_rad < 0:
            raise ValueError(f"band_rad must be non-negative, got {self.band_rad}")

    @property
    def weights(self) -> tuple[float, ...]:
        if self.weights_add is None:
            return (0.0,) * len(self.step_sizes)
        return tuple(float(w) for w in self.weights_add)


def as_feature_sequence(X) -> np.ndarray:
    """Coerce *X* to a 2-D float array ``(n_frames, n_features)``."""
    try:
        arr = np.asarray(X, dtype=np.float64)
    except ValueError as e:
        raise DimensionMismatch(f"Feature vectors differ in dimensionality: {e}") from e
    if arr.ndim == 1:
        arr = arr[:, None]
    if arr.ndim != 2:
        raise DimensionMismatch(f"Expected a sequence of feature vectors, got shape {arr.shape}")
    if arr.shape[0] == 0 or arr.shape[1] == 0:
        raise DegenerateSequence(f"Empty feature sequence (shape {arr.shape})")
    return arr


def _as_pair(X, Y) -> tuple[np.ndarray, np.ndarray]:
    X = as_feature_sequence(X)
    Y = as_feature_sequence(Y)
    if X.shape[1] != Y.shape[1]:
        raise DimensionMismatch(f"Feature dimensions differ: {X.shape[1]} vs {Y.shape[1]}")
    return X, Y


def pairwise_distances(X: np.ndarray, Y: np.ndarray, metric: str = "euclidean") -> np.ndarray:
    """Local cost matrix ``C[i, j] = d(X[i], Y[j])``.

    Cosine distance is ``1 - cosine similarity``; a zero vector has
    similarity 0 to everything.
    """
    if metric == "euclidean":
        return cdist(X, Y, "euclidean")
    if metric == "manhattan":
        return cdist(X, Y, "cityblock")
    if metric == "cosine":
        nx = np.linalg.norm(X, axis=1)[:, None]
        ny = np.linalg.norm(Y, axis=1)[None, :]
        denom = nx * ny
        with np.errstate(divide="ignore", invalid="ignore"):
            sim = np.where(denom > 0, (X @ Y.T) / denom, 0.0)
        return np.clip(1.0 - sim, 0.0, 2.0)
    raise ValueError(f"Unknown metric {metric!r}, expected one of {METRICS}")


def _band_window(n: int, m: int, band_rad: float) -> Window:
    cols = np.arange(1, m + 1) / m
    window = []
    for i in range(1, n + 1):
        allowed = np.flatnonzero(np.abs(i / n - cols) <= band_rad)
        if len(allowed) == 0:
            window.append((0, -1))
        else:
            window.append((int(allowed[0]), int(allowed[-1])))
    return window


def _accumulate(
    X: np.ndarray,
    Y: np.ndarray,
    metric: str,
    steps: tuple[tuple[int, int], ...],
    weights: tuple[float, ...],
    window: Window | None,
    threshold: float = math.inf,
    cancel: threading.Event | None = None,
) -> list[list[float]]:
    """Fill the ``(n+1) x (m+1)`` accumulated cost matrix.

    Cells outside *window* stay at +inf. If *threshold* is finite and every
    cell of a row exceeds it, filling stops and the end cell is left at +inf.
    """
    n, m = len(X), len(Y)
    inf = math.inf
    D = [[inf] * (m + 1) for _ in range(n + 1)]
    D[0][0] = 0.0
    moves = list(zip(steps, weights))

    for i in range(1, n + 1):
        raise_if_cancelled(cancel)
        lo, hi = window[i - 1] if window is not None else (0, m - 1)
        if hi < lo:
            continue
        costs = pairwise_distances(X[i - 1:i], Y[lo:hi + 1], metric)[0].tolist()
        row = D[i]
        row_min = inf
        for j in range(lo + 1, hi + 2):
            best = inf
            for (di, dj), w in moves:
                pi, pj = i - di, j - dj
                if pi < 0 or pj < 0:
                    continue
                prev = D[pi][pj]
                if prev == inf:
                    continue
                if prev + w < best:
                    best = prev + w
            if best < inf:
                row[j] = best + costs[j - 1 - lo]
                if row[j] < row_min:
                    row_min = row[j]
        if row_min > threshold:
            logger.debug(f"Row {i} exceeds threshold {threshold}, stopping early")
            D[n][m] = inf
            break
    return D


def _backtrack(D: list[list[float]], steps, weights) -> list[tuple[int, int]]:
    """Walk back from the end cell choosing the cheapest finite predecessor."""
    i, j = len(D) - 1, len(D[0]) - 1
    if D[i][j] == math.inf:
        return []
    path = [(i - 1, j - 1)]
    moves = list(zip(steps, weights))
    while i > 0 or j > 0:
        best = None
        for (di, dj), w in moves:
            pi, pj = i - di, j - dj
            if pi < 0 or pj < 0 or D[pi][pj] == math.inf:
                continue
            cost = D[pi][pj] + w
            if best is None or cost < best[0]:
                best = (cost, pi, pj)
        if best is None:
            break
        _, i, j = best
        if i > 0 or j > 0:
            path.append((i - 1, j - 1))
    path.reverse()
    return path


def _run(
    X: np.ndarray,
    Y: np.ndarray,
    options: AlignOptions,
    window: Window | None,
    threshold: float = math.inf,
    cancel: threading.Event | None = None,
) -> AlignmentResult:
    n, m = len(X), len(Y)
    D = _accumulate(X, Y, options.metric, options.step_sizes, options.weights, window, threshold, cancel)
    distance = D[n][m]
    if distance == math.inf:
        logger.warning(f"End cell unreachable for {n}x{m} alignment under the given constraints")
    path = _backtrack(D, options.step_sizes, options.weights) if options.backtrack else []
    return AlignmentResult(
        distance=distance,
        normalized_distance=distance / (n + m),
        cost_matrix=np.array(D),
        path=path,
    )


def align(X, Y, options: AlignOptions | None = None, cancel: threading.Event | None = None) -> AlignmentResult:
    """Optimal DTW alignment of two feature sequences.

    Returns the total cost ``D[n][m]``, the cost normalized by ``n + m``,
    the accumulated cost matrix and (when ``options.backtrack``) the warping
    path from ``(0, 0)`` to ``(n - 1, m - 1)``.

    Raises
    ------
    DegenerateSequence
        If either sequence is empty.
    DimensionMismatch
        If the feature dimensions differ.
    """
    options = options or AlignOptions()
    X, Y = _as_pair(X, Y)
    window = _band_window(len(X), len(Y), options.band_rad) if options.global_constraint else None
    return _run(X, Y, options, window, cancel=cancel)


def _halve(X: np.ndarray) -> np.ndarray:
    """Average adjacent frame pairs; an odd trailing frame is dropped."""
    half = len(X) // 2
    return X[:2 * half].reshape(half, 2, X.shape[1]).mean(axis=1)


def _project_window(path: list[tuple[int, int]], n: int, m: int, radius: int) -> Window:
    """Expand a coarse path to full resolution and widen it by *radius* cells."""
    lo = [m] * n
    hi = [-1] * n
    last_i = max(i for i, _ in path)
    last_j = max(j for _, j in path)
    for ci, cj in path:
        i0, i1 = min(2 * ci, n - 1), min(2 * ci + 1, n - 1)
        j0, j1 = min(2 * cj, m - 1), min(2 * cj + 1, m - 1)
        # The coarse grid drops odd trailing frames, so its last cell covers the tail
        if ci == last_i:
            i1 = n - 1
        if cj == last_j:
            j1 = m - 1
        col_lo = max(0, j0 - radius)
        col_hi = min(m - 1, j1 + radius)
        for i in range(max(0, i0 - radius), min(n - 1, i1 + radius) + 1):
            if col_lo < lo[i]:
                lo[i] = col_lo
            if col_hi > hi[i]:
                hi[i] = col_hi
    return list(zip(lo, hi))


def _fast_align(X, Y, radius, threshold, options, cancel) -> AlignmentResult:
    n, m = len(X), len(Y)
    if n <= radius or m <= radius:
        return _run(X, Y, options, None, threshold, cancel)

    coarse = _fast_align(_halve(X), _halve(Y), radius, math.inf, options, cancel)
    window = _project_window(coarse.path, n, m, radius)
    return _run(X, Y, options, window, threshold, cancel)


def fast_align(
    X,
    Y,
    radius: int = 5,
    threshold: float = math.inf,
    metric: str = "euclidean",
    cancel: threading.Event | None = None,
) -> AlignmentResult:
    """Approximate DTW (FastDTW).

    Sequences no longer than *radius* are aligned exactly. Longer ones are
    halved, aligned recursively, and the coarse path is projected back and
    refined within *radius* cells of it. The result is bounded near the
    coarse solution, not guaranteed optimal.

    If every cell of a full-resolution row exceeds *threshold*, alignment
    stops early and the distance is +inf.
    """
    if radius < 1:
        raise ValueError(f"radius must be at least 1, got {radius}")
    options = AlignOptions(metric=metric)
    X, Y = _as_pair(X, Y)
    return _fast_align(X, Y, radius, threshold, options, cancel)


def _pair_distance(args) -> float:
    X, Y, options = args
    return _run(X, Y, options, None).distance


def _check_sequences(sequences) -> list[np.ndarray]:
    seqs = [as_feature_sequence(s) for s in sequences]
    if not seqs:
        raise DegenerateSequence("No sequences given")
    dims = {s.shape[1] for s in seqs}
    if len(dims) > 1:
        raise DimensionMismatch(f"Sequences have differing feature dimensions: {sorted(dims)}")
    return seqs


def distance_matrix(sequences, metric: str = "cosine", max_workers: int = 1) -> np.ndarray:
    """Symmetric matrix of pairwise DTW distances.

    The diagonal is zero and never computed. With ``max_workers > 1`` the
    pairs are aligned in a process pool capped at the CPU count.
    """
    seqs = _check_sequences(sequences)
    options = AlignOptions(metric=metric, backtrack=False)
    k = len(seqs)
    pairs = [(i, j) for i in range(k) for j in range(i + 1, k)]
    jobs = [(seqs[i], seqs[j], options) for i, j in pairs]

    workers = min(max_workers, os.cpu_count() or 1, len(pairs))
    if workers > 1:
        logger.info(f"Aligning {len(pairs)} pairs with {workers} workers")
        with ProcessPoolExecutor(max_workers=workers) as pool:
            distances = list(pool.map(_pair_distance, jobs, chunksize=max(1, len(jobs) // (workers * 4))))
    else:
        distances = [_pair_distance(job) for job in jobs]

    matrix = np.zeros((k, k))
    for (i, j), d in zip(pairs, distances):
        matrix[i, j] = d
        matrix[j, i] = d
    return matrix


def _assign(dist: np.ndarray, medoids: list[int]) -> list[int]:
    assignments = []
    for i in range(len(dist)):
        if i in medoids:
            assignments.append(medoids.index(i))
        else:
            assignments.append(int(np.argmin(dist[i, medoids])))
    return assignments


def cluster_by_distance(
    sequences,
    k: int = 3,
    max_iterations: int = 10,
    metric: str = "euclidean",
    seed: int | None = 0,
    stop_when_stable: bool = False,
    max_workers: int = 1,
) -> ClusterAssignment:
    """k-medoids clustering with DTW distance.

    Cluster centers are medoids (the member with the least total distance to
    the other members), since variable-length sequences have no mean.
    Initial medoids are drawn without replacement from a seeded generator.
    Each iteration assigns every sequence to its nearest medoid, then
    re-picks each cluster's medoid; an empty cluster keeps its medoid.
    Runs *max_iterations* times unless *stop_when_stable* is set and the
    medoids stop changing. Assignments are returned for the final medoids.
    """
    seqs = _check_sequences(sequences)
    n = len(seqs)
    if not 1 <= k <= n:
        raise ValueError(f"k must be between 1 and {n}, got {k}")
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be positive, got {max_iterations}")

    dist = distance_matrix(seqs, metric=metric, max_workers=max_workers)
    rng = np.random.default_rng(seed)
    medoids = [int(i) for i in rng.choice(n, size=k, replace=False)]

    for iteration in range(max_iterations):
        assignments = _assign(dist, medoids)
        new_medoids = []
        for c in range(k):
            members = [i for i, a in enumerate(assignments) if a == c]
            if not members:
                new_medoids.append(medoids[c])
                continue
            totals = dist[np.ix_(members, members)].sum(axis=1)
            new_medoids.append(members[int(np.argmin(totals))])
        stable = new_medoids == medoids
        medoids = new_medoids
        if stable and stop_when_stable:
            logger.debug(f"Medoids stable after {iteration + 1} iterations")
            break

    assignments = _assign(dist, medoids)
    members = [[i for i, a in enumerate(assignments) if a == c] for c in range(k)]
    return ClusterAssignment(medoids=medoids, assignments=assignments, members=members)
