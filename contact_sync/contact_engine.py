"""
Contact Sync — Contact Score Engine.

Owns the coupling scores of a data set and derives the views the contact
map and the 3-D viewer need from them.

Pipeline:
    pre-parsed score rows (+ residue mapping table)
        → CouplingScore records in structure numbering
        → ContactContainer (insertion-ordered, one score per residue pair)
        → classify():            observed / unobserved partition
        → ranked_predictions():  top-N predicted / correct partition

Ranking is always a derived view. The container never reorders its
storage; callers that want rank-by-confidence pre-sort with
``rank_by_confidence`` before building the view.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from contact_sync.residue_mapping import (
    DataConsistencyError,
    ResidueMapper,
    ResidueMappingEntry,
)
from contact_sync.structures import (
    PROXIMITY_CLOSEST,
    ProteinStructure,
    validate_proximity,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# Constants
# ═══════════════════════════════════════════════════════════════════════

VIEW_OBSERVED: str = "observed"
VIEW_PREDICTED: str = "predicted"
VIEW_BOTH: str = "both"
VIEW_MODES: Tuple[str, ...] = (VIEW_OBSERVED, VIEW_PREDICTED, VIEW_BOTH)

DEFAULT_LINEAR_SEPARATION: int = 5
"""Minimum |i - j| for a pair to count as an informative prediction."""

DEFAULT_MEASURED_DIST_CUTOFF: float = 5.0
"""A pair with dist ≤ this (Å) is an observed contact."""

DEFAULT_CORRECT_CUTOFF: float = 5.0
"""A predicted pair with dist < this (Å) is a correct prediction."""

DEFAULT_MIN_PROBABILITY: float = 0.9
"""Default probability floor for predicted contacts."""

DEFAULT_MIN_SCORE: float = 0.0

PairKey = Tuple[int, int]
ScoreFilter = Callable[["CouplingScore"], bool]


# ═══════════════════════════════════════════════════════════════════════
# Data classes
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class CouplingScore:
    """A coupling score for one residue pair.

    ``dist`` is the measured distance between the pair in the reference
    structure; ``math.inf`` means unmeasured (a pure prediction).
    """
    i: int
    j: int
    score: float = 0.0
    probability: Optional[float] = None
    dist: float = math.inf
    A_i: Optional[str] = None
    A_j: Optional[str] = None

    @property
    def pair_key(self) -> PairKey:
        return (self.i, self.j) if self.i <= self.j else (self.j, self.i)

    @property
    def linear_distance(self) -> int:
        return abs(self.i - self.j)

    def is_observed(self, cutoff: float = DEFAULT_MEASURED_DIST_CUTOFF) -> bool:
        return self.dist <= cutoff

    def renumbered(self, **changes) -> "CouplingScore":
        return replace(self, **changes)


@dataclass
class ContactClassification:
    """Observed / unobserved partition of a container.

    The partition always covers the whole container; ``view_mode`` only
    decides which side is ``visible``.
    """
    observed: List[CouplingScore]
    unobserved: List[CouplingScore]
    view_mode: str
    measured_dist_cutoff: float
    all_scores: List[CouplingScore] = field(default_factory=list, repr=False)

    @property
    def visible(self) -> List[CouplingScore]:
        if self.view_mode == VIEW_OBSERVED:
            return list(self.observed)
        if self.view_mode == VIEW_PREDICTED:
            return list(self.unobserved)
        # Both partitions, in container order.
        return list(self.all_scores) or self.observed + self.unobserved


@dataclass
class PredictionResult:
    """Top-N slice of a container split into predicted and correct.

    ``predicted`` is the whole slice; ``correct`` is accumulated from the
    same slice as its own partition, so the two lengths are independently
    meaningful.
    """
    predicted: List[CouplingScore] = field(default_factory=list)
    correct: List[CouplingScore] = field(default_factory=list)

    @property
    def incorrect(self) -> List[CouplingScore]:
        correct = set(s.pair_key for s in self.correct)
        return [s for s in self.predicted if s.pair_key not in correct]

    @property
    def percent_correct(self) -> float:
        if not self.predicted:
            return 0.0
        return len(self.correct) / len(self.predicted) * 100.0


# ═══════════════════════════════════════════════════════════════════════
# Contact container
# ═══════════════════════════════════════════════════════════════════════


class ContactContainer:
    """Insertion-ordered coupling scores, one per unordered residue pair.

    ``add_score`` is the only mutator. A second score for a pair replaces
    the first in place (last write wins, original slot kept).
    ``chain_length`` is always ``max(i, j)`` over the contained scores.
    """

    def __init__(self, scores: Iterable[CouplingScore] = ()):
        self._scores: Dict[PairKey, CouplingScore] = {}
        self._chain_length = 0
        for score in scores:
            self.add_score(score)

    def add_score(self, score: CouplingScore) -> None:
        self._scores[score.pair_key] = score
        self._chain_length = max(self._chain_length, score.i, score.j)

    @property
    def chain_length(self) -> int:
        return self._chain_length

    @property
    def scores(self) -> List[CouplingScore]:
        return list(self._scores.values())

    def get(self, i: int, j: int) -> Optional[CouplingScore]:
        return self._scores.get((i, j) if i <= j else (j, i))

    def __len__(self) -> int:
        return len(self._scores)

    def __iter__(self) -> Iterator[CouplingScore]:
        return iter(list(self._scores.values()))

    def __contains__(self, pair) -> bool:
        i, j = pair
        return ((i, j) if i <= j else (j, i)) in self._scores

    def __repr__(self) -> str:
        return f"ContactContainer(n={len(self)}, chain_length={self.chain_length})"

    # ── Derived views ──

    def classify(
        self,
        view_mode: str = VIEW_BOTH,
        measured_dist_cutoff: float = DEFAULT_MEASURED_DIST_CUTOFF,
    ) -> ContactClassification:
        """Partition into observed (dist ≤ cutoff) and the complement.

        Parameters
        ----------
        view_mode : str
            'observed', 'predicted' or 'both'; gates ``visible``.
        measured_dist_cutoff : float
            Observation cutoff in Å.

        Returns
        -------
        ContactClassification
        """
        if view_mode not in VIEW_MODES:
            raise ValueError(f"Unknown view mode {view_mode!r}; expected one of {VIEW_MODES}")

        observed: List[CouplingScore] = []
        unobserved: List[CouplingScore] = []
        for score in self._scores.values():
            if score.is_observed(measured_dist_cutoff):
                observed.append(score)
            else:
                unobserved.append(score)

        return ContactClassification(
            observed=observed,
            unobserved=unobserved,
            view_mode=view_mode,
            measured_dist_cutoff=measured_dist_cutoff,
            all_scores=self.scores,
        )

    def ranked_predictions(
        self,
        top_n: int,
        min_linear_separation: int = DEFAULT_LINEAR_SEPARATION,
        filters: Sequence[ScoreFilter] = (),
        correct_cutoff: float = DEFAULT_CORRECT_CUTOFF,
    ) -> PredictionResult:
        """Top-N predictions in container order, split by correctness.

        Parameters
        ----------
        top_n : int
            Maximum number of predictions; ``≤ 0`` gives an empty result.
        min_linear_separation : int
            Pairs with |i - j| below this are dropped first.
        filters : Sequence[ScoreFilter]
            Further predicates, applied conjunctively.
        correct_cutoff : float
            A prediction with dist < this (Å) is correct.

        Returns
        -------
        PredictionResult
        """
        result = PredictionResult()
        if top_n <= 0:
            return result

        filters = [linear_distance_filter(min_linear_separation), *filters]
        for score in self._scores.values():
            if len(result.predicted) >= top_n:
                break
            if not all(f(score) for f in filters):
                continue
            if score.dist < correct_cutoff:
                result.correct.append(score)
            result.predicted.append(score)

        return result


# ═══════════════════════════════════════════════════════════════════════
# Filters and ordering
# ═══════════════════════════════════════════════════════════════════════


def linear_distance_filter(min_separation: int) -> ScoreFilter:
    return lambda score: score.linear_distance >= min_separation


def min_probability_filter(min_probability: float) -> ScoreFilter:
    """Scores without a probability always pass."""
    return lambda score: score.probability is None or score.probability >= min_probability


def min_score_filter(min_score: float) -> ScoreFilter:
    return lambda score: score.score >= min_score


def rank_by_confidence(container: ContactContainer) -> ContactContainer:
    """New container ordered by probability (then score), descending."""
    def _key(score: CouplingScore):
        prob = score.probability if score.probability is not None else -math.inf
        return (prob, score.score)

    return ContactContainer(sorted(container, key=_key, reverse=True))


def with_structure_distances(
    container: ContactContainer,
    structure: ProteinStructure,
    proximity: str = PROXIMITY_CLOSEST,
) -> ContactContainer:
    """New container with every ``dist`` measured in ``structure``.

    Pairs with a residue missing from the structure become unmeasured.
    Container order is preserved.
    """
    validate_proximity(proximity)
    amended = ContactContainer()
    for score in container:
        if structure.has_residues(score.i, score.j):
            dist = structure.residue_distance(score.i, score.j, proximity)
        else:
            dist = math.inf
        amended.add_score(score.renumbered(dist=dist))
    return amended


# ═══════════════════════════════════════════════════════════════════════
# Data-set loading
# ═══════════════════════════════════════════════════════════════════════


def _number(row: dict, key: str, default):
    value = row.get(key, default)
    if value is None or value == "":
        return default
    return float(value)


def score_from_row(row: dict) -> CouplingScore:
    """Narrow one pre-parsed score row into a ``CouplingScore``.

    Accepts the ``coupling_scores.csv`` column names: ``i``, ``j``,
    ``cn`` (or ``score``), ``probability``, ``dist``, ``A_i``, ``A_j``.
    """
    try:
        i, j = row["i"], row["j"]
        if float(i) != int(float(i)) or float(j) != int(float(j)):
            raise ValueError("residue indices must be integers")
        score = _number(row, "cn", None)
        if score is None:
            score = _number(row, "score", 0.0)
        return CouplingScore(
            i=int(float(i)),
            j=int(float(j)),
            score=score,
            probability=_number(row, "probability", None),
            dist=_number(row, "dist", math.inf),
            A_i=row.get("A_i"),
            A_j=row.get("A_j"),
        )
    except (KeyError, TypeError, ValueError, OverflowError) as exc:
        raise DataConsistencyError(f"Malformed coupling score row: {row!r}") from exc


def build_contact_container(
    rows: Iterable[dict],
    mapping: Optional[ResidueMapper] = None,
) -> ContactContainer:
    """Build a container from pre-parsed rows.

    Raises
    ------
    DataConsistencyError
        On the first malformed row or residue mapping miss. No partial
        container is returned.
    """
    container = ContactContainer()
    for row in rows:
        score = score_from_row(row)
        if mapping is not None and len(mapping) > 0:
            score = mapping.map_score(score)
        container.add_score(score)
    return container


class ContactDataSet:
    """The currently loaded coupling scores and residue mapping.

    ``load`` swaps in a new data set only when it is fully consistent; on
    error the previous container and mapper stay in place.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self.container = ContactContainer()
        self.mapper: Optional[ResidueMapper] = None

    @property
    def chain_length(self) -> int:
        return self.container.chain_length

    def load(
        self,
        rows: Iterable[dict],
        mapping_entries: Optional[Iterable[ResidueMappingEntry]] = None,
        name: Optional[str] = None,
    ) -> ContactContainer:
        mapper = ResidueMapper(mapping_entries) if mapping_entries is not None else None
        try:
            container = build_contact_container(rows, mapper)
        except DataConsistencyError:
            logger.error("Rejected data set %r; keeping previous state", name or self.name)
            raise

        self.container = container
        self.mapper = mapper
        if name is not None:
            self.name = name
        logger.info(
            "Loaded data set %r: %d scores, chain length %d",
            self.name, len(container), container.chain_length,
        )
        return container


# ═══════════════════════════════════════════════════════════════════════
# Contact range classification
# ═══════════════════════════════════════════════════════════════════════

CONTACT_RANGES: Tuple[str, ...] = ("local", "short-range", "medium-range", "long-range")


def classify_contact(seq_dist: int) -> str:
    """Classify a contact by sequence separation |i - j|.

    Returns
    -------
    str
        'local' (< 6), 'short-range' (6–11), 'medium-range' (12–23)
        or 'long-range' (≥ 24).
    """
    if seq_dist < 6:
        return "local"
    elif seq_dist < 12:
        return "short-range"
    elif seq_dist < 24:
        return "medium-range"
    else:
        return "long-range"


def classify_contacts(scores: Iterable[CouplingScore]) -> List[str]:
    return [classify_contact(s.linear_distance) for s in scores]


CONTACT_COLORS: Dict[str, str] = {
    "local": "#888888",
    "short-range": "#2196F3",
    "medium-range": "#FF9800",
    "long-range": "#F44336",
}

CONTACT_DESCRIPTIONS: Dict[str, str] = {
    "local": "Near in sequence (|i-j| < 6), carries little fold information",
    "short-range": "Helical turns and hairpins (6 ≤ |i-j| < 12)",
    "medium-range": "Loops and supersecondary packing (12 ≤ |i-j| < 24)",
    "long-range": "Tertiary contacts (|i-j| ≥ 24), the hard part of folding",
}
