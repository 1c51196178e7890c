"""
Contact Sync — Analysis Pipelines.

High-level analysis functions that wrap the contact score engine
to produce rich, annotated results for CLI and Streamlit output.
"""

from __future__ import annotations

import textwrap
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from contact_sync.contact_engine import (
    CONTACT_DESCRIPTIONS,
    CONTACT_RANGES,
    DEFAULT_CORRECT_CUTOFF,
    DEFAULT_LINEAR_SEPARATION,
    DEFAULT_MEASURED_DIST_CUTOFF,
    DEFAULT_MIN_PROBABILITY,
    DEFAULT_MIN_SCORE,
    VIEW_BOTH,
    ContactClassification,
    ContactDataSet,
    PredictionResult,
    classify_contacts,
    min_probability_filter,
    min_score_filter,
    with_structure_distances,
)
from contact_sync.structures import (
    PROXIMITY_CLOSEST,
    ProteinStructure,
    get_preset_proteins,
    simulate_coupling_rows,
    simulate_residue_mapping,
)


DEFAULT_SWEEP_FRACTIONS: Sequence[float] = (0.25, 0.5, 1.0, 2.0, 3.0)
"""Top-N values as multiples of the chain length L: L/4, L/2, L, 2L, 3L."""


# ═══════════════════════════════════════════════════════════════════════
# Analysis dataclasses
# ═══════════════════════════════════════════════════════════════════════


@dataclass
class PredictionAnalysis:
    """Contact prediction quality for one data set.

    Attributes
    ----------
    dataset_name : str
    chain_length : int
        L, the largest residue number in the scores.
    top_n : int
        Number of predictions requested.
    min_linear_separation : int
    min_probability : float
    measured_dist_cutoff : float
        Å; also the correctness cutoff.
    classification : ContactClassification
        Observed / unobserved partition of the whole data set.
    prediction : PredictionResult
        Top-N predicted and correct contacts.
    percent_correct : float
    range_counts : Dict[str, int]
        Predicted contacts per sequence-separation range.
    range_precision : Dict[str, float]
        Percent correct within each range (0 where nothing was predicted).
    explanation : str
        Human-readable summary.
    """
    dataset_name: str
    chain_length: int
    top_n: int
    min_linear_separation: int
    min_probability: float
    measured_dist_cutoff: float
    classification: ContactClassification
    prediction: PredictionResult
    percent_correct: float
    range_counts: Dict[str, int]
    range_precision: Dict[str, float]
    explanation: str


@dataclass
class TopNSweepAnalysis:
    """Precision of the top-N predictions as N grows.

    Attributes
    ----------
    dataset_name : str
    chain_length : int
    fractions : List[float]
        N as a multiple of L.
    top_n_values : List[int]
    n_predicted : List[int]
    n_correct : List[int]
    precisions : List[float]
        Percent correct at each N.
    explanation : str
    """
    dataset_name: str
    chain_length: int
    fractions: List[float]
    top_n_values: List[int]
    n_predicted: List[int]
    n_correct: List[int]
    precisions: List[float]
    explanation: str


@dataclass
class DatasetComparisonResult:
    """Prediction analyses of every preset data set.

    Attributes
    ----------
    analyses : Dict[str, PredictionAnalysis]
    summary_table : List[Dict]
        Tabular summary for display.
    """
    analyses: Dict[str, PredictionAnalysis]
    summary_table: List[Dict]


# ═══════════════════════════════════════════════════════════════════════
# Data sets
# ═══════════════════════════════════════════════════════════════════════


def default_top_n(chain_length: int) -> int:
    """Default number of predictions shown: L/2."""
    return chain_length // 2


def load_preset_dataset(protein: ProteinStructure, seed: int = 0) -> ContactDataSet:
    """Simulated coupling scores for a structure, loaded through its mapping."""
    dataset = ContactDataSet(protein.name)
    dataset.load(
        simulate_coupling_rows(protein, seed=seed),
        simulate_residue_mapping(protein),
    )
    return dataset


# ═══════════════════════════════════════════════════════════════════════
# Analysis functions
# ═══════════════════════════════════════════════════════════════════════


def analyze_predictions(
    dataset: ContactDataSet,
    top_n: Optional[int] = None,
    min_linear_separation: int = DEFAULT_LINEAR_SEPARATION,
    min_probability: float = DEFAULT_MIN_PROBABILITY,
    measured_dist_cutoff: float = DEFAULT_MEASURED_DIST_CUTOFF,
    min_score: float = DEFAULT_MIN_SCORE,
    structure: Optional[ProteinStructure] = None,
    proximity: str = PROXIMITY_CLOSEST,
) -> PredictionAnalysis:
    """Classify a data set and score its top-N predictions.

    Parameters
    ----------
    dataset : ContactDataSet
    top_n : int, optional
        Defaults to L/2.
    min_linear_separation : int
        Minimum |i - j| for a prediction.
    min_probability : float
        Predictions below this probability are dropped.
    measured_dist_cutoff : float
        Observation and correctness cutoff (Å).
    min_score : float
    structure : ProteinStructure, optional
        Re-measure every distance in this structure first.
    proximity : str
        Distance metric used with ``structure``.

    Returns
    -------
    PredictionAnalysis
    """
    container = dataset.container
    if structure is not None:
        container = with_structure_distances(container, structure, proximity)

    L = container.chain_length
    if top_n is None:
        top_n = default_top_n(L)

    classification = container.classify(VIEW_BOTH, measured_dist_cutoff)
    prediction = container.ranked_predictions(
        top_n,
        min_linear_separation=min_linear_separation,
        filters=[min_probability_filter(min_probability), min_score_filter(min_score)],
        correct_cutoff=measured_dist_cutoff,
    )

    # Range breakdown of the predicted slice
    range_counts = {r: 0 for r in CONTACT_RANGES}
    range_correct = {r: 0 for r in CONTACT_RANGES}
    correct_keys = set(s.pair_key for s in prediction.correct)
    for score, ctype in zip(prediction.predicted, classify_contacts(prediction.predicted)):
        range_counts[ctype] += 1
        if score.pair_key in correct_keys:
            range_correct[ctype] += 1
    range_precision = {
        r: (range_correct[r] / range_counts[r] * 100.0 if range_counts[r] else 0.0)
        for r in CONTACT_RANGES
    }

    n_pred = len(prediction.predicted)
    explanation = textwrap.dedent(f"""\
        Contact predictions for "{dataset.name}" (L = {L}):
        • {len(container)} scored pairs, {len(classification.observed)} observed at ≤ {measured_dist_cutoff:.1f} Å
        • Top {top_n} requested, |i-j| ≥ {min_linear_separation}, probability ≥ {min_probability:.2f}
        • {n_pred} predicted, {len(prediction.correct)} correct ({prediction.percent_correct:.1f}%)
        • Long-range (tertiary) predictions: {range_counts['long-range']} ({range_precision['long-range']:.1f}% correct)
    """)

    return PredictionAnalysis(
        dataset_name=dataset.name,
        chain_length=L,
        top_n=top_n,
        min_linear_separation=min_linear_separation,
        min_probability=min_probability,
        measured_dist_cutoff=measured_dist_cutoff,
        classification=classification,
        prediction=prediction,
        percent_correct=prediction.percent_correct,
        range_counts=range_counts,
        range_precision=range_precision,
        explanation=explanation,
    )


def analyze_top_n_sweep(
    dataset: ContactDataSet,
    fractions: Optional[Sequence[float]] = None,
    min_linear_separation: int = DEFAULT_LINEAR_SEPARATION,
    min_probability: float = DEFAULT_MIN_PROBABILITY,
    correct_cutoff: float = DEFAULT_CORRECT_CUTOFF,
) -> TopNSweepAnalysis:
    """Sweep N over multiples of L and track precision.

    Parameters
    ----------
    dataset : ContactDataSet
    fractions : Sequence[float], optional
        Multiples of L; defaults to L/4, L/2, L, 2L, 3L.
    min_linear_separation : int
    min_probability : float
    correct_cutoff : float

    Returns
    -------
    TopNSweepAnalysis
    """
    if fractions is None:
        fractions = DEFAULT_SWEEP_FRACTIONS
    fractions = list(fractions)

    container = dataset.container
    L = container.chain_length
    filters = [min_probability_filter(min_probability)]

    top_n_values, n_predicted, n_correct, precisions = [], [], [], []
    for f in fractions:
        top_n = max(int(f * L), 1) if L else 0
        result = container.ranked_predictions(
            top_n,
            min_linear_separation=min_linear_separation,
            filters=filters,
            correct_cutoff=correct_cutoff,
        )
        top_n_values.append(top_n)
        n_predicted.append(len(result.predicted))
        n_correct.append(len(result.correct))
        precisions.append(result.percent_correct)

    explanation = textwrap.dedent(f"""\
        Top-N sweep for "{dataset.name}" (L = {L}):
        • N tested: {top_n_values}
        • Precision range: {min(precisions, default=0.0):.1f}% → {max(precisions, default=0.0):.1f}%
        • At N = {top_n_values[0] if top_n_values else 0}: only the strongest couplings
        • At N = {top_n_values[-1] if top_n_values else 0}: weak couplings dilute precision
    """)

    return TopNSweepAnalysis(
        dataset_name=dataset.name,
        chain_length=L,
        fractions=fractions,
        top_n_values=top_n_values,
        n_predicted=n_predicted,
        n_correct=n_correct,
        precisions=precisions,
        explanation=explanation,
    )


def compare_preset_datasets(
    min_linear_separation: int = DEFAULT_LINEAR_SEPARATION,
    min_probability: float = DEFAULT_MIN_PROBABILITY,
    measured_dist_cutoff: float = DEFAULT_MEASURED_DIST_CUTOFF,
    seed: int = 0,
) -> DatasetComparisonResult:
    """Analyse the simulated data sets of all preset proteins.

    Parameters
    ----------
    min_linear_separation : int
    min_probability : float
    measured_dist_cutoff : float
    seed : int
        Seed of the coupling-score simulation.

    Returns
    -------
    DatasetComparisonResult
    """
    analyses: Dict[str, PredictionAnalysis] = {}
    for name, protein in get_preset_proteins().items():
        dataset = load_preset_dataset(protein, seed=seed)
        analyses[name] = analyze_predictions(
            dataset,
            min_linear_separation=min_linear_separation,
            min_probability=min_probability,
            measured_dist_cutoff=measured_dist_cutoff,
        )

    summary_table = []
    for name, a in analyses.items():
        summary_table.append({
            "Protein": name,
            "L": a.chain_length,
            "Top N": a.top_n,
            "Observed": len(a.classification.observed),
            "Predicted": len(a.prediction.predicted),
            "Correct": len(a.prediction.correct),
            "Precision %": f"{a.percent_correct:.1f}",
            "Long-Range": a.range_counts["long-range"],
        })

    return DatasetComparisonResult(
        analyses=analyses,
        summary_table=summary_table,
    )


def prediction_summary(analysis: PredictionAnalysis) -> str:
    """Human-readable text summary of a prediction analysis.

    Parameters
    ----------
    analysis : PredictionAnalysis

    Returns
    -------
    str
        Multi-line summary string.
    """
    pred = analysis.prediction
    lines = [
        f"═══ Contact Prediction Summary: {analysis.dataset_name} ═══",
        "",
        f"  Chain length (L):     {analysis.chain_length}",
        f"  Observed contacts:    {len(analysis.classification.observed)}"
        f"  (≤ {analysis.measured_dist_cutoff:.1f} Å)",
        f"  Unobserved pairs:     {len(analysis.classification.unobserved)}",
        "",
        f"  Top N:                {analysis.top_n}",
        f"  Min separation:       {analysis.min_linear_separation}",
        f"  Min probability:      {analysis.min_probability:.2f}",
        f"  Predicted:            {len(pred.predicted)}",
        f"  Correct:              {len(pred.correct)}",
        f"  Precision:            {analysis.percent_correct:.1f}%",
        "",
        "  Predictions by range:",
    ]

    for ctype in CONTACT_RANGES:
        count = analysis.range_counts.get(ctype, 0)
        precision = analysis.range_precision.get(ctype, 0.0)
        desc = CONTACT_DESCRIPTIONS.get(ctype, "")
        lines.append(f"    {ctype:13s}: {count:4d}  ({precision:5.1f}% correct)  {desc}")

    if pred.predicted:
        lines.extend(["", "  Strongest predictions:"])
        for s in pred.predicted[:5]:
            mark = "✓" if s.dist < analysis.measured_dist_cutoff else "✗"
            aa = f"{s.A_i or '?'}{s.i}–{s.A_j or '?'}{s.j}"
            lines.append(f"    {mark} {aa:14s} score {s.score:6.3f}  dist {s.dist:6.2f} Å")

    return "\n".join(lines)
