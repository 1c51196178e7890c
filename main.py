#!/usr/bin/env python3
"""
Contact Sync — CLI Entry Point.

Four modes:
    --analyze        Score the top-N contact predictions of one data set
    --sweep          Precision at N = L/4, L/2, L, 2L, 3L
    --compare        Compare the simulated data sets of all six presets
    --select         Scripted selection walkthrough across two structures

Usage:
    python main.py                                  # default: α-Helix analysis
    python main.py --analyze --protein hth --top-n 20 --save
    python main.py --sweep --protein barrel --save
    python main.py --compare --min-prob 0.5
    python main.py --select --protein two_domain --proximity c-alpha --verbose
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time

# Ensure project root is on sys.path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import matplotlib
matplotlib.use("Agg")

from contact_sync.structures import (
    PROXIMITY_CLOSEST,
    PROXIMITY_METRICS,
    ProteinStructure,
    build_alpha_helix,
    build_beta_sheet,
    build_helix_turn_helix,
    build_beta_barrel,
    build_random_coil,
    build_two_domain,
    perturb_structure,
)
from contact_sync.contact_engine import (
    DEFAULT_LINEAR_SEPARATION,
    DEFAULT_MEASURED_DIST_CUTOFF,
    DEFAULT_MIN_PROBABILITY,
)
from contact_sync.analysis import (
    analyze_predictions,
    analyze_top_n_sweep,
    compare_preset_datasets,
    load_preset_dataset,
    prediction_summary,
)
from contact_sync.representation import (
    ROLE_EXPERIMENTAL,
    ROLE_PREDICTED,
    StructureRepresentationSynchronizer,
)
from contact_sync.scene import PlotlyScene
from contact_sync.selection import (
    PICK_DISTANCE,
    PickResult,
    ResidueSelectionStore,
    on_click,
    on_hover,
    pair_key,
)
from contact_sync.superposition import SUPERPOSITION_BOTH, SuperpositionController
from contact_sync.visualization import MatplotlibRenderer


# ── Protein presets ──
PROTEIN_MAP = {
    "helix":    ("α-Helix",            build_alpha_helix),
    "sheet":    ("β-Sheet",            build_beta_sheet),
    "hth":      ("Helix-Turn-Helix",   build_helix_turn_helix),
    "barrel":   ("β-Barrel",           build_beta_barrel),
    "coil":     ("Random Coil",        build_random_coil),
    "two_domain": ("Two-Domain Protein", build_two_domain),
}


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="contact_sync",
        description="Contact Sync — Linked Contact-Map and 3-D Structure Views",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--analyze", action="store_true", default=True,
                      help="Top-N prediction analysis (default)")
    mode.add_argument("--sweep", action="store_true",
                      help="Precision across N = L/4 … 3L")
    mode.add_argument("--compare", action="store_true",
                      help="Compare all six preset data sets")
    mode.add_argument("--select", action="store_true",
                      help="Scripted selection and superposition walkthrough")

    parser.add_argument("--protein", type=str, default="helix",
                        choices=list(PROTEIN_MAP.keys()),
                        help="Preset protein to analyse (default: helix)")
    parser.add_argument("--top-n", type=int, default=None,
                        help="Number of predictions (default: L/2)")
    parser.add_argument("--linear-sep", type=int, default=DEFAULT_LINEAR_SEPARATION,
                        help=f"Minimum |i-j| (default: {DEFAULT_LINEAR_SEPARATION})")
    parser.add_argument("--min-prob", type=float, default=DEFAULT_MIN_PROBABILITY,
                        help=f"Minimum probability (default: {DEFAULT_MIN_PROBABILITY})")
    parser.add_argument("--cutoff", type=float, default=DEFAULT_MEASURED_DIST_CUTOFF,
                        help=f"Contact distance cutoff in Å (default: {DEFAULT_MEASURED_DIST_CUTOFF})")
    parser.add_argument("--proximity", type=str, default=PROXIMITY_CLOSEST,
                        choices=list(PROXIMITY_METRICS),
                        help=f"Distance metric for drawn distances (default: {PROXIMITY_CLOSEST})")
    parser.add_argument("--save", action="store_true",
                        help="Save figures to figures/")
    parser.add_argument("--verbose", action="store_true",
                        help="Verbose output")

    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _get_protein(name: str) -> ProteinStructure:
    """Look up and build a preset protein."""
    display_name, builder = PROTEIN_MAP[name]
    return builder()


def _ensure_figures():
    """Create figures/ directory if needed."""
    os.makedirs("figures", exist_ok=True)


def _save_fig(fig, name: str):
    """Save a Matplotlib figure."""
    _ensure_figures()
    path = os.path.join("figures", f"{name}.png")
    fig.savefig(path, dpi=150, bbox_inches="tight")
    print(f"  Saved: {path}")


def _print_representations(sync: StructureRepresentationSynchronizer) -> None:
    for role, active in sync.active_representations.items():
        print(f"    {role:12s} [{active.structure_kind}]")
        if not active.specs:
            print("      (no highlights)")
        for spec in active.specs:
            extra = f" atoms={'-'.join(spec.atoms)}" if spec.atoms else ""
            if spec.section is not None:
                extra = f" {spec.section}"
            print(f"      {spec.kind:20s} residues={list(spec.residues)}{extra}")


# ── Commands ──


def cmd_analyze(args):
    """Top-N contact prediction analysis."""
    t0 = time.time()
    protein = _get_protein(args.protein)

    print(f"\n{'═' * 60}")
    print(f"  Contact Predictions: {protein.name}")
    print(f"  |i-j| ≥ {args.linear_sep}, probability ≥ {args.min_prob:.2f}, "
          f"cutoff = {args.cutoff:.1f} Å")
    print(f"{'═' * 60}\n")

    dataset = load_preset_dataset(protein)
    analysis = analyze_predictions(
        dataset,
        top_n=args.top_n,
        min_linear_separation=args.linear_sep,
        min_probability=args.min_prob,
        measured_dist_cutoff=args.cutoff,
    )
    print(prediction_summary(analysis))

    if args.verbose:
        print(f"\n{analysis.explanation}")

    if args.save:
        fig = MatplotlibRenderer.contact_map(analysis)
        _save_fig(fig, f"contact_map_{args.protein}")

    elapsed = time.time() - t0
    print(f"\n  Done in {elapsed:.2f}s")


def cmd_sweep(args):
    """Top-N sweep."""
    t0 = time.time()
    protein = _get_protein(args.protein)

    print(f"\n{'═' * 60}")
    print(f"  Top-N Sweep: {protein.name} (cutoff={args.cutoff:.1f}Å)")
    print(f"{'═' * 60}\n")

    dataset = load_preset_dataset(protein)
    sweep = analyze_top_n_sweep(
        dataset,
        min_linear_separation=args.linear_sep,
        min_probability=args.min_prob,
        correct_cutoff=args.cutoff,
    )
    print(sweep.explanation)

    # Table
    header = f"{'N':>6s} {'×L':>6s} {'Predicted':>10s} {'Correct':>9s} {'Precision':>10s}"
    print(header)
    print("─" * len(header))
    for k, n in enumerate(sweep.top_n_values):
        print(f"{n:>6d} {sweep.fractions[k]:>6g} {sweep.n_predicted[k]:>10d} "
              f"{sweep.n_correct[k]:>9d} {sweep.precisions[k]:>9.1f}%")

    if args.save:
        fig = MatplotlibRenderer.precision_curve(sweep, title=f"Precision vs. Top N — {protein.name}")
        _save_fig(fig, f"precision_{args.protein}")

    elapsed = time.time() - t0
    print(f"\n  Done in {elapsed:.2f}s")


def cmd_compare(args):
    """Compare all preset data sets."""
    t0 = time.time()

    print(f"\n{'═' * 60}")
    print(f"  Preset Comparison (|i-j|≥{args.linear_sep}, p≥{args.min_prob:.2f}, "
          f"cutoff={args.cutoff:.1f}Å)")
    print(f"{'═' * 60}\n")

    comparison = compare_preset_datasets(
        min_linear_separation=args.linear_sep,
        min_probability=args.min_prob,
        measured_dist_cutoff=args.cutoff,
    )

    # Print summary table
    header = (f"{'Protein':25s} {'L':>5s} {'Top N':>6s} {'Observed':>9s} "
              f"{'Predicted':>10s} {'Correct':>8s} {'Prec %':>7s}")
    print(header)
    print("─" * len(header))
    for row in comparison.summary_table:
        print(f"{row['Protein']:25s} {row['L']:>5d} {row['Top N']:>6d} {row['Observed']:>9d} "
              f"{row['Predicted']:>10d} {row['Correct']:>8d} {row['Precision %']:>7s}")

    if args.save:
        fig = MatplotlibRenderer.comparison(comparison)
        _save_fig(fig, "preset_comparison")

    elapsed = time.time() - t0
    print(f"\n  Done in {elapsed:.2f}s")


def cmd_select(args):
    """Walk through a selection session on an experimental and a predicted structure."""
    t0 = time.time()
    protein = _get_protein(args.protein)
    model = perturb_structure(protein)

    print(f"\n{'═' * 60}")
    print(f"  Selection Walkthrough: {protein.name}")
    print(f"  proximity = {args.proximity}")
    print(f"{'═' * 60}\n")

    dataset = load_preset_dataset(protein)
    analysis = analyze_predictions(
        dataset,
        top_n=args.top_n,
        min_linear_separation=args.linear_sep,
        min_probability=args.min_prob,
        measured_dist_cutoff=args.cutoff,
    )

    store = ResidueSelectionStore()
    scene = PlotlyScene()
    sync = StructureRepresentationSynchronizer(scene, store, proximity=args.proximity)
    exp_handle = sync.attach(protein, ROLE_EXPERIMENTAL)
    sync.attach(model, ROLE_PREDICTED)
    layout = SuperpositionController(scene)
    layout.refresh()

    predictions = analysis.prediction.predicted
    if not predictions:
        print("  No predictions pass the filters; nothing to select.")
        return
    first = predictions[0]

    print(f"  1. Click residue {first.i} on the experimental structure")
    on_click(store, scene.pick(["atom", exp_handle.id, first.i, "CA"]))
    print(f"     selection: {store.state.arity}, candidates {list(store.state.candidate_residues)}")

    print(f"  2. Hover residue {first.j}")
    on_hover(store, scene.pick(["atom", exp_handle.id, first.j, "CA"]))
    _print_representations(sync)

    print(f"  3. Click residue {first.j} → locks {pair_key((first.i, first.j))}")
    on_click(store, scene.pick(["atom", exp_handle.id, first.j, "CA"]))
    store.clear_hovered()
    _print_representations(sync)

    if len(predictions) > 1:
        second = predictions[1]
        print(f"  4. Click contact ({second.i}, {second.j}) on the contact map")
        store.lock_pair(second.i, second.j)
        print(f"     locked pairs: {sorted(store.state.locked_residue_pairs)}")

    sections = protein.secondary_structure_sections()
    if sections:
        print(f"  5. Select secondary structure {sections[0]}")
        store.select_secondary_structure(sections[0])
        _print_representations(sync)

    print("  6. Superpose the predicted model onto the experimental structure")
    layout.set_mode(SUPERPOSITION_BOTH)
    for handle in scene.handles():
        print(f"     {handle.name:32s} position {scene.position(handle).round(1).tolist()}")
    print(f"     Cα RMSD after fit: {layout.worst_rmsd():.2f} Å")

    print(f"  7. Click the distance line of {pair_key((first.i, first.j))} → unlock")
    on_click(store, PickResult(PICK_DISTANCE, (first.i, first.j), exp_handle.id))
    print(f"     locked pairs: {sorted(store.state.locked_residue_pairs)}")

    if args.verbose:
        print(f"\n  Store history ({len(store.history)} operations):")
        for op, op_args in store.history:
            print(f"    {op}{op_args}")

    if args.save:
        fig = MatplotlibRenderer.contact_map(analysis, store.state)
        _save_fig(fig, f"selection_{args.protein}")

    sync.close()
    elapsed = time.time() - t0
    print(f"\n  Done in {elapsed:.2f}s")


def main():
    """Main dispatch."""
    parser = build_parser()
    args = parser.parse_args()
    _configure_logging(args.verbose)

    if args.compare:
        cmd_compare(args)
    elif args.sweep:
        cmd_sweep(args)
    elif args.select:
        cmd_select(args)
    else:
        cmd_analyze(args)


if __name__ == "__main__":
    main()
