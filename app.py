"""
Contact Sync — Streamlit Application.

Three-page interactive app linking a residue contact map with 3-D
structure views through one shared residue selection:

    1. Linked Views (contact map + 3-D scene, shared selection)
    2. Top-N Sweep (precision as more predictions are shown)
    3. Data Set Comparison (all presets side by side)

The selection store, the scene, the synchronizer and the superposition
controller live in ``st.session_state`` so they survive reruns.
"""

from __future__ import annotations

import os
import sys
from typing import Dict

import streamlit as st

# Ensure project root is on the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from contact_sync.structures import (
    PROXIMITY_METRICS,
    ProteinStructure,
    get_preset_proteins,
    perturb_structure,
)
from contact_sync.contact_engine import (
    CONTACT_DESCRIPTIONS,
    DEFAULT_LINEAR_SEPARATION,
    DEFAULT_MEASURED_DIST_CUTOFF,
    DEFAULT_MIN_PROBABILITY,
    ContactDataSet,
)
from contact_sync.analysis import (
    DatasetComparisonResult,
    PredictionAnalysis,
    TopNSweepAnalysis,
    analyze_predictions,
    analyze_top_n_sweep,
    compare_preset_datasets,
    default_top_n,
    load_preset_dataset,
)
from contact_sync.representation import (
    ROLE_EXPERIMENTAL,
    ROLE_PREDICTED,
    StructureRepresentationSynchronizer,
)
from contact_sync.scene import BASE_STYLE_KINDS, PlotlyScene
from contact_sync.selection import (
    PICK_ATOM,
    ResidueSelectionStore,
    on_click,
    on_contact_map_click,
    on_section_choice,
)
from contact_sync.superposition import (
    SUPERPOSITION_BOTH,
    SUPERPOSITION_NONE,
    SuperpositionController,
)
from contact_sync.visualization import PlotlyRenderer


# ═══════════════════════════════════════════════════════════════════════
# Cached helpers
# ═══════════════════════════════════════════════════════════════════════


@st.cache_data(show_spinner=False)
def _cached_dataset(protein_name: str) -> ContactDataSet:
    return load_preset_dataset(get_preset_proteins()[protein_name])


@st.cache_data(show_spinner=False)
def _cached_sweep(protein_name: str, linear_sep: int, min_prob: float, cutoff: float) -> TopNSweepAnalysis:
    return analyze_top_n_sweep(
        _cached_dataset(protein_name),
        min_linear_separation=linear_sep,
        min_probability=min_prob,
        correct_cutoff=cutoff,
    )


@st.cache_data(show_spinner=False)
def _cached_comparison(linear_sep: int, min_prob: float, cutoff: float) -> DatasetComparisonResult:
    return compare_preset_datasets(
        min_linear_separation=linear_sep,
        min_probability=min_prob,
        measured_dist_cutoff=cutoff,
    )


# ═══════════════════════════════════════════════════════════════════════
# App configuration
# ═══════════════════════════════════════════════════════════════════════

st.set_page_config(
    page_title="Contact Sync",
    page_icon="🧬",
    layout="wide",
    initial_sidebar_state="expanded",
)

PAGES = [
    "🔗 Linked Views",
    "📈 Top-N Sweep",
    "📊 Data Set Comparison",
]

_PRESET_OPTIONS = list(get_preset_proteins().keys())


# ═══════════════════════════════════════════════════════════════════════
# Session state
# ═══════════════════════════════════════════════════════════════════════


def _init_shared_state() -> None:
    """Ensure shared sidebar keys exist in session_state."""
    defaults = {
        "shared_protein": _PRESET_OPTIONS[0],
        "shared_linear_sep": DEFAULT_LINEAR_SEPARATION,
        "shared_min_prob": DEFAULT_MIN_PROBABILITY,
        "shared_cutoff": DEFAULT_MEASURED_DIST_CUTOFF,
    }
    for key, val in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = val
    if "store" not in st.session_state:
        st.session_state["store"] = ResidueSelectionStore()


def _reset_section_choice() -> None:
    """Put the section chooser back to its empty choice."""
    st.session_state["section_choice"] = None
    st.session_state["last_section_choice"] = None


def _viewer(protein_name: str) -> Dict:
    """Scene, synchronizer and layout for a protein, rebuilt when it changes."""
    viewer = st.session_state.get("viewer")
    if viewer is not None and viewer["protein"] == protein_name:
        return viewer

    store: ResidueSelectionStore = st.session_state["store"]
    if viewer is not None:
        viewer["sync"].close()
    store.clear_all()

    protein: ProteinStructure = get_preset_proteins()[protein_name]
    scene = PlotlyScene()
    sync = StructureRepresentationSynchronizer(scene, store)
    handle = sync.attach(protein, ROLE_EXPERIMENTAL)
    sync.attach(perturb_structure(protein), ROLE_PREDICTED)
    layout = SuperpositionController(scene)
    layout.refresh()

    viewer = {
        "protein": protein_name,
        "scene": scene,
        "sync": sync,
        "layout": layout,
        "experimental": handle,
    }
    st.session_state["viewer"] = viewer
    st.session_state["last_map_selection"] = None
    _reset_section_choice()
    return viewer


# ═══════════════════════════════════════════════════════════════════════
# Sidebar
# ═══════════════════════════════════════════════════════════════════════


def render_sidebar() -> str:
    """Render the sidebar and return the selected page name."""
    st.sidebar.title("🧬 Contact Sync")
    st.sidebar.markdown("---")
    page = st.sidebar.radio("Navigate", PAGES, index=0)
    st.sidebar.markdown("---")
    return page


def _prediction_sidebar() -> dict:
    """Sidebar controls for prediction parameters."""
    _init_shared_state()

    st.sidebar.markdown("### Data Set")
    protein = st.sidebar.selectbox(
        "Protein Structure",
        _PRESET_OPTIONS,
        key="shared_protein",
        help="Preset structure; coupling scores are simulated from it.",
    )
    linear_sep = st.sidebar.slider(
        "Minimum |i - j|",
        1, 24, step=1,
        key="shared_linear_sep",
        help="Predictions closer than this in sequence are hidden.",
    )
    min_prob = st.sidebar.slider(
        "Minimum probability",
        0.0, 1.0, step=0.05,
        key="shared_min_prob",
    )
    cutoff = st.sidebar.slider(
        "Contact cutoff (Å)",
        3.0, 12.0, step=0.5,
        key="shared_cutoff",
        help="Observed contacts are at most this far apart; correct predictions closer.",
    )
    return {"protein": protein, "linear_sep": linear_sep, "min_prob": min_prob, "cutoff": cutoff}


# ═══════════════════════════════════════════════════════════════════════
# Page 1 — Linked Views
# ═══════════════════════════════════════════════════════════════════════


def _viewer_sidebar(viewer: Dict) -> None:
    sync: StructureRepresentationSynchronizer = viewer["sync"]
    layout: SuperpositionController = viewer["layout"]
    store: ResidueSelectionStore = st.session_state["store"]

    st.sidebar.markdown("### 3-D View")
    proximity = st.sidebar.radio(
        "Distance metric", list(PROXIMITY_METRICS),
        index=list(PROXIMITY_METRICS).index(sync.proximity),
    )
    sync.set_proximity(proximity)
    sync.set_distance_labels(st.sidebar.checkbox("Distance labels", value=sync.show_distance_labels))

    for role in (ROLE_EXPERIMENTAL, ROLE_PREDICTED):
        kind = st.sidebar.selectbox(
            f"{role.capitalize()} style", list(BASE_STYLE_KINDS),
            index=list(BASE_STYLE_KINDS).index(sync.structure_styles[role]),
            key=f"style_{role}",
        )
        if kind != sync.structure_styles[role]:
            sync.set_structure_style(role, kind)

    superposed = st.sidebar.toggle("Superpose structures", value=layout.mode == SUPERPOSITION_BOTH)
    layout.set_mode(SUPERPOSITION_BOTH if superposed else SUPERPOSITION_NONE)

    col1, col2 = st.sidebar.columns(2)
    if col1.button("Clear pick"):
        store.clear_transient()
    if col2.button("Clear all"):
        store.clear_all()
        _reset_section_choice()


def page_linked_views() -> None:
    """Contact map and 3-D structures sharing one selection."""
    st.title("🔗 Linked Views")
    params = _prediction_sidebar()
    viewer = _viewer(params["protein"])
    _viewer_sidebar(viewer)
    store: ResidueSelectionStore = st.session_state["store"]
    scene: PlotlyScene = viewer["scene"]

    dataset = _cached_dataset(params["protein"])
    L = dataset.chain_length
    top_n = st.slider("Top N predictions", 1, max(3 * L, 1), value=max(default_top_n(L), 1))
    analysis: PredictionAnalysis = analyze_predictions(
        dataset,
        top_n=top_n,
        min_linear_separation=params["linear_sep"],
        min_probability=params["min_prob"],
        measured_dist_cutoff=params["cutoff"],
    )

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("L", L)
    c2.metric("Predicted", len(analysis.prediction.predicted))
    c3.metric("Correct", len(analysis.prediction.correct))
    c4.metric("Precision", f"{analysis.percent_correct:.1f}%")

    col_map, col_3d = st.columns(2)
    with col_map:
        fig_map = PlotlyRenderer.contact_map(analysis, store.state, height=560)
        event = st.plotly_chart(
            fig_map, use_container_width=True, key="contact_map",
            on_select="rerun", selection_mode="points",
        )
        points = event.selection.points if event is not None else []
        if points and points != st.session_state.get("last_map_selection"):
            st.session_state["last_map_selection"] = points
            custom = points[0].get("customdata")
            if custom:
                on_contact_map_click(store, int(custom[0]), int(custom[1]))
                st.rerun()

    with col_3d:
        protein = scene.structure(viewer["experimental"])
        residue = st.selectbox(
            "Residue", protein.residue_numbers,
            format_func=lambda n: f"{protein.residue_by_number(n).name}{n}",
        )
        b1, b2 = st.columns(2)
        if b1.button("Pick residue"):
            on_click(store, scene.pick([PICK_ATOM, viewer["experimental"].id, residue, "CA"]))
            st.rerun()
        sections = protein.secondary_structure_sections()
        section = b2.selectbox("Secondary structure", [None] + sections,
                               format_func=lambda s: "—" if s is None else str(s),
                               key="section_choice")
        on_section_choice(store, section, st.session_state.get("last_section_choice"))
        st.session_state["last_section_choice"] = section
        st.plotly_chart(scene.figure(height=520), use_container_width=True)

    state = store.state
    st.markdown(f"**Selection:** {state.arity.lower()}"
                f"{' — candidate ' + str(state.candidate_residues[0]) if state.candidate_residues else ''}")
    if state.locked_residue_pairs:
        locked = st.multiselect("Locked pairs (deselect to unlock)",
                                list(state.locked_residue_pairs),
                                default=list(state.locked_residue_pairs))
        for key in set(state.locked_residue_pairs) - set(locked):
            store.unlock(key)
    rmsd = viewer["layout"].worst_rmsd()
    if viewer["layout"].mode == SUPERPOSITION_BOTH and rmsd is not None:
        st.caption(f"Cα RMSD after superposition: {rmsd:.2f} Å")

    with st.expander("Prediction summary"):
        st.text(analysis.explanation)
        st.plotly_chart(PlotlyRenderer.range_breakdown_bar(analysis), use_container_width=True)


# ═══════════════════════════════════════════════════════════════════════
# Page 2 — Top-N Sweep
# ═══════════════════════════════════════════════════════════════════════


def page_sweep() -> None:
    """Precision as N grows from L/4 to 3L."""
    st.title("📈 Top-N Sweep")
    params = _prediction_sidebar()
    sweep = _cached_sweep(params["protein"], params["linear_sep"], params["min_prob"], params["cutoff"])

    st.plotly_chart(PlotlyRenderer.precision_curve(sweep), use_container_width=True)
    st.dataframe(
        [
            {"×L": f, "N": n, "Predicted": p, "Correct": c, "Precision %": round(pr, 1)}
            for f, n, p, c, pr in zip(sweep.fractions, sweep.top_n_values,
                                      sweep.n_predicted, sweep.n_correct, sweep.precisions)
        ],
        use_container_width=True,
    )
    st.text(sweep.explanation)


# ═══════════════════════════════════════════════════════════════════════
# Page 3 — Data Set Comparison
# ═══════════════════════════════════════════════════════════════════════


def page_comparison() -> None:
    """All preset data sets side by side."""
    st.title("📊 Data Set Comparison")
    params = _prediction_sidebar()
    comparison = _cached_comparison(params["linear_sep"], params["min_prob"], params["cutoff"])

    st.plotly_chart(PlotlyRenderer.comparison_bars(comparison), use_container_width=True)
    st.dataframe(comparison.summary_table, use_container_width=True)

    st.markdown("#### Contact ranges")
    for name, desc in CONTACT_DESCRIPTIONS.items():
        st.markdown(f"- **{name}**: {desc}")


# ═══════════════════════════════════════════════════════════════════════
# Main dispatch
# ═══════════════════════════════════════════════════════════════════════


def main() -> None:
    """Main entry point."""
    page = render_sidebar()

    dispatch = {
        "🔗 Linked Views": page_linked_views,
        "📈 Top-N Sweep": page_sweep,
        "📊 Data Set Comparison": page_comparison,
    }

    handler = dispatch.get(page, page_linked_views)
    handler()


if __name__ == "__main__":
    main()
