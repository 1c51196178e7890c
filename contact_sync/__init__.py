"""
Contact Sync — Linked Contact-Map and 3-D Structure Views.

Keeps a 2-D contact map of residue-residue coupling scores and one or
more 3-D protein structures in lock-step through a shared residue
selection. Scores a contact prediction against the measured structure
(observed vs. predicted, top-N precision), derives the highlights each
structure should show from the selection, and lays structures out side
by side or superposed.

Modules
-------
residue_mapping
    Coupling-table ↔ structure residue numbering.
structures
    Residues, structures, synthetic builders and score simulation.
contact_engine
    Coupling scores, the contact container, classification, loading.
selection
    The shared residue selection store and pick routing.
scene
    Scene interface and the Plotly-backed scene.
representation
    Selection → representation derivation and the synchronizer.
superposition
    Side-by-side / superposed layout and the Kabsch fit.
analysis
    High-level analysis pipelines and dataclasses for CLI/Streamlit.
visualization
    PlotlyRenderer (interactive) and MatplotlibRenderer (static).
"""

# ── Data model ──
from contact_sync.residue_mapping import (
    DataConsistencyError,
    ResidueMappingEntry,
    ResidueMapper,
    mapping_from_rows,
)
from contact_sync.structures import (
    # Constants
    PROXIMITY_CLOSEST,
    PROXIMITY_C_ALPHA,
    PROXIMITY_METRICS,
    THREE_TO_ONE,
    ONE_TO_THREE,
    SECONDARY_STRUCTURE_CODES,
    # Dataclasses
    SecondaryStructureSection,
    Residue,
    ProteinStructure,
    # Builders
    build_alpha_helix,
    build_beta_sheet,
    build_helix_turn_helix,
    build_beta_barrel,
    build_random_coil,
    build_two_domain,
    get_preset_proteins,
    # Simulation
    perturb_structure,
    simulate_coupling_rows,
    simulate_residue_mapping,
    renumber_structure,
)
from contact_sync.contact_engine import (
    # Constants
    VIEW_OBSERVED,
    VIEW_PREDICTED,
    VIEW_BOTH,
    VIEW_MODES,
    DEFAULT_LINEAR_SEPARATION,
    DEFAULT_MEASURED_DIST_CUTOFF,
    DEFAULT_CORRECT_CUTOFF,
    DEFAULT_MIN_PROBABILITY,
    DEFAULT_MIN_SCORE,
    CONTACT_COLORS,
    CONTACT_DESCRIPTIONS,
    # Dataclasses
    CouplingScore,
    ContactClassification,
    PredictionResult,
    ContactContainer,
    ContactDataSet,
    # Functions
    linear_distance_filter,
    min_probability_filter,
    min_score_filter,
    rank_by_confidence,
    with_structure_distances,
    score_from_row,
    build_contact_container,
    classify_contact,
    classify_contacts,
)

# ── Interaction ──
from contact_sync.selection import (
    SelectionState,
    ResidueSelectionStore,
    PickResult,
    pair_key,
    on_click,
    on_hover,
    on_contact_map_click,
    on_contact_map_hover,
    on_section_choice,
)
from contact_sync.scene import (
    BASE_STYLE_KINDS,
    HIGHLIGHT_KINDS,
    StructureHandle,
    RepresentationHandle,
    Scene,
    PlotlyScene,
)
from contact_sync.representation import (
    ROLE_EXPERIMENTAL,
    ROLE_PREDICTED,
    DEFAULT_STRUCTURE_STYLES,
    RepresentationSpec,
    ActiveRepresentation,
    StructureRepresentationSynchronizer,
    derive_representation_specs,
)
from contact_sync.superposition import (
    SUPERPOSITION_NONE,
    SUPERPOSITION_BOTH,
    SPACING,
    SuperpositionController,
    kabsch_superpose,
)

# ── Analysis pipelines ──
from contact_sync.analysis import (
    PredictionAnalysis,
    TopNSweepAnalysis,
    DatasetComparisonResult,
    analyze_predictions,
    analyze_top_n_sweep,
    compare_preset_datasets,
    load_preset_dataset,
    prediction_summary,
)

# ── Visualization ──
from contact_sync.visualization import (
    PlotlyRenderer,
    MatplotlibRenderer,
)
