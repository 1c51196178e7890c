"""
Contact Sync — Test Suite.

Test classes covering all modules:
    - Data model: residue mapping, structures, coupling scores, contact
      container, classification, ranked predictions, data-set loading
    - Interaction: selection store, pick routing, scene, representation
      derivation, synchronizer, superposition
    - Analysis: predictions, top-N sweep, comparison, summary
    - Visualization: PlotlyRenderer, MatplotlibRenderer
    - CLI: argument parsing
"""

from __future__ import annotations

import math
import os
import sys

import numpy as np
import pytest

# Ensure project root is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from contact_sync.residue_mapping import (
    DataConsistencyError,
    ResidueMappingEntry,
    ResidueMapper,
    mapping_from_rows,
)
from contact_sync.structures import (
    PROXIMITY_CLOSEST,
    PROXIMITY_C_ALPHA,
    SecondaryStructureSection,
    ProteinStructure,
    build_alpha_helix,
    build_beta_sheet,
    build_helix_turn_helix,
    build_random_coil,
    get_preset_proteins,
    perturb_structure,
    renumber_structure,
    simulate_coupling_rows,
    simulate_residue_mapping,
)
from contact_sync.contact_engine import (
    VIEW_OBSERVED,
    VIEW_PREDICTED,
    VIEW_BOTH,
    DEFAULT_LINEAR_SEPARATION,
    DEFAULT_MEASURED_DIST_CUTOFF,
    DEFAULT_MIN_PROBABILITY,
    CONTACT_COLORS,
    CONTACT_DESCRIPTIONS,
    CONTACT_RANGES,
    CouplingScore,
    ContactContainer,
    ContactDataSet,
    PredictionResult,
    build_contact_container,
    linear_distance_filter,
    classify_contact,
    min_probability_filter,
    min_score_filter,
    rank_by_confidence,
    score_from_row,
    with_structure_distances,
)
from contact_sync.selection import (
    ARITY_ARMED,
    ARITY_EMPTY,
    PICK_ATOM,
    PICK_DISTANCE,
    PickResult,
    ResidueSelectionStore,
    SelectionState,
    on_click,
    on_contact_map_click,
    on_contact_map_hover,
    on_hover,
    on_section_choice,
    pair_key,
)
from contact_sync.scene import (
    REP_BALL_AND_STICK,
    REP_CARTOON,
    REP_DEFAULT,
    REP_DISTANCE,
    REP_SECONDARY_STRUCTURE,
    REP_SPACEFILL,
    PlotlyScene,
    StructureHandle,
)
from contact_sync.representation import (
    ROLE_EXPERIMENTAL,
    ROLE_PREDICTED,
    StructureRepresentationSynchronizer,
    derive_representation_specs,
)
from contact_sync.superposition import (
    SPACING,
    SUPERPOSITION_BOTH,
    SUPERPOSITION_NONE,
    SuperpositionController,
    kabsch_superpose,
)
from contact_sync.analysis import (
    DatasetComparisonResult,
    PredictionAnalysis,
    TopNSweepAnalysis,
    analyze_predictions,
    analyze_top_n_sweep,
    compare_preset_datasets,
    load_preset_dataset,
    prediction_summary,
)
from contact_sync.visualization import PlotlyRenderer, MatplotlibRenderer


def _score(i, j, dist=math.inf, score=0.0, probability=None):
    return CouplingScore(i=i, j=j, score=score, probability=probability, dist=dist)


# ═══════════════════════════════════════════════════════════════════════
# Test Constants
# ═══════════════════════════════════════════════════════════════════════


class TestConstants:
    """Test defaults and lookup tables."""

    def test_default_linear_separation(self):
        assert DEFAULT_LINEAR_SEPARATION == 5

    def test_default_cutoff(self):
        assert DEFAULT_MEASURED_DIST_CUTOFF == 5.0

    def test_default_min_probability(self):
        assert DEFAULT_MIN_PROBABILITY == 0.9

    def test_spacing(self):
        assert SPACING == 50.0

    def test_contact_ranges(self):
        assert set(CONTACT_COLORS) == set(CONTACT_RANGES)
        assert set(CONTACT_DESCRIPTIONS) == set(CONTACT_RANGES)

    def test_classify_contact(self):
        assert classify_contact(3) == "local"
        assert classify_contact(6) == "short-range"
        assert classify_contact(12) == "medium-range"
        assert classify_contact(24) == "long-range"


# ═══════════════════════════════════════════════════════════════════════
# Test Residue Mapping
# ═══════════════════════════════════════════════════════════════════════


class TestResidueMapping:
    """Test the couplings ↔ structure numbering table."""

    @pytest.fixture
    def mapper(self):
        return ResidueMapper([
            ResidueMappingEntry(1, 101, "M"),
            ResidueMappingEntry(2, 102, "K"),
            ResidueMappingEntry(3, 105, "L"),
        ])

    def test_to_pdb(self, mapper):
        assert mapper.to_pdb(3) == 105
        assert mapper.residue_code(2) == "K"

    def test_to_couplings(self, mapper):
        assert mapper.to_couplings(102) == 2

    def test_miss_raises(self, mapper):
        with pytest.raises(DataConsistencyError):
            mapper.to_pdb(4)

    def test_duplicate_entry_raises(self):
        with pytest.raises(DataConsistencyError):
            ResidueMapper([ResidueMappingEntry(1, 1, "A"), ResidueMappingEntry(1, 2, "C")])

    def test_map_score(self, mapper):
        mapped = mapper.map_score(_score(1, 3, dist=4.0))
        assert (mapped.i, mapped.j) == (101, 105)
        assert (mapped.A_i, mapped.A_j) == ("M", "L")
        assert mapped.dist == 4.0

    def test_mapping_from_rows(self):
        entries = mapping_from_rows([
            {"couplings_resno": "1", "pdb_resno": "10", "pdb_res": "A"},
            {"i": 2, "pdb_resno": 11, "pdb_res_code": "C"},
        ])
        assert entries[1] == ResidueMappingEntry(2, 11, "C")

    def test_mapping_from_bad_rows(self):
        with pytest.raises(DataConsistencyError):
            mapping_from_rows([{"couplings_resno": "x", "pdb_resno": 1}])


# ═══════════════════════════════════════════════════════════════════════
# Test Structures
# ═══════════════════════════════════════════════════════════════════════


class TestStructures:
    """Test ProteinStructure geometry and the synthetic builders."""

    @pytest.fixture
    def helix(self):
        return build_alpha_helix(20)

    def test_residue_lookup(self, helix):
        assert helix.residue_by_number(1) is helix.residues[0]
        assert helix.residue_by_number(999) is None
        assert helix.has_residues(1, 20)
        assert not helix.has_residues(1, 21)

    def test_virtual_cb(self, helix):
        r = helix.residues[5]
        assert r.cb_position is not None
        assert np.linalg.norm(r.cb_position - r.ca_position) == pytest.approx(1.53)
        assert set(r.atom_positions) == {"CA", "CB"}

    def test_closest_not_farther_than_ca(self, helix):
        _, _, closest = helix.min_distance_atoms(1, 8)
        assert closest <= helix.ca_distance(1, 8) + 1e-9

    def test_residue_distance_metrics(self, helix):
        assert helix.residue_distance(2, 9, PROXIMITY_C_ALPHA) == pytest.approx(helix.ca_distance(2, 9))
        with pytest.raises(ValueError):
            helix.residue_distance(2, 9, "centroid")

    def test_distance_matrix_symmetric(self, helix):
        d = helix.distance_matrix()
        assert d.shape == (20, 20)
        np.testing.assert_allclose(d, d.T)

    def test_helix_is_one_section(self, helix):
        sections = helix.secondary_structure_sections()
        assert sections == [SecondaryStructureSection("H", 1, 20)]

    def test_sheet_sections(self):
        sections = build_beta_sheet().secondary_structure_sections()
        assert sum(1 for s in sections if s.label == "E") == 4

    def test_section_validation(self):
        with pytest.raises(ValueError):
            SecondaryStructureSection("X", 1, 2)
        with pytest.raises(ValueError):
            SecondaryStructureSection("H", 5, 2)

    def test_presets(self):
        presets = get_preset_proteins()
        assert len(presets) == 6
        for protein in presets.values():
            assert protein.n_residues > 0

    def test_perturb_keeps_numbering(self, helix):
        model = perturb_structure(helix)
        assert model.residue_numbers == helix.residue_numbers
        assert not np.allclose(model.ca_coordinates, helix.ca_coordinates)

    def test_translate(self, helix):
        before = helix.centroid()
        helix.translate([1.0, 2.0, 3.0])
        np.testing.assert_allclose(helix.centroid(), before + [1.0, 2.0, 3.0])

    def test_simulated_rows(self, helix):
        rows = simulate_coupling_rows(helix)
        assert len(rows) == 20 * 19 // 2
        cns = [r["cn"] for r in rows]
        assert cns == sorted(cns, reverse=True)
        assert all(r["i"] < r["j"] for r in rows)


# ═══════════════════════════════════════════════════════════════════════
# Test Contact Container
# ═══════════════════════════════════════════════════════════════════════


class TestContactContainer:
    """Test insertion, identity and chain length."""

    def test_chain_length_is_max_index(self):
        container = ContactContainer([_score(3, 40), _score(45, 5), _score(1, 2)])
        assert container.chain_length == 45

    def test_empty_chain_length(self):
        assert ContactContainer().chain_length == 0

    def test_unordered_pair_identity(self):
        container = ContactContainer([_score(3, 40, dist=1.0), _score(40, 3, dist=9.0)])
        assert len(container) == 1
        assert container.get(3, 40).dist == 9.0
        assert (40, 3) in container

    def test_duplicate_keeps_slot(self):
        container = ContactContainer([_score(1, 10), _score(2, 20), _score(1, 10, dist=2.0)])
        assert [s.pair_key for s in container] == [(1, 10), (2, 20)]
        assert container.scores[0].dist == 2.0

    def test_insertion_order(self):
        container = ContactContainer([_score(9, 30, score=0.1), _score(1, 20, score=0.9)])
        assert [s.i for s in container] == [9, 1]

    def test_rank_by_confidence(self):
        container = ContactContainer([
            _score(1, 10, probability=0.2),
            _score(2, 20, probability=None),
            _score(3, 30, probability=0.8),
        ])
        ranked = rank_by_confidence(container)
        assert [s.i for s in ranked] == [3, 1, 2]
        assert [s.i for s in container] == [1, 2, 3]


# ═══════════════════════════════════════════════════════════════════════
# Test Classification
# ═══════════════════════════════════════════════════════════════════════


class TestClassification:
    """Test the observed / unobserved partition."""

    @pytest.fixture
    def container(self):
        return ContactContainer([
            _score(1, 10, dist=3.0),
            _score(2, 20, dist=5.0),
            _score(3, 30, dist=7.5),
            _score(4, 40),
        ])

    def test_partition_disjoint_and_exhaustive(self, container):
        for mode in (VIEW_OBSERVED, VIEW_PREDICTED, VIEW_BOTH):
            c = container.classify(mode, 5.0)
            observed = {s.pair_key for s in c.observed}
            unobserved = {s.pair_key for s in c.unobserved}
            assert not observed & unobserved
            assert observed | unobserved == {s.pair_key for s in container}

    def test_cutoff_is_inclusive(self, container):
        c = container.classify(VIEW_BOTH, 5.0)
        assert [s.i for s in c.observed] == [1, 2]

    def test_visible_by_mode(self, container):
        assert [s.i for s in container.classify(VIEW_OBSERVED).visible] == [1, 2]
        assert [s.i for s in container.classify(VIEW_PREDICTED).visible] == [3, 4]
        assert [s.i for s in container.classify(VIEW_BOTH).visible] == [1, 2, 3, 4]

    def test_invalid_mode(self, container):
        with pytest.raises(ValueError):
            container.classify("everything")


# ═══════════════════════════════════════════════════════════════════════
# Test Ranked Predictions
# ═══════════════════════════════════════════════════════════════════════


class TestRankedPredictions:
    """Test the top-N predicted / correct split."""

    @pytest.fixture
    def container(self):
        return build_contact_container([
            {"i": 3, "j": 40, "dist": 3.0},
            {"i": 5, "j": 45, "dist": 8.0},
        ])

    def test_scenario_half_correct(self, container):
        result = container.ranked_predictions(2, min_linear_separation=5, correct_cutoff=5.0)
        assert len(result.predicted) == 2
        assert len(result.correct) == 1
        assert result.correct[0].pair_key == (3, 40)
        assert result.percent_correct == 50.0

    def test_top_n_zero(self, container):
        result = container.ranked_predictions(0)
        assert result.predicted == []
        assert result.correct == []

    def test_negative_top_n(self, container):
        assert container.ranked_predictions(-3).predicted == []

    def test_linear_separation_filter(self):
        container = ContactContainer([_score(1, 3, dist=2.0), _score(1, 9, dist=2.0)])
        result = container.ranked_predictions(5, min_linear_separation=5)
        assert [s.pair_key for s in result.predicted] == [(1, 9)]

    def test_linear_distance_filter(self):
        keep = linear_distance_filter(5)
        assert keep(_score(10, 15)) is True
        assert keep(_score(15, 11)) is False

    def test_top_n_slice_in_container_order(self):
        container = ContactContainer([_score(1, 20 + k, dist=10.0) for k in range(10)])
        result = container.ranked_predictions(3)
        assert [s.j for s in result.predicted] == [20, 21, 22]

    def test_correct_cutoff_is_strict(self):
        container = ContactContainer([_score(1, 20, dist=5.0)])
        assert container.ranked_predictions(1, correct_cutoff=5.0).correct == []

    def test_probability_filter(self):
        container = ContactContainer([
            _score(1, 20, probability=0.5),
            _score(2, 30, probability=0.95),
            _score(3, 40),
        ])
        result = container.ranked_predictions(10, filters=[min_probability_filter(0.9)])
        assert [s.i for s in result.predicted] == [2, 3]

    def test_filters_are_conjunctive(self):
        container = ContactContainer([
            _score(1, 20, score=0.1, probability=0.95),
            _score(2, 30, score=0.8, probability=0.95),
        ])
        result = container.ranked_predictions(
            10, filters=[min_probability_filter(0.9), min_score_filter(0.5)],
        )
        assert [s.i for s in result.predicted] == [2]

    def test_empty_percent_correct(self):
        assert PredictionResult().percent_correct == 0.0

    def test_incorrect(self, container):
        result = container.ranked_predictions(2)
        assert [s.pair_key for s in result.incorrect] == [(5, 45)]


# ═══════════════════════════════════════════════════════════════════════
# Test Data-Set Loading
# ═══════════════════════════════════════════════════════════════════════


class TestDataSetLoading:
    """Test row narrowing, mapping and atomic swaps."""

    def test_score_from_row(self):
        s = score_from_row({"i": "3", "j": "40", "cn": "0.7", "dist": "", "A_i": "K"})
        assert (s.i, s.j, s.score) == (3, 40, 0.7)
        assert s.dist == math.inf
        assert s.probability is None
        assert s.A_i == "K"

    def test_malformed_rows(self):
        for row in ({"j": 4}, {"i": "x", "j": 4}, {"i": 1.5, "j": 4}, {"i": 1, "j": 4, "dist": "far"}):
            with pytest.raises(DataConsistencyError):
                score_from_row(row)

    def test_load_with_mapping(self):
        protein = renumber_structure(build_alpha_helix(12), 100)
        dataset = ContactDataSet("helix")
        container = dataset.load(simulate_coupling_rows(protein), simulate_residue_mapping(protein))
        assert container.chain_length == 112
        assert all(s.i > 100 and s.j > 100 for s in container)
        assert dataset.container is container

    def test_mapping_miss_keeps_previous(self):
        dataset = ContactDataSet("set")
        first = dataset.load([{"i": 1, "j": 10, "dist": 3.0}])
        with pytest.raises(DataConsistencyError):
            dataset.load(
                [{"i": 1, "j": 10}, {"i": 2, "j": 99}],
                [ResidueMappingEntry(1, 1, "A"), ResidueMappingEntry(2, 2, "C"),
                 ResidueMappingEntry(10, 10, "D")],
                name="broken",
            )
        assert dataset.container is first
        assert dataset.name == "set"

    def test_with_structure_distances(self):
        helix = build_alpha_helix(10)
        container = ContactContainer([_score(1, 6), _score(1, 999)])
        measured = with_structure_distances(container, helix, PROXIMITY_C_ALPHA)
        assert measured.get(1, 6).dist == pytest.approx(helix.ca_distance(1, 6))
        assert measured.get(1, 999).dist == math.inf


# ═══════════════════════════════════════════════════════════════════════
# Test Selection Store
# ═══════════════════════════════════════════════════════════════════════


class TestSelectionStore:
    """Test the residue selection state machine."""

    @pytest.fixture
    def store(self):
        return ResidueSelectionStore()

    def test_initial_state(self, store):
        state = store.state
        assert isinstance(state, SelectionState)
        assert state.arity == ARITY_EMPTY
        assert dict(state.locked_residue_pairs) == {}

    def test_pick_pair_locks(self, store):
        store.pick(40)
        assert store.state.arity == ARITY_ARMED
        store.pick(3)
        state = store.state
        assert dict(state.locked_residue_pairs) == {"3,40": (3, 40)}
        assert state.candidate_residues == ()
        assert state.arity == ARITY_EMPTY

    def test_repick_same_residue_is_noop(self, store):
        store.pick(7)
        assert store.pick(7) is False
        assert store.state.candidate_residues == (7,)
        assert dict(store.state.locked_residue_pairs) == {}

    def test_pair_key(self):
        assert pair_key((40, 3)) == "3,40"

    def test_unlock(self, store):
        store.lock_pair(5, 2)
        store.unlock("2,5")
        assert dict(store.state.locked_residue_pairs) == {}

    def test_unlock_absent_is_noop(self, store):
        assert store.unlock("1,2") is False

    def test_lock_equal_residues_is_noop(self, store):
        assert store.lock_pair(4, 4) is False
        assert dict(store.state.locked_residue_pairs) == {}

    def test_clear_transient_after_hover_and_leave(self, store):
        store.lock_pair(1, 30)
        store.hover_residues([12])
        store.pick(8)
        store.clear_transient()
        state = store.state
        assert dict(state.locked_residue_pairs) == {"1,30": (1, 30)}
        assert state.hovered_residues == ()
        assert state.candidate_residues == ()

    def test_clear_all(self, store):
        section = SecondaryStructureSection("H", 1, 10)
        store.lock_pair(1, 30)
        store.pick(8)
        store.hover_residues([12])
        store.select_secondary_structure(section)
        store.clear_all()
        state = store.state
        assert not state.has_selection
        assert state.hovered_residues == ()

    def test_snapshot_is_immutable(self, store):
        store.lock_pair(1, 2)
        snap = store.snapshot()
        with pytest.raises(TypeError):
            snap.locked_residue_pairs["3,4"] = (3, 4)
        store.lock_pair(3, 4)
        assert list(snap.locked_residue_pairs) == ["1,2"]

    def test_highlighted_union(self, store):
        store.hover_residues([9, 4])
        store.pick(9)
        assert store.state.highlighted_residues == [4, 9]

    def test_subscribers_notified_on_change_only(self, store):
        seen = []
        unsubscribe = store.subscribe(seen.append)
        store.pick(3)
        store.pick(3)
        store.unlock("1,2")
        assert len(seen) == 1
        assert seen[0].candidate_residues == (3,)
        unsubscribe()
        store.pick(4)
        assert len(seen) == 1

    def test_subscriber_sees_committed_state(self, store):
        observed = []
        store.subscribe(lambda state: observed.append(store.state is state))
        store.hover_residues([1])
        assert observed == [True]

    def test_dispatch_and_replay(self, store):
        store.dispatch("pick", 3)
        store.dispatch("pick", 17)
        store.dispatch("hover_residues", [5])
        store.dispatch("select_secondary_structure", SecondaryStructureSection("E", 2, 6))
        replayed = ResidueSelectionStore.replay(store.history)
        assert dict(replayed.state.locked_residue_pairs) == dict(store.state.locked_residue_pairs)
        assert replayed.state.hovered_residues == store.state.hovered_residues
        assert replayed.state.selected_secondary_structures == store.state.selected_secondary_structures

    def test_history_records_direct_calls(self, store):
        store.pick(3)
        store.clear_transient()
        assert store.history == [("pick", (3,)), ("clear_transient", ())]

    def test_failed_operation_not_recorded(self, store):
        store.pick(3)
        with pytest.raises(TypeError):
            store.hover_residues(None)
        assert store.history == [("pick", (3,))]
        replayed = ResidueSelectionStore.replay(store.history)
        assert replayed.state.candidate_residues == (3,)

    def test_history_is_bounded(self):
        store = ResidueSelectionStore(history_limit=2)
        store.hover_residues([1])
        store.hover_residues([2])
        store.hover_residues([3])
        assert store.history == [("hover_residues", ([2],)), ("hover_residues", ([3],))]

    def test_dispatch_unknown(self, store):
        with pytest.raises(ValueError):
            store.dispatch("state")
        with pytest.raises(ValueError):
            store.dispatch("drop_everything")


# ═══════════════════════════════════════════════════════════════════════
# Test Pick Routing
# ═══════════════════════════════════════════════════════════════════════


class TestPickRouting:
    """Test click / hover events routed into store operations."""

    @pytest.fixture
    def store(self):
        return ResidueSelectionStore()

    def test_pick_result_validation(self):
        with pytest.raises(ValueError):
            PickResult("bond", (1,))
        with pytest.raises(ValueError):
            PickResult(PICK_DISTANCE, (1,))

    def test_atom_clicks_lock(self, store):
        on_click(store, PickResult(PICK_ATOM, (12,)))
        on_click(store, PickResult(PICK_ATOM, (4,)))
        assert dict(store.state.locked_residue_pairs) == {"4,12": (4, 12)}

    def test_distance_click_unlocks(self, store):
        store.lock_pair(4, 12)
        on_click(store, PickResult(PICK_DISTANCE, (12, 4)))
        assert dict(store.state.locked_residue_pairs) == {}

    def test_empty_click_snaps_to_hover(self, store):
        store.pick(4)
        store.hover_residues([20])
        on_click(store, None)
        assert "4,20" in store.state.locked_residue_pairs

    def test_empty_click_clears_transient(self, store):
        store.pick(4)
        on_click(store, None)
        assert store.state.arity == ARITY_EMPTY

    def test_hover(self, store):
        on_hover(store, PickResult(PICK_ATOM, (8,)))
        assert store.state.hovered_residues == (8,)
        on_hover(store, None)
        assert store.state.hovered_residues == ()

    def test_hover_kept_while_armed(self, store):
        store.pick(2)
        on_hover(store, PickResult(PICK_ATOM, (8,)))
        on_hover(store, None)
        assert store.state.hovered_residues == (8,)

    def test_section_choice_selects_once(self, store):
        section = SecondaryStructureSection("H", 1, 10)
        assert on_section_choice(store, section, None) is True
        assert store.state.selected_secondary_structures == (section,)
        store.clear_all()
        # chooser still shows the same section on the next redraw
        assert on_section_choice(store, section, section) is False
        assert store.state.selected_secondary_structures == ()

    def test_section_choice_change_and_empty(self, store):
        first = SecondaryStructureSection("H", 1, 10)
        second = SecondaryStructureSection("E", 12, 18)
        on_section_choice(store, first, None)
        on_section_choice(store, second, first)
        assert store.state.selected_secondary_structures == (first, second)
        assert on_section_choice(store, None, second) is False

    def test_contact_map_events(self, store):
        on_contact_map_hover(store, 3, 30)
        assert store.state.hovered_residues == (3, 30)
        on_contact_map_click(store, 30, 3)
        assert "3,30" in store.state.locked_residue_pairs


# ═══════════════════════════════════════════════════════════════════════
# Test Scene
# ═══════════════════════════════════════════════════════════════════════


class TestPlotlyScene:
    """Test the Plotly-backed scene."""

    @pytest.fixture
    def scene(self):
        return PlotlyScene()

    def test_attach_copies_structure(self, scene):
        helix = build_alpha_helix(10)
        handle = scene.attach(helix)
        scene.structure(handle).translate([5.0, 0.0, 0.0])
        assert helix.residues[0].ca_position[0] == pytest.approx(2.3)

    def test_handles_never_reused(self, scene):
        first = scene.attach(build_alpha_helix(5))
        scene.detach(first)
        second = scene.attach(build_alpha_helix(5))
        assert second.id != first.id
        assert scene.handles() == [second]

    def test_unknown_handle(self, scene):
        with pytest.raises(KeyError):
            scene.detach(StructureHandle(-1))

    def test_remove_representation_twice(self, scene):
        handle = scene.attach(build_alpha_helix(5))
        rep = scene.add_representation(handle, REP_BALL_AND_STICK, residues=[1])
        assert scene.remove_representation(rep) is True
        assert scene.remove_representation(rep) is False

    def test_invalid_kind(self, scene):
        handle = scene.attach(build_alpha_helix(5))
        with pytest.raises(ValueError):
            scene.add_representation(handle, "wireframe")

    def test_pick_narrowing(self, scene):
        handle = scene.attach(build_alpha_helix(5))
        pick = scene.pick({"points": [{"customdata": [PICK_ATOM, handle.id, 3, "CB"]}]})
        assert pick == PickResult(PICK_ATOM, (3,), structure_id=handle.id, atom="CB")
        pick = scene.pick([PICK_DISTANCE, handle.id, 1, 4])
        assert pick.residues == (1, 4)

    def test_pick_unknown_payloads(self, scene):
        handle = scene.attach(build_alpha_helix(5))
        assert scene.pick(None) is None
        assert scene.pick({"points": []}) is None
        assert scene.pick(["bond", handle.id, 1, 2]) is None
        assert scene.pick([PICK_ATOM, handle.id + 1000, 1, "CA"]) is None

    def test_figure(self, scene):
        handle = scene.attach(build_alpha_helix(10))
        scene.add_representation(handle, REP_CARTOON)
        scene.add_representation(handle, REP_BALL_AND_STICK, residues=[2, 6])
        scene.add_representation(handle, REP_DISTANCE, residues=[2, 6], atoms=["CB", "CA"], label="6.1 Å")
        scene.add_representation(
            handle, REP_SECONDARY_STRUCTURE, section=SecondaryStructureSection("H", 1, 10),
        )
        scene.fit_camera(handle)
        fig = scene.figure()
        assert fig is not None
        assert len(fig.data) == 5


# ═══════════════════════════════════════════════════════════════════════
# Test Representation Derivation
# ═══════════════════════════════════════════════════════════════════════


class TestRepresentationDerivation:
    """Test the selection → highlight derivation."""

    @pytest.fixture
    def helix(self):
        return build_alpha_helix(30)

    @pytest.fixture
    def store(self):
        return ResidueSelectionStore()

    def test_empty_state(self, helix, store):
        assert derive_representation_specs(store.state, helix) == []

    def test_single_candidate_no_distance(self, helix, store):
        store.pick(5)
        specs = derive_representation_specs(store.state, helix)
        assert [s.kind for s in specs] == [REP_BALL_AND_STICK]

    def test_candidate_hover_union(self, helix, store):
        store.hover_residues([12, 5])
        store.pick(12)
        specs = derive_representation_specs(store.state, helix)
        assert [s.kind for s in specs] == [REP_BALL_AND_STICK, REP_DISTANCE]
        assert specs[0].residues == (5, 12)
        assert specs[1].residues == (5, 12)

    def test_locked_pairs(self, helix, store):
        store.lock_pair(3, 20)
        store.lock_pair(8, 25)
        specs = derive_representation_specs(store.state, helix)
        assert [s.kind for s in specs] == [REP_BALL_AND_STICK, REP_DISTANCE] * 2

    def test_sections_not_deduplicated(self, helix, store):
        section = SecondaryStructureSection("H", 1, 30)
        store.hover_secondary_structures([section])
        store.select_secondary_structure(section)
        specs = derive_representation_specs(store.state, helix)
        assert [s.kind for s in specs] == [REP_SECONDARY_STRUCTURE] * 2

    def test_proximity_changes_atoms_not_presence(self, helix, store):
        store.lock_pair(3, 20)
        closest = derive_representation_specs(store.state, helix, PROXIMITY_CLOSEST)
        ca = derive_representation_specs(store.state, helix, PROXIMITY_C_ALPHA)
        assert [s.kind for s in closest] == [s.kind for s in ca]
        assert ca[1].atoms == ("CA", "CA")
        atom_i, atom_j, _ = helix.min_distance_atoms(3, 20)
        assert closest[1].atoms == (atom_i, atom_j)

    def test_missing_residue_closest(self, helix, store):
        store.lock_pair(3, 999)
        closest = derive_representation_specs(store.state, helix, PROXIMITY_CLOSEST)
        assert [s.kind for s in closest] == [REP_BALL_AND_STICK]
        ca = derive_representation_specs(store.state, helix, PROXIMITY_C_ALPHA)
        assert [s.kind for s in ca] == [REP_BALL_AND_STICK, REP_DISTANCE]

    def test_labels_flag(self, helix, store):
        store.lock_pair(3, 20)
        specs = derive_representation_specs(store.state, helix, show_distance_labels=False)
        assert specs[1].show_label is False


# ═══════════════════════════════════════════════════════════════════════
# Test Synchronizer
# ═══════════════════════════════════════════════════════════════════════


class TestSynchronizer:
    """Test the store → scene synchronizer."""

    @pytest.fixture
    def setup(self):
        store = ResidueSelectionStore()
        scene = PlotlyScene()
        sync = StructureRepresentationSynchronizer(scene, store)
        helix = build_alpha_helix(30)
        exp = sync.attach(helix, ROLE_EXPERIMENTAL)
        pred = sync.attach(perturb_structure(helix), ROLE_PREDICTED)
        return store, scene, sync, exp, pred

    @staticmethod
    def _shape(scene, handle):
        return sorted((r.kind, r.residues) for r in scene.representations(handle))

    def test_initial_styles(self, setup):
        store, scene, sync, exp, pred = setup
        active = sync.active_representations
        assert active[ROLE_EXPERIMENTAL].structure_kind == REP_DEFAULT
        assert active[ROLE_PREDICTED].structure_kind == REP_CARTOON
        assert [r.kind for r in scene.representations(exp)] == [REP_DEFAULT]

    def test_store_change_updates_all_structures(self, setup):
        store, scene, sync, exp, pred = setup
        store.lock_pair(3, 20)
        for handle in (exp, pred):
            kinds = [r.kind for r in scene.representations(handle)]
            assert sorted(kinds[1:]) == [REP_BALL_AND_STICK, REP_DISTANCE]

    def test_recompute_idempotent(self, setup):
        store, scene, sync, exp, pred = setup
        store.pick(4)
        store.hover_residues([15])
        store.lock_pair(2, 28)
        before = self._shape(scene, exp)
        handles_before = list(sync.active_representations[ROLE_EXPERIMENTAL].reps)
        sync.recompute()
        sync.recompute()
        assert self._shape(scene, exp) == before
        handles_after = sync.active_representations[ROLE_EXPERIMENTAL].reps
        assert len(handles_after) == len(handles_before)
        assert not set(h.id for h in handles_after) & set(h.id for h in handles_before)

    def test_full_replace_drops_stale(self, setup):
        store, scene, sync, exp, pred = setup
        store.lock_pair(3, 20)
        store.unlock("3,20")
        assert [r.kind for r in scene.representations(exp)] == [REP_DEFAULT]

    def test_set_structure_style(self, setup):
        store, scene, sync, exp, pred = setup
        store.lock_pair(3, 20)
        sync.set_structure_style(ROLE_EXPERIMENTAL, REP_SPACEFILL)
        kinds = [r.kind for r in scene.representations(exp)]
        assert kinds[0] == REP_SPACEFILL
        assert sorted(kinds[1:]) == [REP_BALL_AND_STICK, REP_DISTANCE]
        assert sync.active_representations[ROLE_PREDICTED].structure_kind == REP_CARTOON

    def test_invalid_style_and_role(self, setup):
        store, scene, sync, exp, pred = setup
        with pytest.raises(ValueError):
            sync.set_structure_style(ROLE_EXPERIMENTAL, REP_DISTANCE)
        with pytest.raises(ValueError):
            sync.set_structure_style("theoretical", REP_CARTOON)
        with pytest.raises(ValueError):
            sync.attach(build_alpha_helix(5), ROLE_PREDICTED)

    def test_set_proximity(self, setup):
        store, scene, sync, exp, pred = setup
        store.lock_pair(3, 20)
        sync.set_proximity(PROXIMITY_C_ALPHA)
        dist = [r for r in scene.representations(exp) if r.kind == REP_DISTANCE][0]
        assert dist.atoms == ("CA", "CA")

    def test_distance_labels(self, setup):
        store, scene, sync, exp, pred = setup
        store.lock_pair(3, 20)
        dist = [r for r in scene.representations(exp) if r.kind == REP_DISTANCE][0]
        assert dist.label.endswith("Å")
        sync.set_distance_labels(False)
        dist = [r for r in scene.representations(exp) if r.kind == REP_DISTANCE][0]
        assert dist.label is None

    def test_detach(self, setup):
        store, scene, sync, exp, pred = setup
        sync.detach(pred)
        assert ROLE_PREDICTED not in sync.active_representations
        assert scene.handles() == [exp]
        store.lock_pair(3, 20)

    def test_close_stops_following(self, setup):
        store, scene, sync, exp, pred = setup
        sync.close()
        sync.close()
        store.lock_pair(3, 20)
        assert [r.kind for r in scene.representations(exp)] == [REP_DEFAULT]

    def test_render_requested(self, setup):
        store, scene, sync, exp, pred = setup
        before = scene.render_count
        store.pick(3)
        assert scene.render_count > before


# ═══════════════════════════════════════════════════════════════════════
# Test Superposition
# ═══════════════════════════════════════════════════════════════════════


class _CountingSuperposer:
    def __init__(self):
        self.calls = []

    def __call__(self, mobile, reference):
        self.calls.append((mobile.name, reference.name))
        return 0.0


class TestSuperposition:
    """Test layout modes and the Kabsch fit."""

    @pytest.fixture
    def scene(self):
        scene = PlotlyScene()
        for n in range(3):
            scene.attach(build_alpha_helix(10, name=f"helix {n}"))
        return scene

    def test_toggle_three_structures(self, scene):
        fit = _CountingSuperposer()
        controller = SuperpositionController(scene, superpose=fit)
        controller.toggle()
        assert controller.mode == SUPERPOSITION_BOTH
        assert fit.calls == [("helix 1", "helix 0"), ("helix 2", "helix 0")]
        for handle in scene.handles():
            np.testing.assert_allclose(scene.position(handle), [0.0, 0.0, 0.0])
        assert scene.camera_target == scene.handles()[0]

    def test_same_mode_is_noop(self, scene):
        fit = _CountingSuperposer()
        controller = SuperpositionController(scene, superpose=fit)
        controller.set_mode(SUPERPOSITION_BOTH)
        assert controller.set_mode(SUPERPOSITION_BOTH) is False
        assert len(fit.calls) == 2

    def test_fewer_than_two_structures(self):
        scene = PlotlyScene()
        handle = scene.attach(build_alpha_helix(10))
        fit = _CountingSuperposer()
        controller = SuperpositionController(scene, superpose=fit)
        controller.set_mode(SUPERPOSITION_BOTH)
        assert fit.calls == []
        np.testing.assert_allclose(scene.position(handle), [0.0, 0.0, 0.0])
        assert scene.camera_target is None

    def test_no_structures(self):
        fit = _CountingSuperposer()
        controller = SuperpositionController(PlotlyScene(), superpose=fit)
        controller.toggle()
        assert fit.calls == []

    def test_side_by_side_layout(self, scene):
        controller = SuperpositionController(scene, superpose=_CountingSuperposer())
        controller.set_mode(SUPERPOSITION_BOTH)
        controller.set_mode(SUPERPOSITION_NONE)
        for k, handle in enumerate(scene.handles()):
            np.testing.assert_allclose(scene.position(handle), [k * SPACING, 0.0, 0.0])
        assert scene.camera_target is None

    def test_invalid_mode(self, scene):
        with pytest.raises(ValueError):
            SuperpositionController(scene).set_mode("overlay")

    def test_kabsch_recovers_rigid_motion(self):
        helix = build_helix_turn_helix()
        moved = perturb_structure(helix, noise=0.0)
        assert not np.allclose(moved.ca_coordinates, helix.ca_coordinates)
        rmsd = kabsch_superpose(moved, helix)
        assert rmsd == pytest.approx(0.0, abs=1e-6)
        np.testing.assert_allclose(moved.ca_coordinates, helix.ca_coordinates, atol=1e-6)
        np.testing.assert_allclose(moved.cb_coordinates, helix.cb_coordinates, atol=1e-6)

    def test_kabsch_needs_shared_residues(self):
        helix = build_alpha_helix(10)
        with pytest.raises(ValueError):
            kabsch_superpose(renumber_structure(helix, 1000), helix)

    def test_failed_fit_falls_back_to_side_by_side(self):
        scene = PlotlyScene()
        helix = build_alpha_helix(12)
        first = scene.attach(helix)
        second = scene.attach(renumber_structure(helix, 1000))
        controller = SuperpositionController(scene)
        assert controller.set_mode(SUPERPOSITION_BOTH) is True
        assert controller.mode == SUPERPOSITION_BOTH
        np.testing.assert_allclose(scene.position(first), [0.0, 0.0, 0.0])
        np.testing.assert_allclose(scene.position(second), [SPACING, 0.0, 0.0])
        assert scene.camera_target is None
        assert controller.worst_rmsd() is None

    def test_refresh_retries_after_failed_fit(self):
        scene = PlotlyScene()
        helix = build_alpha_helix(12)
        scene.attach(helix)
        broken = scene.attach(renumber_structure(helix, 1000))
        controller = SuperpositionController(scene)
        controller.set_mode(SUPERPOSITION_BOTH)
        scene.detach(broken)
        scene.attach(perturb_structure(helix, noise=0.0))
        controller.refresh()
        assert controller.worst_rmsd() == pytest.approx(0.0, abs=1e-6)
        assert scene.camera_target == scene.handles()[0]

    def test_default_fit_in_scene(self):
        scene = PlotlyScene()
        coil = build_random_coil(20)
        scene.attach(coil)
        scene.attach(perturb_structure(coil, noise=0.5))
        controller = SuperpositionController(scene)
        controller.toggle()
        assert controller.worst_rmsd() < 2.0


# ═══════════════════════════════════════════════════════════════════════
# Test Analysis
# ═══════════════════════════════════════════════════════════════════════


class TestAnalysis:
    """Test the high-level analysis pipelines."""

    @pytest.fixture
    def dataset(self):
        return load_preset_dataset(build_alpha_helix(30))

    def test_default_top_n(self, dataset):
        a = analyze_predictions(dataset, min_probability=0.0)
        assert isinstance(a, PredictionAnalysis)
        assert a.chain_length == 30
        assert a.top_n == 15
        assert len(a.prediction.predicted) == 15
        assert 0.0 <= a.percent_correct <= 100.0

    def test_range_breakdown(self, dataset):
        a = analyze_predictions(dataset, top_n=40, min_linear_separation=6, min_probability=0.0)
        assert sum(a.range_counts.values()) == len(a.prediction.predicted)
        assert a.range_counts["local"] == 0

    def test_structure_remeasure(self, dataset):
        helix = build_alpha_helix(30)
        a = analyze_predictions(dataset, min_probability=0.0, structure=helix, proximity=PROXIMITY_C_ALPHA)
        s = a.prediction.predicted[0]
        assert s.dist == pytest.approx(helix.ca_distance(s.i, s.j))

    def test_explanation(self, dataset):
        assert "L = 30" in analyze_predictions(dataset).explanation

    def test_explanation_bullets(self, dataset):
        lines = analyze_predictions(dataset).explanation.strip().splitlines()
        assert all(line.startswith("• ") for line in lines[1:])

    def test_sweep(self, dataset):
        sweep = analyze_top_n_sweep(dataset, min_probability=0.0)
        assert isinstance(sweep, TopNSweepAnalysis)
        assert sweep.top_n_values == [7, 15, 30, 60, 90]
        assert sweep.n_predicted == sweep.top_n_values
        assert len(sweep.precisions) == 5

    def test_comparison(self):
        comparison = compare_preset_datasets(min_probability=0.0)
        assert isinstance(comparison, DatasetComparisonResult)
        assert len(comparison.summary_table) == 6
        assert "Precision %" in comparison.summary_table[0]

    def test_summary(self, dataset):
        text = prediction_summary(analyze_predictions(dataset, min_probability=0.0))
        assert "α-Helix" in text
        assert "Precision" in text


# ═══════════════════════════════════════════════════════════════════════
# Test Visualization
# ═══════════════════════════════════════════════════════════════════════


class TestPlotlyRenderer:
    """Test interactive figure construction."""

    @pytest.fixture
    def analysis(self):
        return analyze_predictions(load_preset_dataset(build_alpha_helix(20)), min_probability=0.0)

    def test_contact_map(self, analysis):
        store = ResidueSelectionStore()
        store.lock_pair(2, 15)
        store.pick(4)
        fig = PlotlyRenderer.contact_map(analysis, store.state)
        assert len(fig.data) == 4
        assert list(fig.data[3].customdata[0]) == [2, 15]

    def test_contact_map_without_state(self, analysis):
        assert len(PlotlyRenderer.contact_map(analysis).data) == 3

    def test_precision_curve(self):
        sweep = analyze_top_n_sweep(load_preset_dataset(build_alpha_helix(20)))
        fig = PlotlyRenderer.precision_curve(sweep)
        assert len(fig.data) == 1

    def test_range_breakdown_bar(self, analysis):
        fig = PlotlyRenderer.range_breakdown_bar(analysis)
        assert list(fig.data[0].x) == list(CONTACT_RANGES)


class TestMatplotlibRenderer:
    """Test static figure construction."""

    def test_contact_map(self):
        analysis = analyze_predictions(load_preset_dataset(build_alpha_helix(20)), min_probability=0.0)
        fig = MatplotlibRenderer.contact_map(analysis, ResidueSelectionStore().state)
        assert fig is not None
        plt_close(fig)

    def test_precision_curve(self):
        sweep = analyze_top_n_sweep(load_preset_dataset(build_alpha_helix(20)))
        fig = MatplotlibRenderer.precision_curve(sweep)
        assert fig is not None
        plt_close(fig)


def plt_close(fig):
    """Close a Matplotlib figure to free memory."""
    import matplotlib.pyplot as plt
    plt.close(fig)


# ═══════════════════════════════════════════════════════════════════════
# Test CLI
# ═══════════════════════════════════════════════════════════════════════


class TestCLI:
    """Test CLI argument parsing."""

    def test_default_args(self):
        from main import build_parser
        parser = build_parser()
        args = parser.parse_args([])
        assert args.protein == "helix"
        assert args.top_n is None
        assert args.linear_sep == DEFAULT_LINEAR_SEPARATION
        assert args.proximity == PROXIMITY_CLOSEST

    def test_sweep_mode(self):
        from main import build_parser
        args = build_parser().parse_args(["--sweep", "--protein", "sheet"])
        assert args.sweep is True
        assert args.protein == "sheet"

    def test_compare_mode(self):
        from main import build_parser
        args = build_parser().parse_args(["--compare"])
        assert args.compare is True

    def test_select_mode(self):
        from main import build_parser
        args = build_parser().parse_args(["--select", "--proximity", "c-alpha"])
        assert args.select is True
        assert args.proximity == "c-alpha"

    def test_exclusive_modes(self):
        from main import build_parser
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--sweep", "--compare"])

    def test_numeric_flags(self):
        from main import build_parser
        args = build_parser().parse_args(
            ["--top-n", "12", "--linear-sep", "6", "--min-prob", "0.5", "--cutoff", "8.0"]
        )
        assert (args.top_n, args.linear_sep, args.min_prob, args.cutoff) == (12, 6, 0.5, 8.0)

    def test_select_runs(self, capsys):
        from main import build_parser, cmd_select
        args = build_parser().parse_args(["--select", "--min-prob", "0.0"])
        cmd_select(args)
        out = capsys.readouterr().out
        assert "locks" in out
        assert "RMSD" in out
