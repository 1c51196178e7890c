"""
Contact Sync — Structure Representation Synchronizer.

Keeps the highlights drawn on each attached structure in step with the
selection store.

Every store change triggers a full replace: the representations the
synchronizer added last time are removed and the set derived from the
current state is added. The set itself comes from the pure function
``derive_representation_specs``:

    1. candidate ∪ hovered residues (sorted, de-duplicated): one
       ball+stick, plus a distance between the first two when there are two
    2. every locked pair: one ball+stick and one distance
    3. every hovered and every selected secondary-structure section
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from contact_sync.scene import (
    BASE_STYLE_KINDS,
    REP_BALL_AND_STICK,
    REP_CARTOON,
    REP_DEFAULT,
    REP_DISTANCE,
    REP_SECONDARY_STRUCTURE,
    RepresentationHandle,
    Scene,
    StructureHandle,
    validate_representation_kind,
)
from contact_sync.selection import ResidueSelectionStore, SelectionState
from contact_sync.structures import (
    PROXIMITY_C_ALPHA,
    PROXIMITY_CLOSEST,
    ProteinStructure,
    SecondaryStructureSection,
    validate_proximity,
)

logger = logging.getLogger(__name__)


ROLE_EXPERIMENTAL: str = "experimental"
ROLE_PREDICTED: str = "predicted"
STRUCTURE_ROLES: Tuple[str, ...] = (ROLE_EXPERIMENTAL, ROLE_PREDICTED)

DEFAULT_STRUCTURE_STYLES: Dict[str, str] = {
    ROLE_EXPERIMENTAL: REP_DEFAULT,
    ROLE_PREDICTED: REP_CARTOON,
}
"""Base style applied to a structure when it is attached."""


def validate_role(role: str) -> str:
    if role not in STRUCTURE_ROLES:
        raise ValueError(f"Unknown structure role {role!r}; expected one of {STRUCTURE_ROLES}")
    return role


# ═══════════════════════════════════════════════════════════════════════
# Deriving the representation set
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class RepresentationSpec:
    """One highlight to draw, independent of any scene."""
    kind: str
    residues: Tuple[int, ...] = ()
    atoms: Tuple[str, ...] = ()
    section: Optional[SecondaryStructureSection] = None
    show_label: bool = False


def _distance_spec(
    pair: Sequence[int],
    structure: ProteinStructure,
    proximity: str,
    show_label: bool,
) -> Optional[RepresentationSpec]:
    res_i, res_j = pair[0], pair[1]
    if proximity == PROXIMITY_C_ALPHA:
        atoms = ("CA", "CA")
    else:
        if not structure.has_residues(res_i, res_j):
            return None
        atom_i, atom_j, _ = structure.min_distance_atoms(res_i, res_j)
        atoms = (atom_i, atom_j)
    return RepresentationSpec(REP_DISTANCE, (res_i, res_j), atoms, show_label=show_label)


def derive_representation_specs(
    state: SelectionState,
    structure: ProteinStructure,
    proximity: str = PROXIMITY_CLOSEST,
    show_distance_labels: bool = True,
) -> List[RepresentationSpec]:
    """Highlights implied by a selection state on one structure.

    Parameters
    ----------
    state : SelectionState
    structure : ProteinStructure
        Used to resolve the closest atom pair of a distance.
    proximity : str
        'closest' or 'c-alpha'.
    show_distance_labels : bool

    Returns
    -------
    List[RepresentationSpec]
        In group order: candidate/hover, locked pairs, sections.
    """
    validate_proximity(proximity)
    specs: List[RepresentationSpec] = []

    highlighted = state.highlighted_residues
    if highlighted:
        specs.append(RepresentationSpec(REP_BALL_AND_STICK, tuple(highlighted)))
        if len(highlighted) >= 2:
            dist = _distance_spec(highlighted[:2], structure, proximity, show_distance_labels)
            if dist is not None:
                specs.append(dist)

    for pair in state.locked_residue_pairs.values():
        specs.append(RepresentationSpec(REP_BALL_AND_STICK, tuple(pair)))
        dist = _distance_spec(pair, structure, proximity, show_distance_labels)
        if dist is not None:
            specs.append(dist)

    sections = state.hovered_secondary_structures + state.selected_secondary_structures
    for section in sections:
        specs.append(RepresentationSpec(
            REP_SECONDARY_STRUCTURE, tuple(section.residues), section=section,
        ))

    return specs


# ═══════════════════════════════════════════════════════════════════════
# Synchronizer
# ═══════════════════════════════════════════════════════════════════════


@dataclass
class ActiveRepresentation:
    """What the synchronizer has drawn on one structure."""
    handle: StructureHandle
    structure_kind: str
    base: Optional[RepresentationHandle] = None
    reps: List[RepresentationHandle] = field(default_factory=list)
    specs: List[RepresentationSpec] = field(default_factory=list)


class StructureRepresentationSynchronizer:
    """Mirror the selection store onto every attached structure.

    Parameters
    ----------
    scene : Scene
    store : ResidueSelectionStore
        Subscribed to on construction; ``close()`` unsubscribes.
    proximity : str
        Distance metric for drawn distances.
    show_distance_labels : bool
    structure_styles : Dict[str, str] | None
        Base style per role; defaults to ``DEFAULT_STRUCTURE_STYLES``.
    """

    def __init__(
        self,
        scene: Scene,
        store: ResidueSelectionStore,
        proximity: str = PROXIMITY_CLOSEST,
        show_distance_labels: bool = True,
        structure_styles: Optional[Dict[str, str]] = None,
    ):
        self.scene = scene
        self.store = store
        self.proximity = validate_proximity(proximity)
        self.show_distance_labels = show_distance_labels
        self.structure_styles: Dict[str, str] = dict(DEFAULT_STRUCTURE_STYLES)
        for role, kind in (structure_styles or {}).items():
            validate_role(role)
            self.structure_styles[role] = validate_representation_kind(kind, BASE_STYLE_KINDS)
        self._active: Dict[str, ActiveRepresentation] = {}
        self._unsubscribe = store.subscribe(self._on_state_change)

    @property
    def active_representations(self) -> Dict[str, ActiveRepresentation]:
        return dict(self._active)

    def _on_state_change(self, state: SelectionState) -> None:
        self.recompute()

    # ── Structures ──

    def attach(self, structure: ProteinStructure, role: str) -> StructureHandle:
        """Attach a structure under a role, draw its base style and highlights."""
        validate_role(role)
        if role in self._active:
            raise ValueError(f"A {role} structure is already attached")
        handle = self.scene.attach(structure)
        style = self.structure_styles[role]
        active = ActiveRepresentation(handle=handle, structure_kind=style)
        active.base = self.scene.add_representation(handle, style)
        self._active[role] = active
        logger.debug("Attached %s structure %r with style %s", role, structure.name, style)
        self.recompute(handle)
        return handle

    def detach(self, handle: StructureHandle) -> None:
        role = self._role_of(handle)
        del self._active[role]
        self.scene.detach(handle)
        self.scene.request_render()

    def _role_of(self, handle: StructureHandle) -> str:
        for role, active in self._active.items():
            if active.handle == handle:
                return role
        raise KeyError(f"Structure handle {handle.id} is not attached")

    # ── Recompute ──

    def recompute(self, handle: Optional[StructureHandle] = None) -> None:
        """Replace the derived highlights on one structure, or on all."""
        state = self.store.state
        targets = (
            [self._active[self._role_of(handle)]] if handle is not None
            else list(self._active.values())
        )
        for active in targets:
            for rep in active.reps:
                self.scene.remove_representation(rep)

            structure = self.scene.structure(active.handle)
            specs = derive_representation_specs(
                state, structure, self.proximity, self.show_distance_labels,
            )
            active.reps = [self._add(active.handle, structure, spec) for spec in specs]
            active.specs = specs
            logger.debug(
                "Recomputed %d representation(s) on %r", len(specs), structure.name,
            )
        self.scene.request_render()

    def _add(
        self,
        handle: StructureHandle,
        structure: ProteinStructure,
        spec: RepresentationSpec,
    ) -> RepresentationHandle:
        label = None
        if spec.kind == REP_DISTANCE and spec.show_label and structure.has_residues(*spec.residues):
            dist = structure.residue_distance(spec.residues[0], spec.residues[1], self.proximity)
            label = f"{dist:.1f} Å"
        return self.scene.add_representation(
            handle,
            spec.kind,
            residues=spec.residues,
            atoms=spec.atoms,
            section=spec.section,
            label=label,
        )

    # ── Settings ──

    def set_structure_style(self, role: str, kind: str) -> None:
        """Switch the base style of a role; redraws that structure from scratch."""
        validate_role(role)
        validate_representation_kind(kind, BASE_STYLE_KINDS)
        self.structure_styles[role] = kind
        active = self._active.get(role)
        if active is None:
            return

        self.scene.remove_all_representations(active.handle)
        active.structure_kind = kind
        active.base = self.scene.add_representation(active.handle, kind)
        active.reps = []
        self.recompute(active.handle)

    def set_proximity(self, proximity: str) -> None:
        validate_proximity(proximity)
        if proximity == self.proximity:
            return
        self.proximity = proximity
        self.recompute()

    def set_distance_labels(self, enabled: bool) -> None:
        if enabled == self.show_distance_labels:
            return
        self.show_distance_labels = enabled
        self.recompute()

    def close(self) -> None:
        """Stop following the store. Safe to call twice."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
