"""
Contact Sync — 3-D Scene.

The viewer surface the synchronizer and the superposition controller
drive. ``Scene`` declares the collaborator interface; ``PlotlyScene`` is
an in-process implementation that keeps its own copies of the attached
structures, tracks representations and per-structure offsets, and renders
everything into a Plotly figure.

Handles are never reused: a detached structure's id is gone for good.
"""

from __future__ import annotations

import copy
import itertools
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

import plotly.graph_objects as go

from contact_sync.selection import PICK_ATOM, PICK_DISTANCE, PickResult
from contact_sync.structures import (
    SECONDARY_STRUCTURE_CODES,
    ProteinStructure,
    SecondaryStructureSection,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# Representation kinds
# ═══════════════════════════════════════════════════════════════════════

REP_DEFAULT: str = "default"
REP_SPACEFILL: str = "spacefill"
REP_BACKBONE: str = "backbone"
REP_CARTOON: str = "cartoon"
REP_SURFACE: str = "surface"
REP_TUBE: str = "tube"

BASE_STYLE_KINDS: Tuple[str, ...] = (
    REP_DEFAULT, REP_SPACEFILL, REP_BACKBONE, REP_CARTOON, REP_SURFACE, REP_TUBE,
)

REP_BALL_AND_STICK: str = "ball+stick"
REP_DISTANCE: str = "distance"
REP_SECONDARY_STRUCTURE: str = "secondary-structure"

HIGHLIGHT_KINDS: Tuple[str, ...] = (REP_BALL_AND_STICK, REP_DISTANCE, REP_SECONDARY_STRUCTURE)

REPRESENTATION_KINDS: Tuple[str, ...] = BASE_STYLE_KINDS + HIGHLIGHT_KINDS


def validate_representation_kind(kind: str, allowed: Sequence[str] = REPRESENTATION_KINDS) -> str:
    if kind not in allowed:
        raise ValueError(f"Unknown representation kind {kind!r}; expected one of {tuple(allowed)}")
    return kind


# Trace styling per base style
_BASE_STYLE_TRACES: Dict[str, dict] = {
    REP_DEFAULT: dict(mode="lines+markers", line_width=4, marker_size=3, opacity=1.0),
    REP_SPACEFILL: dict(mode="markers", line_width=0, marker_size=11, opacity=0.9),
    REP_BACKBONE: dict(mode="lines", line_width=3, marker_size=0, opacity=1.0),
    REP_CARTOON: dict(mode="lines", line_width=9, marker_size=0, opacity=1.0),
    REP_SURFACE: dict(mode="markers", line_width=0, marker_size=16, opacity=0.15),
    REP_TUBE: dict(mode="lines", line_width=6, marker_size=0, opacity=1.0),
}

_STRUCTURE_COLORS: Tuple[str, ...] = ("#607D8B", "#8D6E63", "#78909C", "#A1887F")

_SS_COLORS: Dict[str, str] = {
    "H": "#E91E63",
    "E": "#FFC107",
    "C": "#9E9E9E",
}

HIGHLIGHT_COLOR: str = "#F44336"
DISTANCE_COLOR: str = "#212121"


# ═══════════════════════════════════════════════════════════════════════
# Handles
# ═══════════════════════════════════════════════════════════════════════

_structure_ids = itertools.count(1)
_representation_ids = itertools.count(1)


@dataclass(frozen=True)
class StructureHandle:
    """Opaque reference to a structure attached to a scene."""
    id: int
    name: str = field(default="", compare=False)


@dataclass(frozen=True)
class RepresentationHandle:
    """Opaque reference to one representation drawn on a structure."""
    id: int
    structure_id: int
    kind: str = field(default="", compare=False)


@dataclass
class Representation:
    """What a scene knows about one drawn representation."""
    handle: RepresentationHandle
    kind: str
    residues: Tuple[int, ...] = ()
    atoms: Tuple[str, ...] = ()
    section: Optional[SecondaryStructureSection] = None
    label: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════
# Scene interface
# ═══════════════════════════════════════════════════════════════════════


class Scene:
    """Interface of the 3-D viewer collaborator."""

    def attach(self, structure: ProteinStructure) -> StructureHandle:
        raise NotImplementedError

    def detach(self, handle: StructureHandle) -> None:
        raise NotImplementedError

    def handles(self) -> List[StructureHandle]:
        raise NotImplementedError

    def structure(self, handle: StructureHandle) -> ProteinStructure:
        raise NotImplementedError

    def add_representation(
        self,
        handle: StructureHandle,
        kind: str,
        residues: Sequence[int] = (),
        atoms: Sequence[str] = (),
        section: Optional[SecondaryStructureSection] = None,
        label: Optional[str] = None,
    ) -> RepresentationHandle:
        raise NotImplementedError

    def remove_representation(self, rep: RepresentationHandle) -> bool:
        raise NotImplementedError

    def remove_all_representations(self, handle: StructureHandle) -> None:
        raise NotImplementedError

    def set_position(self, handle: StructureHandle, position: Sequence[float]) -> None:
        raise NotImplementedError

    def fit_camera(self, handle: Optional[StructureHandle] = None) -> None:
        raise NotImplementedError

    def request_render(self) -> None:
        raise NotImplementedError

    def pick(self, event) -> Optional[PickResult]:
        raise NotImplementedError


# ═══════════════════════════════════════════════════════════════════════
# Plotly scene
# ═══════════════════════════════════════════════════════════════════════


class PlotlyScene(Scene):
    """In-process scene rendered with Plotly.

    Click events from a rendered figure carry ``customdata`` rows that
    ``pick`` narrows back into ``PickResult`` values:

        ["atom", structure_id, residue_number, atom_name]
        ["distance", structure_id, residue_i, residue_j]
    """

    def __init__(self):
        self._structures: Dict[int, ProteinStructure] = {}
        self._handles: Dict[int, StructureHandle] = {}
        self._representations: Dict[int, Dict[int, Representation]] = {}
        self._positions: Dict[int, NDArray] = {}
        self.camera_target: Optional[StructureHandle] = None
        self.render_count: int = 0

    # ── Structures ──

    def attach(self, structure: ProteinStructure, name: Optional[str] = None) -> StructureHandle:
        handle = StructureHandle(next(_structure_ids), name or structure.name)
        self._structures[handle.id] = copy.deepcopy(structure)
        self._handles[handle.id] = handle
        self._representations[handle.id] = {}
        self._positions[handle.id] = np.zeros(3)
        logger.debug("Attached structure %r as handle %d", handle.name, handle.id)
        return handle

    def _check(self, handle: StructureHandle) -> int:
        if handle.id not in self._structures:
            raise KeyError(f"Unknown structure handle {handle.id}")
        return handle.id

    def detach(self, handle: StructureHandle) -> None:
        sid = self._check(handle)
        del self._structures[sid]
        del self._handles[sid]
        del self._representations[sid]
        del self._positions[sid]
        if self.camera_target is not None and self.camera_target.id == sid:
            self.camera_target = None

    def handles(self) -> List[StructureHandle]:
        """Attached structures, in attach order."""
        return list(self._handles.values())

    def structure(self, handle: StructureHandle) -> ProteinStructure:
        return self._structures[self._check(handle)]

    # ── Representations ──

    def add_representation(
        self,
        handle: StructureHandle,
        kind: str,
        residues: Sequence[int] = (),
        atoms: Sequence[str] = (),
        section: Optional[SecondaryStructureSection] = None,
        label: Optional[str] = None,
    ) -> RepresentationHandle:
        sid = self._check(handle)
        validate_representation_kind(kind)
        rep_handle = RepresentationHandle(next(_representation_ids), sid, kind)
        self._representations[sid][rep_handle.id] = Representation(
            handle=rep_handle,
            kind=kind,
            residues=tuple(residues),
            atoms=tuple(atoms),
            section=section,
            label=label,
        )
        return rep_handle

    def remove_representation(self, rep: RepresentationHandle) -> bool:
        """Remove one representation; an already removed one is a no-op."""
        reps = self._representations.get(rep.structure_id)
        if reps is None or rep.id not in reps:
            return False
        del reps[rep.id]
        return True

    def remove_all_representations(self, handle: StructureHandle) -> None:
        self._representations[self._check(handle)] = {}

    def representations(self, handle: StructureHandle) -> List[Representation]:
        return list(self._representations[self._check(handle)].values())

    # ── View ──

    def set_position(self, handle: StructureHandle, position: Sequence[float]) -> None:
        self._positions[self._check(handle)] = np.asarray(position, dtype=np.float64)

    def position(self, handle: StructureHandle) -> NDArray:
        return self._positions[self._check(handle)].copy()

    def fit_camera(self, handle: Optional[StructureHandle] = None) -> None:
        """Frame one structure, or the whole scene when ``handle`` is None."""
        if handle is not None:
            self._check(handle)
        self.camera_target = handle

    def request_render(self) -> None:
        self.render_count += 1

    def pick(self, event) -> Optional[PickResult]:
        """Narrow a Plotly click/hover event into a ``PickResult``.

        Accepts a whole event (``{"points": [...]}``), a single point dict,
        or a bare ``customdata`` row. Anything that is not a known pick
        narrows to None.
        """
        if not event:
            return None
        if isinstance(event, dict):
            if "points" in event:
                points = event["points"]
                return self.pick(points[0]) if points else None
            event = event.get("customdata")
            if not event:
                return None

        row = list(event)
        if len(row) != 4 or row[0] not in (PICK_ATOM, PICK_DISTANCE):
            return None
        kind, sid = row[0], int(row[1])
        if sid not in self._structures:
            return None
        if kind == PICK_ATOM:
            return PickResult(PICK_ATOM, (int(row[2]),), structure_id=sid, atom=str(row[3]))
        return PickResult(PICK_DISTANCE, (int(row[2]), int(row[3])), structure_id=sid)

    # ── Rendering ──

    def _atom_position(self, sid: int, residue_number: int, atom: str) -> Optional[NDArray]:
        residue = self._structures[sid].residue_by_number(residue_number)
        if residue is None:
            return None
        positions = residue.atom_positions
        pos = positions.get(atom, positions["CA"])
        return pos + self._positions[sid]

    def _axis_ranges(self, pad: float = 5.0) -> Dict[str, dict]:
        """Axis ranges framing the camera target; empty for the whole scene."""
        if self.camera_target is None:
            return {}
        sid = self.camera_target.id
        protein = self._structures[sid]
        if not protein.n_residues:
            return {}
        coords = protein.ca_coordinates + self._positions[sid]
        lo, hi = coords.min(axis=0) - pad, coords.max(axis=0) + pad
        return {
            axis: dict(range=[float(lo[k]), float(hi[k])])
            for k, axis in enumerate(("xaxis", "yaxis", "zaxis"))
        }

    def _base_trace(self, sid: int, rep: Representation, color: str) -> go.Scatter3d:
        protein = self._structures[sid]
        coords = protein.ca_coordinates + self._positions[sid]
        style = _BASE_STYLE_TRACES[rep.kind]
        return go.Scatter3d(
            x=coords[:, 0], y=coords[:, 1], z=coords[:, 2],
            mode=style["mode"],
            line=dict(color=color, width=style["line_width"]),
            marker=dict(size=style["marker_size"], color=color),
            opacity=style["opacity"],
            customdata=[
                [PICK_ATOM, sid, r.residue_number, "CA"] for r in protein.residues
            ],
            hovertext=[f"{r.name}{r.residue_number}" for r in protein.residues],
            hoverinfo="text",
            name=f"{self._handles[sid].name} ({rep.kind})",
        )

    def _highlight_traces(self, sid: int, rep: Representation) -> List[go.Scatter3d]:
        traces: List[go.Scatter3d] = []
        protein = self._structures[sid]

        if rep.kind == REP_BALL_AND_STICK:
            for resno in rep.residues:
                residue = protein.residue_by_number(resno)
                if residue is None:
                    continue
                atoms = residue.atom_positions
                xyz = np.array(list(atoms.values())) + self._positions[sid]
                traces.append(go.Scatter3d(
                    x=xyz[:, 0], y=xyz[:, 1], z=xyz[:, 2],
                    mode="lines+markers",
                    line=dict(color=HIGHLIGHT_COLOR, width=6),
                    marker=dict(size=7, color=HIGHLIGHT_COLOR),
                    customdata=[[PICK_ATOM, sid, resno, name] for name in atoms],
                    hovertext=[f"{residue.name}{resno} {name}" for name in atoms],
                    hoverinfo="text",
                    showlegend=False,
                ))

        elif rep.kind == REP_DISTANCE and len(rep.residues) == 2:
            atoms = rep.atoms or ("CA", "CA")
            a = self._atom_position(sid, rep.residues[0], atoms[0])
            b = self._atom_position(sid, rep.residues[1], atoms[1])
            if a is None or b is None:
                return traces
            dist = float(np.linalg.norm(a - b))
            mid = (a + b) / 2.0
            pair = [PICK_DISTANCE, sid, rep.residues[0], rep.residues[1]]
            traces.append(go.Scatter3d(
                x=[a[0], mid[0], b[0]], y=[a[1], mid[1], b[1]], z=[a[2], mid[2], b[2]],
                mode="lines+text" if rep.label is not None else "lines",
                line=dict(color=DISTANCE_COLOR, width=4, dash="dash"),
                text=["", rep.label or "", ""],
                customdata=[pair, pair, pair],
                hovertext=f"{rep.residues[0]} ↔ {rep.residues[1]}: {dist:.1f} Å",
                hoverinfo="text",
                showlegend=False,
            ))

        elif rep.kind == REP_SECONDARY_STRUCTURE and rep.section is not None:
            residues = [
                protein.residue_by_number(n) for n in rep.section.residues
            ]
            residues = [r for r in residues if r is not None]
            if not residues:
                return traces
            xyz = np.array([r.ca_position for r in residues]) + self._positions[sid]
            traces.append(go.Scatter3d(
                x=xyz[:, 0], y=xyz[:, 1], z=xyz[:, 2],
                mode="lines",
                line=dict(color=_SS_COLORS.get(rep.section.label, HIGHLIGHT_COLOR), width=12),
                opacity=0.6,
                hoverinfo="text",
                hovertext=str(rep.section),
                name=SECONDARY_STRUCTURE_CODES.get(rep.section.label, rep.section.label),
                showlegend=False,
            ))

        return traces

    def figure(self, title: str = "Structures — 3-D", height: Optional[int] = None) -> go.Figure:
        """Render every attached structure and its representations."""
        traces: List[go.Scatter3d] = []
        for n, (sid, reps) in enumerate(self._representations.items()):
            color = _STRUCTURE_COLORS[n % len(_STRUCTURE_COLORS)]
            for rep in reps.values():
                if rep.kind in BASE_STYLE_KINDS:
                    traces.append(self._base_trace(sid, rep, color))
                else:
                    traces.extend(self._highlight_traces(sid, rep))

        ranges = self._axis_ranges()
        scene = dict(
            xaxis=dict(title="x (Å)", **ranges.get("xaxis", {})),
            yaxis=dict(title="y (Å)", **ranges.get("yaxis", {})),
            zaxis=dict(title="z (Å)", **ranges.get("zaxis", {})),
            aspectmode="cube" if ranges else "data",
            camera=dict(eye=dict(x=1.8, y=1.8, z=1.8)),
        )

        fig = go.Figure(data=traces)
        layout_kwargs: dict = dict(
            title=dict(text=title, x=0.5),
            scene=scene,
            margin=dict(l=0, r=0, t=40, b=0),
            legend=dict(x=0.01, y=0.99),
            template="plotly_white",
        )
        if height is not None:
            layout_kwargs["height"] = height
        fig.update_layout(**layout_kwargs)
        return fig
