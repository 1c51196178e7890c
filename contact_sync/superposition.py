"""
Contact Sync — Superposition Controller.

Lays the attached structures out in the scene, either side by side or
superposed onto the first one.

    none:  structure k at (k · SPACING, 0, 0), camera on the whole scene
    both:  structures 2..n fitted onto structure 1, all at the origin,
           camera on structure 1

With fewer than two structures, or when the fit raises ``ValueError``,
"both" falls back to the side-by-side layout; ``refresh()`` retries.

The fit itself is an injected callable; ``kabsch_superpose`` is the
default, a least-squares rotation over shared Cα atoms.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from contact_sync.scene import Scene
from contact_sync.structures import ProteinStructure

logger = logging.getLogger(__name__)


SUPERPOSITION_NONE: str = "none"
SUPERPOSITION_BOTH: str = "both"
SUPERPOSITION_MODES: Tuple[str, ...] = (SUPERPOSITION_NONE, SUPERPOSITION_BOTH)

SPACING: float = 50.0
"""Offset in Å between neighbouring structures when not superposed."""

MIN_SHARED_RESIDUES: int = 3

Superposer = Callable[[ProteinStructure, ProteinStructure], float]


def kabsch_superpose(mobile: ProteinStructure, reference: ProteinStructure) -> float:
    """Fit ``mobile`` onto ``reference`` in place.

    Parameters
    ----------
    mobile : ProteinStructure
        Moved; every atom gets the same rigid transform.
    reference : ProteinStructure
        Left untouched.

    Returns
    -------
    float
        Cα RMSD over the shared residues after the fit (Å).

    Raises
    ------
    ValueError
        If fewer than three residue numbers are shared.
    """
    shared = [n for n in mobile.residue_numbers if reference.residue_by_number(n) is not None]
    if len(shared) < MIN_SHARED_RESIDUES:
        raise ValueError(
            f"Need at least {MIN_SHARED_RESIDUES} shared residues to superpose, "
            f"got {len(shared)}"
        )

    target = np.array([reference.residue_by_number(n).ca_position for n in shared])
    moving = np.array([mobile.residue_by_number(n).ca_position for n in shared])
    target_center = target.mean(axis=0)
    moving_center = moving.mean(axis=0)

    rotation, _ = Rotation.align_vectors(target - target_center, moving - moving_center)
    matrix = rotation.as_matrix()
    mobile.transform(matrix, target_center - matrix @ moving_center)

    fitted = np.array([mobile.residue_by_number(n).ca_position for n in shared])
    return float(np.sqrt(np.mean(np.sum((fitted - target) ** 2, axis=1))))


class SuperpositionController:
    """Apply a layout mode to every structure in a scene.

    Parameters
    ----------
    scene : Scene
    superpose : Superposer
        ``superpose(mobile, reference)`` fits mobile onto reference in
        place and returns an RMSD.
    spacing : float
    mode : str
        Initial mode; nothing is laid out until ``set_mode`` or ``refresh``.
    """

    def __init__(
        self,
        scene: Scene,
        superpose: Superposer = kabsch_superpose,
        spacing: float = SPACING,
        mode: str = SUPERPOSITION_NONE,
    ):
        self.scene = scene
        self.superpose = superpose
        self.spacing = spacing
        self._mode = self._validate(mode)
        self.rmsd: Dict[int, float] = {}

    @staticmethod
    def _validate(mode: str) -> str:
        if mode not in SUPERPOSITION_MODES:
            raise ValueError(
                f"Unknown superposition mode {mode!r}; expected one of {SUPERPOSITION_MODES}"
            )
        return mode

    @property
    def mode(self) -> str:
        return self._mode

    def set_mode(self, mode: str) -> bool:
        """Switch mode and re-lay the scene; the current mode is a no-op."""
        self._validate(mode)
        if mode == self._mode:
            return False
        self._mode = mode
        self.refresh()
        return True

    def toggle(self) -> str:
        self.set_mode(
            SUPERPOSITION_NONE if self._mode == SUPERPOSITION_BOTH else SUPERPOSITION_BOTH
        )
        return self._mode

    def refresh(self) -> None:
        """Re-apply the current mode, e.g. after structures were attached."""
        handles = self.scene.handles()
        if self._mode == SUPERPOSITION_BOTH and len(handles) >= 2:
            if not self._superpose_all(handles):
                self._layout_side_by_side(handles)
        else:
            if self._mode == SUPERPOSITION_BOTH:
                logger.warning(
                    "Superposition needs two structures, have %d; using side-by-side layout",
                    len(handles),
                )
            self._layout_side_by_side(handles)
        self.scene.request_render()

    def _superpose_all(self, handles) -> bool:
        """Fit every later structure onto the first; False if a fit failed."""
        reference = self.scene.structure(handles[0])
        self.rmsd = {}
        for handle in handles[1:]:
            try:
                rmsd = self.superpose(self.scene.structure(handle), reference)
            except ValueError as exc:
                logger.warning(
                    "Cannot superpose %r onto %r (%s); using side-by-side layout",
                    handle.name, handles[0].name, exc,
                )
                self.rmsd = {}
                return False
            self.rmsd[handle.id] = rmsd
            logger.info("Superposed %r onto %r (RMSD %.2f Å)", handle.name, handles[0].name, rmsd)
        for handle in handles:
            self.scene.set_position(handle, (0.0, 0.0, 0.0))
        self.scene.fit_camera(handles[0])
        return True

    def _layout_side_by_side(self, handles) -> None:
        for k, handle in enumerate(handles):
            self.scene.set_position(handle, (k * self.spacing, 0.0, 0.0))
        self.scene.fit_camera(None)

    def worst_rmsd(self) -> Optional[float]:
        if not self.rmsd:
            return None
        return max(self.rmsd.values())
