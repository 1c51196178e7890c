"""
Contact Sync — Structures and Synthetic Data.

Residue-level protein structures as seen by the viewer core: a Cα atom,
a virtual Cβ atom (Cα for glycine), a residue number and a secondary
structure code per residue.

Real structures come from the host application's loader. This module
ships the synthetic stand-ins used by the CLI, the Streamlit demo and
the tests:

    preset backbone builders
        → virtual Cβ placement
        → perturbed copies ("predicted" models)
        → simulated coupling-score rows + residue mapping table
"""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray
from scipy.spatial.distance import cdist
from scipy.spatial.transform import Rotation

from contact_sync.residue_mapping import ResidueMappingEntry


# ═══════════════════════════════════════════════════════════════════════
# Constants
# ═══════════════════════════════════════════════════════════════════════

PROXIMITY_CLOSEST: str = "closest"
"""Residue distance = closest pair of atoms between the two residues."""

PROXIMITY_C_ALPHA: str = "c-alpha"
"""Residue distance = Cα–Cα distance."""

PROXIMITY_METRICS: Tuple[str, ...] = (PROXIMITY_CLOSEST, PROXIMITY_C_ALPHA)

CB_BOND_LENGTH: float = 1.53
"""Cα–Cβ bond length in Angstroms, used for virtual Cβ placement."""

THREE_TO_ONE: Dict[str, str] = {
    "ALA": "A", "CYS": "C", "ASP": "D", "GLU": "E", "PHE": "F",
    "GLY": "G", "HIS": "H", "ILE": "I", "LYS": "K", "LEU": "L",
    "MET": "M", "ASN": "N", "PRO": "P", "GLN": "Q", "ARG": "R",
    "SER": "S", "THR": "T", "VAL": "V", "TRP": "W", "TYR": "Y",
}

ONE_TO_THREE: Dict[str, str] = {v: k for k, v in THREE_TO_ONE.items()}

SECONDARY_STRUCTURE_CODES: Dict[str, str] = {
    "H": "Helix",
    "E": "Strand",
    "C": "Coil",
}


def validate_proximity(proximity: str) -> str:
    if proximity not in PROXIMITY_METRICS:
        raise ValueError(
            f"Unknown proximity metric {proximity!r}; expected one of {PROXIMITY_METRICS}"
        )
    return proximity


# ═══════════════════════════════════════════════════════════════════════
# Data classes
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class SecondaryStructureSection:
    """A contiguous run of residues sharing one secondary structure code."""
    label: str
    start: int
    end: int

    def __post_init__(self):
        if self.label not in SECONDARY_STRUCTURE_CODES:
            raise ValueError(f"Unknown secondary structure code {self.label!r}")
        if self.end < self.start:
            raise ValueError(f"Section end {self.end} precedes start {self.start}")

    @property
    def name(self) -> str:
        return SECONDARY_STRUCTURE_CODES[self.label]

    @property
    def residues(self) -> List[int]:
        return list(range(self.start, self.end + 1))

    def __str__(self) -> str:
        return f"{self.name} {self.start}-{self.end}"


@dataclass
class Residue:
    """A single amino acid residue."""
    index: int
    name: str              # One-letter code
    three_letter: str      # Three-letter code
    chain_id: str          # PDB chain identifier
    residue_number: int    # PDB residue sequence number
    ca_position: NDArray   # Cα (x, y, z) in Angstroms
    cb_position: Optional[NDArray] = None
    ss: str = "C"          # Secondary structure code (H, E, C)

    @property
    def atom_positions(self) -> Dict[str, NDArray]:
        atoms = {"CA": self.ca_position}
        if self.cb_position is not None:
            atoms["CB"] = self.cb_position
        return atoms


@dataclass
class ProteinStructure:
    """A protein represented as a list of residues."""
    name: str
    residues: List[Residue]
    sequence: str = ""
    _by_number: Dict[int, Residue] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self):
        if not self.sequence:
            self.sequence = "".join(r.name for r in self.residues)
        self._by_number = {r.residue_number: r for r in self.residues}

    @property
    def n_residues(self) -> int:
        return len(self.residues)

    @property
    def residue_numbers(self) -> List[int]:
        return [r.residue_number for r in self.residues]

    @property
    def ca_coordinates(self) -> NDArray:
        """Return (N, 3) array of Cα positions."""
        return np.array([r.ca_position for r in self.residues])

    @property
    def cb_coordinates(self) -> NDArray:
        """Return (N, 3) array of Cβ positions (Cα where Cβ is absent)."""
        return np.array([
            r.cb_position if r.cb_position is not None else r.ca_position
            for r in self.residues
        ])

    def residue_by_number(self, residue_number: int) -> Optional[Residue]:
        return self._by_number.get(residue_number)

    def has_residues(self, *residue_numbers: int) -> bool:
        return all(n in self._by_number for n in residue_numbers)

    def ca_distance(self, res_i: int, res_j: int) -> float:
        ri, rj = self._by_number[res_i], self._by_number[res_j]
        return float(np.linalg.norm(ri.ca_position - rj.ca_position))

    def min_distance_atoms(self, res_i: int, res_j: int) -> Tuple[str, str, float]:
        """Closest atom pair between two residues.

        Returns
        -------
        Tuple[str, str, float]
            (atom name in res_i, atom name in res_j, distance in Å).
        """
        atoms_i = self._by_number[res_i].atom_positions
        atoms_j = self._by_number[res_j].atom_positions
        names_i, names_j = list(atoms_i), list(atoms_j)
        d = cdist(np.array(list(atoms_i.values())), np.array(list(atoms_j.values())))
        a, b = np.unravel_index(int(np.argmin(d)), d.shape)
        return names_i[a], names_j[b], float(d[a, b])

    def residue_distance(self, res_i: int, res_j: int, proximity: str = PROXIMITY_CLOSEST) -> float:
        validate_proximity(proximity)
        if proximity == PROXIMITY_C_ALPHA:
            return self.ca_distance(res_i, res_j)
        return self.min_distance_atoms(res_i, res_j)[2]

    def distance_matrix(self, proximity: str = PROXIMITY_CLOSEST) -> NDArray:
        """(N, N) residue distance matrix under the given proximity metric."""
        validate_proximity(proximity)
        ca = self.ca_coordinates
        if proximity == PROXIMITY_C_ALPHA:
            return cdist(ca, ca)
        cb = self.cb_coordinates
        return np.minimum.reduce([
            cdist(ca, ca), cdist(ca, cb), cdist(cb, ca), cdist(cb, cb),
        ])

    def secondary_structure_sections(self) -> List[SecondaryStructureSection]:
        """Group consecutive residues with the same code into sections."""
        sections: List[SecondaryStructureSection] = []
        if not self.residues:
            return sections

        start = prev = self.residues[0]
        for res in self.residues[1:]:
            if res.ss != start.ss or res.residue_number != prev.residue_number + 1:
                sections.append(SecondaryStructureSection(
                    start.ss, start.residue_number, prev.residue_number,
                ))
                start = res
            prev = res
        sections.append(SecondaryStructureSection(
            start.ss, start.residue_number, prev.residue_number,
        ))
        return sections

    def centroid(self) -> NDArray:
        return self.ca_coordinates.mean(axis=0)

    def transform(self, rotation: NDArray, translation: NDArray) -> None:
        """Apply ``x → R·x + t`` to every atom in place."""
        for r in self.residues:
            r.ca_position = rotation @ r.ca_position + translation
            if r.cb_position is not None:
                r.cb_position = rotation @ r.cb_position + translation

    def translate(self, offset: NDArray) -> None:
        self.transform(np.eye(3), np.asarray(offset, dtype=np.float64))


# ═══════════════════════════════════════════════════════════════════════
# Virtual Cβ placement
# ═══════════════════════════════════════════════════════════════════════


def place_virtual_cb(residues: List[Residue]) -> List[Residue]:
    """Place a virtual Cβ on every non-glycine residue lacking one.

    The Cβ points away from the bisector of the two neighbouring
    Cα–Cα bonds; terminal residues use their single neighbour.
    """
    n = len(residues)
    for k, res in enumerate(residues):
        if res.name == "G" or res.cb_position is not None or n < 2:
            continue
        ca = res.ca_position
        prev_ca = residues[k - 1].ca_position if k > 0 else None
        next_ca = residues[k + 1].ca_position if k < n - 1 else None

        if prev_ca is not None and next_ca is not None:
            direction = (ca - prev_ca) + (ca - next_ca)
        elif prev_ca is not None:
            direction = ca - prev_ca
        else:
            direction = ca - next_ca

        norm = np.linalg.norm(direction)
        if norm < 1e-9:
            direction = np.array([0.0, 0.0, 1.0])
        else:
            direction = direction / norm
        res.cb_position = ca + CB_BOND_LENGTH * direction
    return residues


def _protein(name: str, residues: List[Residue]) -> ProteinStructure:
    return ProteinStructure(name=name, residues=place_virtual_cb(residues))


def _residue(idx: int, aa: str, position: NDArray, ss: str, default: str = "ALA") -> Residue:
    return Residue(
        index=idx, name=aa,
        three_letter=ONE_TO_THREE.get(aa, default),
        chain_id="A", residue_number=idx + 1,
        ca_position=np.asarray(position, dtype=np.float64),
        ss=ss,
    )


# ═══════════════════════════════════════════════════════════════════════
# Synthetic protein builders
# ═══════════════════════════════════════════════════════════════════════


def build_alpha_helix(
    n_residues: int = 30,
    name: str = "α-Helix",
) -> ProteinStructure:
    """Build a synthetic α-helix backbone (3.6 residues/turn).

    Parameters
    ----------
    n_residues : int
        Number of residues.
    name : str
        Structure name.

    Returns
    -------
    ProteinStructure
    """
    # rise = 1.5Å, 3.6 residues/turn, radius ≈ 2.3Å
    rise_per_residue = 1.5
    residues_per_turn = 3.6
    radius = 2.3
    helix_seq = "AELKAIAQELKAIAQA"

    residues = []
    for i in range(n_residues):
        angle = 2 * math.pi * i / residues_per_turn
        pos = [radius * math.cos(angle), radius * math.sin(angle), rise_per_residue * i]
        residues.append(_residue(i, helix_seq[i % len(helix_seq)], pos, "H"))

    return _protein(name, residues)


def build_beta_sheet(
    n_strands: int = 4,
    strand_length: int = 8,
    name: str = "β-Sheet",
) -> ProteinStructure:
    """Build a synthetic anti-parallel β-sheet.

    Strand end residues are coded as coil so each strand forms its own
    secondary structure section.
    """
    rise = 3.3
    strand_spacing = 4.7
    sheet_seq = "VYIFVYIFVYIFVYIF"

    residues = []
    idx = 0
    for s in range(n_strands):
        forward = s % 2 == 0
        for r in range(strand_length):
            z = rise * r if forward else rise * (strand_length - 1 - r)
            pos = [strand_spacing * s, 0.8 * ((-1) ** r), z]
            ss = "C" if r in (0, strand_length - 1) else "E"
            residues.append(_residue(idx, sheet_seq[idx % len(sheet_seq)], pos, ss, "VAL"))
            idx += 1

    return _protein(name, residues)


def build_helix_turn_helix(
    helix_length: int = 15,
    name: str = "Helix-Turn-Helix",
) -> ProteinStructure:
    """Build a helix-turn-helix motif.

    Two α-helices connected by a short turn, so the data set has both
    local (helical) and medium-range (turn) contacts.
    """
    rise = 1.5
    rpt = 3.6
    radius = 2.3
    turn_length = 4
    motif_seq = "AELKAIAQELKAIAQGNPGAELKAIAQELKAIAQA"

    residues = []
    idx = 0

    for i in range(helix_length):
        angle = 2 * math.pi * i / rpt
        pos = [radius * math.cos(angle), radius * math.sin(angle), rise * i]
        residues.append(_residue(idx, motif_seq[idx % len(motif_seq)], pos, "H"))
        idx += 1

    last_z = rise * (helix_length - 1)
    for i in range(turn_length):
        frac = (i + 1) / (turn_length + 1)
        pos = [
            radius * math.cos(math.pi) + 2 * radius * frac,
            radius * math.sin(math.pi + math.pi * frac),
            last_z + rise * (i + 1) * 0.5,
        ]
        residues.append(_residue(idx, motif_seq[idx % len(motif_seq)], pos, "C", "GLY"))
        idx += 1

    offset_x = 2 * radius + 3.0
    offset_z = last_z + rise * turn_length * 0.5
    for i in range(helix_length):
        angle = 2 * math.pi * i / rpt + math.pi
        pos = [offset_x + radius * math.cos(angle), radius * math.sin(angle), offset_z - rise * i]
        residues.append(_residue(idx, motif_seq[idx % len(motif_seq)], pos, "H"))
        idx += 1

    return _protein(name, residues)


def build_beta_barrel(
    n_strands: int = 8,
    strand_length: int = 6,
    name: str = "β-Barrel",
) -> ProteinStructure:
    """Build a synthetic β-barrel (closed cylinder of β-strands)."""
    barrel_radius = 8.0
    rise = 3.3
    barrel_seq = "VYIFWYIFVYIFWYIF"

    residues = []
    idx = 0
    for s in range(n_strands):
        angle_base = 2 * math.pi * s / n_strands
        direction = 1 if s % 2 == 0 else -1
        for r in range(strand_length):
            angle = angle_base + 0.1 * r * direction
            z = rise * r if direction == 1 else rise * (strand_length - 1 - r)
            pos = [barrel_radius * math.cos(angle), barrel_radius * math.sin(angle), z]
            ss = "C" if r in (0, strand_length - 1) else "E"
            residues.append(_residue(idx, barrel_seq[idx % len(barrel_seq)], pos, ss, "VAL"))
            idx += 1

    return _protein(name, residues)


def build_random_coil(
    n_residues: int = 40,
    name: str = "Random Coil",
    seed: int = 42,
) -> ProteinStructure:
    """Build a random-walk polymer backbone."""
    rng = np.random.RandomState(seed)
    bond_length = 3.8  # Cα–Cα distance

    positions = np.zeros((n_residues, 3))
    for i in range(1, n_residues):
        direction = rng.randn(3)
        direction /= np.linalg.norm(direction)
        positions[i] = positions[i - 1] + bond_length * direction

    all_aa = "ACDEFGHIKLMNPQRSTVWY"
    residues = [
        _residue(i, all_aa[rng.randint(0, len(all_aa))], positions[i].copy(), "C")
        for i in range(n_residues)
    ]
    return _protein(name, residues)


def build_two_domain(
    domain_size: int = 20,
    name: str = "Two-Domain Protein",
) -> ProteinStructure:
    """Build a two-domain protein with a linker.

    Two compact globular domains joined by a flexible linker: dense
    contacts within each domain, almost none across the linker.
    """
    rng = np.random.RandomState(123)
    domain_seq = "AELKFHQRSTIVMPWYDNGC"
    linker_len = 5

    residues: List[Residue] = []
    idx = 0

    def _domain(center: NDArray) -> None:
        nonlocal idx
        for i in range(domain_size):
            phi = math.acos(1 - 2 * (i + 0.5) / domain_size)
            theta = math.pi * (1 + 5**0.5) * i
            r = 8.0 + rng.randn() * 0.5
            pos = center + r * np.array([
                math.sin(phi) * math.cos(theta),
                math.sin(phi) * math.sin(theta),
                math.cos(phi),
            ])
            residues.append(_residue(idx, domain_seq[idx % len(domain_seq)], pos, "H"))
            idx += 1

    _domain(np.array([0.0, 0.0, 0.0]))

    start = residues[-1].ca_position.copy()
    center2 = np.array([25.0, 0.0, 0.0])
    for i in range(linker_len):
        frac = (i + 1) / (linker_len + 1)
        pos = start * (1 - frac) + center2 * frac + rng.randn(3) * 0.5
        residues.append(_residue(idx, "G" if i % 2 == 0 else "S", pos, "C", "GLY"))
        idx += 1

    _domain(center2)
    return _protein(name, residues)


def get_preset_proteins() -> Dict[str, ProteinStructure]:
    """Return all preset synthetic proteins, keyed by display name."""
    return {
        "α-Helix": build_alpha_helix(),
        "β-Sheet": build_beta_sheet(),
        "Helix-Turn-Helix": build_helix_turn_helix(),
        "β-Barrel": build_beta_barrel(),
        "Random Coil": build_random_coil(),
        "Two-Domain Protein": build_two_domain(),
    }


# ═══════════════════════════════════════════════════════════════════════
# Predicted models and coupling-score simulation
# ═══════════════════════════════════════════════════════════════════════


def perturb_structure(
    protein: ProteinStructure,
    seed: int = 7,
    noise: float = 1.0,
    name: Optional[str] = None,
) -> ProteinStructure:
    """A randomly rotated, translated and noised copy of a structure.

    Stands in for a predicted model of the same sequence: residue numbers
    match the source, coordinates do not.
    """
    rng = np.random.RandomState(seed)
    model = copy.deepcopy(protein)
    model.name = name or f"{protein.name} (model)"

    for r in model.residues:
        jitter = rng.randn(3) * noise
        r.ca_position = r.ca_position + jitter
        if r.cb_position is not None:
            r.cb_position = r.cb_position + jitter + rng.randn(3) * noise * 0.2

    rotation = Rotation.random(random_state=seed).as_matrix()
    model.transform(rotation, rng.randn(3) * 20.0)
    return model


def simulate_coupling_rows(
    protein: ProteinStructure,
    seed: int = 0,
    noise: float = 0.35,
    contact_scale: float = 8.0,
) -> List[dict]:
    """Simulated ``coupling_scores`` rows for a structure.

    Each residue pair gets a coupling strength ``cn`` that decays with its
    closest-atom distance, plus Gaussian noise, and a probability from a
    logistic on ``cn``. Rows use 1-based coupling numbering (sequence
    position) and come back ranked by ``cn`` descending, like a real
    coupling-score table.

    Returns
    -------
    List[dict]
        Rows with keys ``i``, ``j``, ``cn``, ``probability``, ``dist``.
    """
    rng = np.random.RandomState(seed)
    dmat = protein.distance_matrix(PROXIMITY_CLOSEST)
    n = protein.n_residues

    rows = []
    for a in range(n):
        for b in range(a + 1, n):
            d = float(dmat[a, b])
            cn = math.exp(-(d / contact_scale) ** 2) + rng.randn() * noise
            probability = 1.0 / (1.0 + math.exp(-8.0 * (cn - 0.5)))
            rows.append({
                "i": a + 1,
                "j": b + 1,
                "cn": round(cn, 6),
                "probability": round(probability, 6),
                "dist": round(d, 3),
            })

    rows.sort(key=lambda row: row["cn"], reverse=True)
    return rows


def simulate_residue_mapping(protein: ProteinStructure) -> List[ResidueMappingEntry]:
    """Mapping table from 1-based sequence position to structure numbering."""
    return [
        ResidueMappingEntry(
            couplings_resno=k + 1,
            pdb_resno=r.residue_number,
            pdb_res_code=r.name,
        )
        for k, r in enumerate(protein.residues)
    ]


def renumber_structure(protein: ProteinStructure, offset: int) -> ProteinStructure:
    """Copy of a structure with every residue number shifted by ``offset``."""
    shifted = copy.deepcopy(protein)
    for r in shifted.residues:
        r.residue_number += offset
    return ProteinStructure(name=shifted.name, residues=shifted.residues)
