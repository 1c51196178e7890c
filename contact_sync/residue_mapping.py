"""
Contact Sync — Residue Mapping.

Translates between the two residue-numbering spaces of a data set:
the 1-based positions used by the coupling-score table and the residue
numbers (and one-letter codes) of the reference structure.

The mapping table is built once per data set. Every lookup is an exact
match; a miss means the score table and the structure disagree, which is
fatal to the load of that data set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


class DataConsistencyError(ValueError):
    """Raised when a data set cannot be loaded consistently.

    Covers residue-mapping misses and malformed score rows. The load that
    raised it is abandoned as a whole; callers keep their previous state.
    """


@dataclass(frozen=True)
class ResidueMappingEntry:
    """One row of the residue mapping table."""
    couplings_resno: int
    pdb_resno: int
    pdb_res_code: str


class ResidueMapper:
    """Bidirectional lookup over an ordered residue mapping table.

    Parameters
    ----------
    entries : Iterable[ResidueMappingEntry]
        Mapping rows in table order.

    Raises
    ------
    DataConsistencyError
        If two rows share a ``couplings_resno``.
    """

    def __init__(self, entries: Iterable[ResidueMappingEntry]):
        self._entries: List[ResidueMappingEntry] = list(entries)
        self._by_couplings: Dict[int, ResidueMappingEntry] = {}
        self._by_pdb: Dict[int, ResidueMappingEntry] = {}

        for entry in self._entries:
            if entry.couplings_resno in self._by_couplings:
                raise DataConsistencyError(
                    f"Duplicate mapping for couplings residue {entry.couplings_resno}"
                )
            self._by_couplings[entry.couplings_resno] = entry
            self._by_pdb.setdefault(entry.pdb_resno, entry)

        logger.debug("Residue mapping built with %d entries", len(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    @property
    def entries(self) -> List[ResidueMappingEntry]:
        return list(self._entries)

    def _entry(self, couplings_resno: int) -> ResidueMappingEntry:
        try:
            return self._by_couplings[couplings_resno]
        except KeyError:
            raise DataConsistencyError(
                f"No residue mapping for couplings residue {couplings_resno}"
            ) from None

    def to_pdb(self, couplings_resno: int) -> int:
        """Structure residue number for a coupling-table position."""
        return self._entry(couplings_resno).pdb_resno

    def residue_code(self, couplings_resno: int) -> str:
        return self._entry(couplings_resno).pdb_res_code

    def to_couplings(self, pdb_resno: int) -> int:
        """Coupling-table position for a structure residue number."""
        try:
            return self._by_pdb[pdb_resno].couplings_resno
        except KeyError:
            raise DataConsistencyError(
                f"No residue mapping for structure residue {pdb_resno}"
            ) from None

    def map_score(self, score):
        """Renumber a coupling score into structure numbering.

        Parameters
        ----------
        score : CouplingScore
            Score in coupling-table numbering.

        Returns
        -------
        CouplingScore
            Copy with ``i``/``j`` in structure numbering and ``A_i``/``A_j``
            set from the mapping table.
        """
        entry_i = self._entry(score.i)
        entry_j = self._entry(score.j)
        return score.renumbered(
            i=entry_i.pdb_resno,
            j=entry_j.pdb_resno,
            A_i=entry_i.pdb_res_code,
            A_j=entry_j.pdb_res_code,
        )


def mapping_from_rows(rows: Optional[Iterable[dict]]) -> List[ResidueMappingEntry]:
    """Narrow pre-parsed mapping rows into typed entries.

    Accepts the column names of a ``residue_mapping.csv`` table:
    ``couplings_resno`` (or ``i``), ``pdb_resno`` and ``pdb_res``.
    """
    entries: List[ResidueMappingEntry] = []
    for n, row in enumerate(rows or []):
        try:
            couplings = row.get("couplings_resno", row.get("i"))
            entries.append(ResidueMappingEntry(
                couplings_resno=int(couplings),
                pdb_resno=int(row["pdb_resno"]),
                pdb_res_code=str(row.get("pdb_res", row.get("pdb_res_code", "X"))),
            ))
        except (KeyError, TypeError, ValueError) as exc:
            raise DataConsistencyError(f"Malformed residue mapping row {n}: {row!r}") from exc
    return entries
