"""
Contact Sync — Residue Selection Store.

The shared interaction state between the 2-D contact map and the 3-D
viewer: the pick in progress, the locked residue pairs, and what the
pointer is hovering.

Candidate arity is a two-state machine:

    EMPTY --pick(r)--> ARMED(r) --pick(s), s != r--> EMPTY + locked {r, s}

Every mutation goes through a named operation on the store. Operations
that change nothing are no-ops and notify nobody; the rest notify every
subscriber synchronously, after the change, with an immutable snapshot.
Each operation is also recorded in ``history`` so a session can be
replayed deterministically.
"""

from __future__ import annotations

import functools
import logging
from collections import deque
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Deque, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from contact_sync.structures import SecondaryStructureSection

logger = logging.getLogger(__name__)


ARITY_EMPTY: str = "EMPTY"
ARITY_ARMED: str = "ARMED"

PICK_ATOM: str = "atom"
PICK_DISTANCE: str = "distance"
PICK_KINDS: Tuple[str, ...] = (PICK_ATOM, PICK_DISTANCE)

DEFAULT_HISTORY_LIMIT: int = 10_000
"""Most recent operations kept in a store's history."""


def pair_key(residues: Sequence[int]) -> str:
    """Canonical key of a residue pair: the sorted pair, comma-joined."""
    return ",".join(str(r) for r in sorted(residues))


# ═══════════════════════════════════════════════════════════════════════
# Snapshots and pick results
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class SelectionState:
    """Immutable snapshot of the selection store."""
    candidate_residues: Tuple[int, ...] = ()
    locked_residue_pairs: Mapping[str, Tuple[int, int]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    hovered_residues: Tuple[int, ...] = ()
    hovered_secondary_structures: Tuple[SecondaryStructureSection, ...] = ()
    selected_secondary_structures: Tuple[SecondaryStructureSection, ...] = ()

    @property
    def arity(self) -> str:
        return ARITY_ARMED if self.candidate_residues else ARITY_EMPTY

    @property
    def highlighted_residues(self) -> List[int]:
        """Sorted, de-duplicated union of candidate and hovered residues."""
        return sorted(set(self.candidate_residues) | set(self.hovered_residues))

    @property
    def has_selection(self) -> bool:
        return bool(
            self.candidate_residues
            or self.locked_residue_pairs
            or self.selected_secondary_structures
        )


@dataclass(frozen=True)
class PickResult:
    """A viewer pick, narrowed from the renderer's event payload.

    ``kind`` is 'atom' (one residue) or 'distance' (a drawn distance
    line between two residues).
    """
    kind: str
    residues: Tuple[int, ...]
    structure_id: Optional[int] = None
    atom: Optional[str] = None

    def __post_init__(self):
        if self.kind not in PICK_KINDS:
            raise ValueError(f"Unknown pick kind {self.kind!r}; expected one of {PICK_KINDS}")
        expected = 1 if self.kind == PICK_ATOM else 2
        if len(self.residues) != expected:
            raise ValueError(f"A {self.kind} pick needs {expected} residue(s), got {self.residues}")

    @property
    def residue(self) -> int:
        return self.residues[0]


# ═══════════════════════════════════════════════════════════════════════
# Store
# ═══════════════════════════════════════════════════════════════════════

Subscriber = Callable[[SelectionState], None]


def _operation(method):
    """Record the call in ``history`` and notify subscribers on change."""
    @functools.wraps(method)
    def wrapper(self, *args):
        changed = method(self, *args)
        self._history.append((method.__name__, args))
        if changed:
            self._state = None
            logger.debug("%s%r -> %s", method.__name__, args, self.state.arity)
            self._notify()
        return changed
    wrapper.is_operation = True
    return wrapper


class ResidueSelectionStore:
    """Single owner of the shared selection state.

    Readers call ``state`` (or ``snapshot()``) and get an immutable
    ``SelectionState``. Writers call the named operations below, each of
    which returns ``True`` when it changed the state.

    ``history`` keeps the last ``history_limit`` completed operations
    (all of them when None); an operation that raises is not recorded.
    """

    def __init__(self, history_limit: Optional[int] = DEFAULT_HISTORY_LIMIT):
        self._candidates: List[int] = []
        self._locked: Dict[str, Tuple[int, int]] = {}
        self._hovered: List[int] = []
        self._hovered_sections: List[SecondaryStructureSection] = []
        self._selected_sections: List[SecondaryStructureSection] = []
        self._subscribers: List[Subscriber] = []
        self._history: Deque[Tuple[str, tuple]] = deque(maxlen=history_limit)
        self._state: Optional[SelectionState] = None

    # ── Reading ──

    @property
    def state(self) -> SelectionState:
        if self._state is None:
            self._state = SelectionState(
                candidate_residues=tuple(self._candidates),
                locked_residue_pairs=MappingProxyType(dict(self._locked)),
                hovered_residues=tuple(self._hovered),
                hovered_secondary_structures=tuple(self._hovered_sections),
                selected_secondary_structures=tuple(self._selected_sections),
            )
        return self._state

    def snapshot(self) -> SelectionState:
        return self.state

    @property
    def history(self) -> List[Tuple[str, tuple]]:
        return list(self._history)

    # ── Observers ──

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        state = self.state
        for callback in list(self._subscribers):
            callback(state)

    # ── Operations ──

    @_operation
    def pick(self, residue: int) -> bool:
        """Arm a candidate, or lock it with a second, different residue."""
        if not self._candidates:
            self._candidates = [residue]
            return True
        first = self._candidates[0]
        if first == residue:
            return False
        self._locked[pair_key((first, residue))] = tuple(sorted((first, residue)))
        self._candidates = []
        return True

    @_operation
    def lock_pair(self, residue_i: int, residue_j: int) -> bool:
        if residue_i == residue_j:
            return False
        key = pair_key((residue_i, residue_j))
        if key in self._locked:
            return False
        self._locked[key] = tuple(sorted((residue_i, residue_j)))
        return True

    @_operation
    def unlock(self, key: str) -> bool:
        if key not in self._locked:
            return False
        del self._locked[key]
        return True

    @_operation
    def hover_residues(self, residues: Sequence[int]) -> bool:
        hovered = list(dict.fromkeys(residues))
        if hovered == self._hovered:
            return False
        self._hovered = hovered
        return True

    @_operation
    def clear_hovered(self) -> bool:
        if not self._hovered:
            return False
        self._hovered = []
        return True

    @_operation
    def hover_secondary_structures(self, sections: Sequence[SecondaryStructureSection]) -> bool:
        sections = list(sections)
        if sections == self._hovered_sections:
            return False
        self._hovered_sections = sections
        return True

    @_operation
    def select_secondary_structure(self, section: SecondaryStructureSection) -> bool:
        if section in self._selected_sections:
            return False
        self._selected_sections.append(section)
        return True

    @_operation
    def clear_selected_secondary_structures(self) -> bool:
        if not self._selected_sections:
            return False
        self._selected_sections = []
        return True

    @_operation
    def clear_transient(self) -> bool:
        """Drop the pick in progress and the hover; locked pairs stay."""
        if not self._candidates and not self._hovered:
            return False
        self._candidates = []
        self._hovered = []
        return True

    @_operation
    def clear_all(self) -> bool:
        if not (self._locked or self._candidates or self._hovered or self._selected_sections):
            return False
        self._locked = {}
        self._candidates = []
        self._hovered = []
        self._selected_sections = []
        return True

    # ── Message passing ──

    def dispatch(self, operation: str, *args) -> bool:
        """Apply a named operation, e.g. ``dispatch("pick", 12)``."""
        method = getattr(self, operation, None)
        if method is None or not getattr(method, "is_operation", False):
            raise ValueError(f"Unknown selection operation {operation!r}")
        return method(*args)

    @classmethod
    def replay(cls, history: Iterable[Tuple[str, tuple]]) -> "ResidueSelectionStore":
        """A fresh store with ``history`` re-applied in order."""
        store = cls()
        for operation, args in history:
            store.dispatch(operation, *args)
        return store


# ═══════════════════════════════════════════════════════════════════════
# Event handlers
# ═══════════════════════════════════════════════════════════════════════


def on_click(store: ResidueSelectionStore, pick: Optional[PickResult]) -> None:
    """Route a viewer click into store operations.

    - distance line: unlock that pair
    - atom: pick its residue
    - nothing, while armed and hovering: lock the candidate with the
      hovered residue
    - nothing otherwise: clear transient state
    """
    if pick is not None:
        if pick.kind == PICK_DISTANCE:
            store.unlock(pair_key(pick.residues))
        else:
            store.pick(pick.residue)
        return

    state = store.state
    if state.candidate_residues and state.hovered_residues:
        candidate = state.candidate_residues[0]
        for residue in state.hovered_residues:
            if residue != candidate:
                store.pick(residue)
                return
    store.clear_transient()


def on_hover(store: ResidueSelectionStore, pick: Optional[PickResult]) -> None:
    """Route a viewer hover into store operations."""
    if pick is not None and pick.kind == PICK_ATOM:
        store.hover_residues([pick.residue])
    elif pick is None:
        state = store.state
        if not state.candidate_residues and state.hovered_residues:
            store.clear_hovered()


def on_contact_map_click(store: ResidueSelectionStore, i: int, j: int) -> None:
    """A click on contact (i, j) locks that pair."""
    store.lock_pair(i, j)


def on_contact_map_hover(store: ResidueSelectionStore, i: int, j: int) -> None:
    store.hover_residues([i, j])


def on_section_choice(
    store: ResidueSelectionStore,
    section: Optional[SecondaryStructureSection],
    previous: Optional[SecondaryStructureSection],
) -> bool:
    """Select a section picked from a chooser, only when the choice changed.

    A chooser that keeps its value across redraws must not re-select a
    section that ``clear_all`` has since removed.
    """
    if section is None or section == previous:
        return False
    return store.select_secondary_structure(section)
