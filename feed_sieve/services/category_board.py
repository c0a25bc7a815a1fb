"""Two-phase category blocking.

Clicking a category stages it; staged labels only start filtering once
they are applied. Each label carries exactly one CategoryState.
"""

from typing import Dict, Iterable, List

from feed_sieve.models.schemas import CategoryState


class CategoryBoard:
    """Tracks the state of every category label the reader has touched."""

    def __init__(self, blocked: Iterable[str] = ()):
        self._states: Dict[str, CategoryState] = {}
        self.reset(blocked)

    def reset(self, blocked: Iterable[str]) -> None:
        """Replace the blocked labels with a freshly loaded list.

        Staged labels survive unless the new list already blocks them.
        """
        states = {label: CategoryState.BLOCKED for label in blocked}
        for label in self.staged:
            states.setdefault(label, CategoryState.STAGED)
        self._states = states

    def state(self, label: str) -> CategoryState:
        return self._states.get(label, CategoryState.UNBLOCKED)

    def _labels(self, state: CategoryState) -> List[str]:
        # dict order keeps labels in the order they entered the board
        return [label for label, s in self._states.items() if s is state]

    @property
    def blocked(self) -> List[str]:
        return self._labels(CategoryState.BLOCKED)

    @property
    def staged(self) -> List[str]:
        return self._labels(CategoryState.STAGED)

    def stage(self, label: str) -> bool:
        """Stage a label unless it is already staged or blocked."""
        if self.state(label) is not CategoryState.UNBLOCKED:
            return False
        self._states[label] = CategoryState.STAGED
        return True

    def toggle_staged(self, label: str) -> CategoryState:
        current = self.state(label)
        if current is CategoryState.STAGED:
            del self._states[label]
            return CategoryState.UNBLOCKED
        if current is CategoryState.UNBLOCKED:
            self._states[label] = CategoryState.STAGED
            return CategoryState.STAGED
        return current

    def apply_staged(self) -> List[str]:
        """Move every staged label to blocked.

        Returns:
            The labels that were applied
        """
        applied = self.staged
        for label in applied:
            self._states[label] = CategoryState.BLOCKED
        return applied

    def cancel_staged(self) -> List[str]:
        cancelled = self.staged
        for label in cancelled:
            del self._states[label]
        return cancelled

    def unblock(self, label: str) -> bool:
        if self.state(label) is not CategoryState.BLOCKED:
            return False
        del self._states[label]
        return True

    def clear_blocked(self) -> List[str]:
        cleared = self.blocked
        for label in cleared:
            del self._states[label]
        return cleared
