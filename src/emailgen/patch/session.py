import uuid
from dataclasses import dataclass
from typing import Dict, Iterable, List

import structlog

from emailgen.errors import ModificationStateError
from emailgen.models import Modification, ModificationState
from emailgen.patch.engine import apply_modification, revert_modification

logger = structlog.get_logger(__name__)


@dataclass
class TrackedModification:
    id: str
    modification: Modification
    state: ModificationState = ModificationState.PROPOSED


class PatchSession:
    """
    Holds one document buffer and the modifications proposed against it.

    Each modification moves through proposed -> applied <-> reverted, or
    proposed -> rejected. Only the last applied/reverted record is kept per
    modification, so undo/redo is one level deep.
    """
    def __init__(self, document: str):
        self.document = document
        self._tracked: Dict[str, TrackedModification] = {}

    def propose(self, modifications: Iterable[Modification]) -> List[str]:
        ids = []
        for modification in modifications:
            mod_id = str(uuid.uuid4())
            self._tracked[mod_id] = TrackedModification(
                id=mod_id,
                modification=modification.model_copy(update={"applied": False}),
            )
            ids.append(mod_id)
        logger.info(f"Proposed {len(ids)} modifications.")
        return ids

    def get(self, mod_id: str) -> TrackedModification:
        try:
            return self._tracked[mod_id]
        except KeyError:
            raise ModificationStateError(f"Unknown modification: {mod_id}") from None

    def pending(self) -> List[TrackedModification]:
        return [t for t in self._tracked.values() if t.state == ModificationState.PROPOSED]

    def tracked(self) -> List[TrackedModification]:
        return list(self._tracked.values())

    def _require(self, tracked: TrackedModification, *allowed: ModificationState):
        if tracked.state not in allowed:
            names = ", ".join(s.value for s in allowed)
            raise ModificationStateError(
                f"Modification {tracked.id} is {tracked.state.value}; expected {names}"
            )

    def accept(self, mod_id: str) -> str:
        tracked = self.get(mod_id)
        self._require(tracked, ModificationState.PROPOSED)
        return self._apply(tracked)

    def reapply(self, mod_id: str) -> str:
        tracked = self.get(mod_id)
        self._require(tracked, ModificationState.REVERTED)
        return self._apply(tracked)

    def reject(self, mod_id: str) -> None:
        tracked = self.get(mod_id)
        self._require(tracked, ModificationState.PROPOSED)
        tracked.state = ModificationState.REJECTED
        del self._tracked[mod_id]
        logger.debug(f"Rejected modification {mod_id}")

    def revert(self, mod_id: str) -> str:
        tracked = self.get(mod_id)
        if tracked.state == ModificationState.REVERTED:
            return self.document
        self._require(tracked, ModificationState.APPLIED)

        result = revert_modification(self.document, tracked.modification)
        self.document = result.document
        tracked.modification = result.modification
        tracked.state = result.state
        logger.debug(f"Reverted modification {mod_id}")
        return self.document

    def _apply(self, tracked: TrackedModification) -> str:
        result = apply_modification(self.document, tracked.modification)
        self.document = result.document
        tracked.modification = result.modification
        tracked.state = result.state
        logger.debug(f"Applied modification {tracked.id}")
        return self.document
