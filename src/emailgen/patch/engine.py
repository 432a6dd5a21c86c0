from dataclasses import dataclass
from typing import Iterable, List, Set

import structlog

from emailgen.models import Modification, ModificationState

logger = structlog.get_logger(__name__)


@dataclass
class PatchResult:
    document: str
    modification: Modification
    state: ModificationState


def split_document(document: str) -> List[str]:
    return document.split("\n")


def join_document(lines: List[str]) -> str:
    return "\n".join(lines)


def _trimmed(lines: List[str]) -> Set[str]:
    return {line.strip() for line in lines}


def truly_new_lines(modification: Modification) -> List[str]:
    """
    Lines of new_code that do not already exist (after trimming) in original_code.
    These are the only lines the applier ever inserts.
    """
    original = _trimmed(modification.original_lines)
    return [line for line in modification.new_lines if line.strip() not in original]


def apply_modification(document: str, modification: Modification) -> PatchResult:
    """
    Applies a Modification to the document text.

    Only net-new lines are inserted. Existing lines inside the targeted span
    survive if they also appear in original_code; lines outside the span are
    never touched. A stale range degrades to insertion instead of failing.
    """
    lines = split_document(document)
    original_set = _trimmed(modification.original_lines)
    new_lines = truly_new_lines(modification)

    # Clamp to the document so stale ranges insert at the end
    start_idx = min(modification.start_line - 1, len(lines))
    end_idx = min(modification.end_line, len(lines))

    logger.debug(
        "Applying modification",
        start_line=modification.start_line,
        end_line=modification.end_line,
        new_lines=len(new_lines),
    )

    if modification.is_column_scoped:
        expected = modification.original_lines[0].strip()
        current = lines[start_idx].strip() if start_idx < len(lines) else None

        if current == expected:
            # 1. Line still matches: swap it in place
            lines[start_idx] = modification.new_lines[0]
        else:
            # 2. Line drifted: insert after it rather than clobber it
            logger.info(
                "Target line changed since proposal; inserting instead",
                line=modification.start_line,
            )
            insert_at = min(start_idx + 1, len(lines))
            lines[insert_at:insert_at] = new_lines
            # Revert looks for fallback inserts right after start_line
            start_idx, end_idx = insert_at - 1, insert_at
    else:
        span = lines[start_idx:end_idx]
        kept = [line for line in span if line.strip() in original_set]
        lines[start_idx:end_idx] = kept + new_lines

    update = {"applied": True}
    if start_idx != modification.start_line - 1 or end_idx != modification.end_line:
        # Range was clamped: record where the change actually landed
        update["start_line"] = start_idx + 1
        update["end_line"] = max(start_idx + 1, end_idx)
        logger.debug(
            "Recorded clamped range",
            start_line=update["start_line"],
            end_line=update["end_line"],
        )

    applied = modification.model_copy(update=update)
    return PatchResult(join_document(lines), applied, ModificationState.APPLIED)


def apply_modifications(document: str, modifications: Iterable[Modification]) -> str:
    """
    Applies several modifications whose ranges all refer to the same original
    document. Bottom-most edits go first so earlier line numbers stay valid.
    """
    ordered = sorted(modifications, key=lambda m: (m.start_line, m.end_line), reverse=True)
    logger.info(f"Applying {len(ordered)} modifications.")
    for modification in ordered:
        document = apply_modification(document, modification).document
    return document


def revert_modification(document: str, modification: Modification) -> PatchResult:
    """
    Removes the lines a previous apply_modification inserted.

    The returned record carries the same code and range with applied=False, so
    feeding it back to apply_modification reapplies the change. Reverting a
    record that is not applied is a no-op.
    """
    if not modification.applied:
        logger.debug("Modification not applied; revert is a no-op")
        return PatchResult(document, modification, ModificationState.REVERTED)

    lines = split_document(document)
    original_set = _trimmed(modification.original_lines)
    start_idx = min(modification.start_line - 1, len(lines))
    reverted = modification.model_copy(update={"applied": False})

    window_size = len(modification.new_lines)

    if modification.is_column_scoped and start_idx < len(lines):
        if lines[start_idx].strip() == modification.new_lines[0].strip():
            # Undo an in-place swap
            lines[start_idx] = modification.original_lines[0]
            return PatchResult(join_document(lines), reverted, ModificationState.REVERTED)
        # Fallback inserts went in after the target line
        start_idx += 1
        window_size = len(truly_new_lines(modification))

    end_idx = min(start_idx + window_size, len(lines))
    window = lines[start_idx:end_idx]
    kept = [line for line in window if line.strip() in original_set]
    lines[start_idx:end_idx] = kept

    logger.debug(
        "Reverted modification",
        start_line=modification.start_line,
        removed=len(window) - len(kept),
    )
    return PatchResult(join_document(lines), reverted, ModificationState.REVERTED)


def revert_modifications(document: str, modifications: Iterable[Modification]) -> str:
    """
    Reverts a batch previously applied with apply_modifications. Top-most
    edits go first so every later range is back at its original position.
    """
    ordered = sorted(modifications, key=lambda m: (m.start_line, m.end_line))
    logger.info(f"Reverting {len(ordered)} modifications.")
    for modification in ordered:
        document = revert_modification(document, modification).document
    return document
