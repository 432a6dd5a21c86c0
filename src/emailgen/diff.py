from typing import List, Optional

import structlog
from diff_match_patch import diff_match_patch

from emailgen.models import Modification

logger = structlog.get_logger(__name__)


def _split(text: str) -> List[str]:
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def _has_text(lines: List[str]) -> bool:
    return any(line.strip() for line in lines)


def generate_modifications(original_text: str, modified_text: str) -> List[Modification]:
    """
    Compares two documents line by line and returns one Modification per
    changed hunk, with line ranges relative to original_text.

    The applier never removes lines listed in original_code, so hunks are
    expressed in the shapes it can replay: a column-scoped swap for a single
    changed line, otherwise an edit anchored on the unchanged line before it.
    """
    dmp = diff_match_patch()

    # 1. Line-mode diff: each line becomes one character for diff_main
    chars1, chars2, line_array = dmp.diff_linesToChars(original_text, modified_text)
    diffs = dmp.diff_main(chars1, chars2, False)
    dmp.diff_charsToLines(diffs, line_array)

    modifications = []
    line_no = 1  # next unconsumed line of the original
    equal_lines: List[str] = []

    i = 0
    while i < len(diffs):
        op, text = diffs[i]
        if op == 0:  # Equal
            lines = _split(text)
            line_no += len(lines)
            equal_lines = lines
            i += 1
            continue

        # 2. Collect the whole DELETE/INSERT run between two equal blocks
        deleted: List[str] = []
        inserted: List[str] = []
        while i < len(diffs) and diffs[i][0] != 0:
            if diffs[i][0] == -1:
                deleted.extend(_split(diffs[i][1]))
            else:
                inserted.extend(_split(diffs[i][1]))
            i += 1

        next_equal = None
        if i < len(diffs):
            following = _split(diffs[i][1])
            next_equal = following[0] if following else None

        modification = _build_modification(
            deleted, inserted, line_no, _anchor_block(equal_lines), next_equal
        )
        if modification is not None:
            modifications.append(modification)
        line_no += len(deleted)

    logger.debug(f"Diff produced {len(modifications)} modifications")
    return modifications


def _anchor_block(equal_lines: List[str]) -> List[str]:
    """
    Trailing lines of an unchanged block, from its last non-blank line on.
    Empty when the block has no text to anchor on.
    """
    for k in range(len(equal_lines) - 1, -1, -1):
        if equal_lines[k].strip():
            return equal_lines[k:]
    return []


def _build_modification(
    deleted: List[str],
    inserted: List[str],
    line_no: int,
    anchor: List[str],
    after: Optional[str],
) -> Optional[Modification]:
    # One line for one line: swap it in place
    if len(deleted) == 1 and len(inserted) == 1 and deleted[0].strip() and inserted[0].strip():
        return Modification(
            description=f"Replace line {line_no}",
            original_code=deleted[0],
            new_code=inserted[0],
            start_line=line_no,
            end_line=line_no,
            start_col=0,
            end_col=len(deleted[0]),
        )

    if _has_text(inserted) and deleted:
        description = f"Replace {len(deleted)} line(s) with {len(inserted)} line(s)"
    elif _has_text(inserted):
        description = f"Insert {len(inserted)} line(s)"
    else:
        description = f"Delete {len(deleted)} line(s)"

    # Anchor on the unchanged lines before the hunk (blank ones included):
    # the applier keeps them, drops the deleted lines after them and
    # appends the inserted ones.
    if anchor:
        return Modification(
            description=description,
            original_code="\n".join(anchor),
            new_code="\n".join(anchor + inserted),
            start_line=line_no - len(anchor),
            end_line=line_no - 1 + len(deleted),
        )

    # Start of document: only deletions can be anchored on the following line
    if deleted and not _has_text(inserted) and after is not None and after.strip():
        return Modification(
            description=description,
            original_code=after,
            new_code=after,
            start_line=line_no,
            end_line=line_no + len(deleted),
        )

    logger.warning(
        "Change without a usable anchor line ignored",
        line=line_no,
        inserted=len(inserted),
        deleted=len(deleted),
    )
    return None
