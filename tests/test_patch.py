import pytest
from pydantic import ValidationError

from emailgen.models import Modification, ModificationState
from emailgen.patch.engine import (
    apply_modification,
    apply_modifications,
    revert_modification,
    revert_modifications,
    truly_new_lines,
)


def _mod(original, new, start, end, **kwargs):
    return Modification(original_code=original, new_code=new, start_line=start, end_line=end, **kwargs)


def test_insert_after_line_and_revert():
    """
    [A, B] + keep B, add C on line 2 -> [A, B, C]; reverting gives [A, B].
    """
    doc = "<p>A</p>\n<p>B</p>"
    mod = _mod("<p>B</p>", "<p>B</p>\n<p>C</p>", 2, 2)

    applied = apply_modification(doc, mod)
    assert applied.document == "<p>A</p>\n<p>B</p>\n<p>C</p>"
    assert applied.modification.applied is True
    assert applied.state == ModificationState.APPLIED

    reverted = revert_modification(applied.document, applied.modification)
    assert reverted.document == doc
    assert reverted.modification.applied is False
    assert reverted.state == ModificationState.REVERTED


def test_reverting_a_reverted_record_is_a_noop():
    doc = "<p>A</p>\n<p>B</p>"
    mod = _mod("<p>B</p>", "<p>B</p>\n<p>C</p>", 2, 2)

    applied = apply_modification(doc, mod)
    reverted = revert_modification(applied.document, applied.modification)
    again = revert_modification(reverted.document, reverted.modification)

    assert again.document == reverted.document


def test_reapply_from_reverted_record():
    doc = "<p>A</p>\n<p>B</p>"
    mod = _mod("<p>B</p>", "<p>B</p>\n<p>C</p>", 2, 2)

    applied = apply_modification(doc, mod)
    reverted = revert_modification(applied.document, applied.modification)
    reapplied = apply_modification(reverted.document, reverted.modification)

    assert reapplied.document == applied.document


def test_lines_outside_range_are_never_removed():
    doc = "a\nb\nc\nd\ne"
    # "c" is inside the span but not in originalCode, so only it may go
    mod = _mod("b", "b\nX", 2, 3)

    result = apply_modification(doc, mod).document.split("\n")

    assert result == ["a", "b", "X", "d", "e"]
    for line in ("a", "d", "e"):
        assert line in result


def test_original_lines_inside_span_survive():
    doc = "a\nb\nc\nd"
    mod = _mod("b\nc", "b\nX", 2, 3)

    assert apply_modification(doc, mod).document == "a\nb\nc\nX\nd"


def test_column_scoped_edit_replaces_matching_line_in_place():
    doc = '<table>\n  <td style="color:red">Hi</td>\n</table>'
    mod = _mod(
        '  <td style="color:red">Hi</td>',
        '  <td style="color:blue">Hi</td>',
        2,
        2,
        start_col=2,
        end_col=31,
    )

    applied = apply_modification(doc, mod)
    assert applied.document == '<table>\n  <td style="color:blue">Hi</td>\n</table>'

    reverted = revert_modification(applied.document, applied.modification)
    assert reverted.document == doc


def test_column_scoped_edit_on_changed_line_falls_back_to_insertion():
    doc = "x\n<p>changed</p>\nz"
    mod = _mod("<p>old</p>", "<p>new</p>", 2, 2, start_col=0, end_col=10)

    applied = apply_modification(doc, mod)
    assert applied.document == "x\n<p>changed</p>\n<p>new</p>\nz"

    reverted = revert_modification(applied.document, applied.modification)
    assert reverted.document == doc


def test_stale_range_is_clamped_to_document_end():
    doc = "line 1\nline 2"
    mod = _mod("footer", "footer\n<p>unsubscribe</p>", 10, 12)

    applied = apply_modification(doc, mod)
    assert applied.document == "line 1\nline 2\n<p>unsubscribe</p>"
    assert (applied.modification.start_line, applied.modification.end_line) == (3, 3)

    reverted = revert_modification(applied.document, applied.modification)
    assert reverted.document == doc
    assert apply_modification(reverted.document, reverted.modification).document == applied.document


def test_stale_column_scoped_edit_reverts_its_fallback_insert():
    doc = "a\nb"
    mod = _mod("x", "y", 10, 10, start_col=0, end_col=1)

    applied = apply_modification(doc, mod)
    assert applied.document == "a\nb\ny"

    reverted = revert_modification(applied.document, applied.modification)
    assert reverted.document == doc


def test_batch_apply_and_revert_restore_document():
    doc = "a\nb\nc\nd"
    mods = [
        _mod("a", "a\nA2", 1, 1),
        _mod("c", "c\nC2", 3, 3),
    ]

    applied = apply_modifications(doc, mods)
    assert applied == "a\nA2\nb\nc\nC2\nd"

    marked = [m.model_copy(update={"applied": True}) for m in mods]
    assert revert_modifications(applied, marked) == doc


def test_truly_new_lines_compares_trimmed_lines():
    mod = _mod("  <p>B</p>", "<p>B</p>\n<p>C</p>", 1, 1)
    assert truly_new_lines(mod) == ["<p>C</p>"]


def test_modification_accepts_both_spellings():
    camel = Modification.model_validate(
        {"originalCode": "a", "newCode": "b", "startLine": 1, "endLine": 2, "startCol": 0}
    )
    snake = Modification(original_code="a", new_code="b", start_line=1, end_line=2, start_col=0)

    assert camel == snake
    wire = camel.to_wire()
    assert wire["originalCode"] == "a"
    assert wire["startLine"] == 1
    assert "endCol" not in wire


@pytest.mark.parametrize(
    "payload",
    [
        {"originalCode": "", "newCode": "b", "startLine": 1, "endLine": 1},
        {"originalCode": "a", "newCode": "   ", "startLine": 1, "endLine": 1},
        {"originalCode": "a", "newCode": "b", "startLine": 0, "endLine": 1},
        {"originalCode": "a", "newCode": "b", "startLine": 3, "endLine": 2},
        {"originalCode": "a", "newCode": "b", "startLine": 1, "endLine": 1, "startCol": -1},
    ],
)
def test_modification_invariants_are_enforced(payload):
    with pytest.raises(ValidationError):
        Modification.model_validate(payload)
