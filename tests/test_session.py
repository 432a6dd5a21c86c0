import pytest

from emailgen.errors import ModificationStateError
from emailgen.models import Modification, ModificationState
from emailgen.patch.session import PatchSession

DOC = "<p>A</p>\n<p>B</p>"


@pytest.fixture
def session():
    return PatchSession(DOC)


@pytest.fixture
def mod():
    return Modification(
        description="Add C",
        original_code="<p>B</p>",
        new_code="<p>B</p>\n<p>C</p>",
        start_line=2,
        end_line=2,
    )


def test_accept_revert_reapply_cycle(session, mod):
    [mod_id] = session.propose([mod])
    assert [t.id for t in session.pending()] == [mod_id]

    assert session.accept(mod_id) == "<p>A</p>\n<p>B</p>\n<p>C</p>"
    assert session.get(mod_id).state == ModificationState.APPLIED
    assert session.pending() == []

    assert session.revert(mod_id) == DOC
    assert session.get(mod_id).state == ModificationState.REVERTED

    # Second revert changes nothing
    assert session.revert(mod_id) == DOC

    assert session.reapply(mod_id) == "<p>A</p>\n<p>B</p>\n<p>C</p>"
    assert session.get(mod_id).modification.applied is True


def test_propose_resets_applied_flag(session, mod):
    [mod_id] = session.propose([mod.model_copy(update={"applied": True})])
    assert session.get(mod_id).modification.applied is False


def test_reject_removes_proposal(session, mod):
    [mod_id] = session.propose([mod])
    session.reject(mod_id)

    assert session.pending() == []
    assert session.document == DOC
    with pytest.raises(ModificationStateError):
        session.accept(mod_id)


def test_reject_after_accept_is_illegal(session, mod):
    [mod_id] = session.propose([mod])
    session.accept(mod_id)
    with pytest.raises(ModificationStateError):
        session.reject(mod_id)


def test_reapply_before_revert_is_illegal(session, mod):
    [mod_id] = session.propose([mod])
    with pytest.raises(ModificationStateError):
        session.reapply(mod_id)
    session.accept(mod_id)
    with pytest.raises(ModificationStateError):
        session.reapply(mod_id)


def test_revert_of_proposed_is_illegal(session, mod):
    [mod_id] = session.propose([mod])
    with pytest.raises(ModificationStateError):
        session.revert(mod_id)


def test_unknown_id(session):
    with pytest.raises(ModificationStateError):
        session.get("missing")
