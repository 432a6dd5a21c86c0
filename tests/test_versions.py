import pytest

from emailgen.errors import MissingParameterError, NotFoundError, StoreError
from emailgen.services.versions import NOTIFICATIONS_TABLE, VersionControl
from emailgen.store import MemoryStore


@pytest.fixture
def versions(store):
    return VersionControl(store)


def test_versions_are_numbered_per_email(versions):
    v1 = versions.save_version("email-1", "<p>one</p>", {"userId": "u"})
    v2 = versions.save_version("email-1", "<p>two</p>", {"userId": "u"})
    other = versions.save_version("email-2", "<p>x</p>", {"userId": "u"})

    assert (v1.version_number, v2.version_number, other.version_number) == (1, 2, 1)
    assert v2.user_id == "u"


def test_user_id_is_required(versions):
    with pytest.raises(MissingParameterError):
        versions.save_version("email-1", "<p>one</p>", {})


def test_saving_writes_a_notification(versions, store):
    versions.save_version("email-1", "<p>one</p>", {"userId": "u"})

    [note] = store.select(NOTIFICATIONS_TABLE)
    assert note["type"] == "version_created"
    assert note["message"] == "Version 1 has been created"


def test_history_is_newest_first(versions):
    for i in range(3):
        versions.save_version("email-1", f"<p>{i}</p>", {"userId": "u"})

    assert [v.version_number for v in versions.get_versions("email-1")] == [3, 2, 1]
    assert versions.get_version("email-1", 2).html_content == "<p>1</p>"


def test_missing_version(versions):
    with pytest.raises(NotFoundError):
        versions.get_version("email-1", 7)
    with pytest.raises(NotFoundError):
        versions.latest_version("email-1")


def test_rollback_saves_a_new_version(versions):
    versions.save_version("email-1", "<p>first</p>", {"userId": "u"})
    versions.save_version("email-1", "<p>second</p>", {"userId": "u"})

    rolled = versions.rollback_to_version("email-1", 1)

    assert rolled.version_number == 3
    assert rolled.html_content == "<p>first</p>"
    assert rolled.metadata["rollback_from"] == 1
    assert rolled.metadata["comment"] == "Rollback to version 1"
    assert len(versions.get_versions("email-1")) == 3


def test_diff_between_versions(versions):
    versions.save_version("email-1", "<table>\n<td>Hi</td>\n</table>", {"userId": "u"})
    versions.save_version("email-1", "<table>\n<td>Hello</td>\n</table>", {"userId": "u"})

    [mod] = versions.diff_versions("email-1", 1, 2)
    assert mod.original_code == "<td>Hi</td>"
    assert mod.new_code == "<td>Hello</td>"


class NoNotificationsStore(MemoryStore):
    def insert(self, table, row):
        if table == NOTIFICATIONS_TABLE:
            raise StoreError("notifications table missing")
        return super().insert(table, row)


def test_notification_failure_is_not_fatal():
    version = VersionControl(NoNotificationsStore()).save_version("e", "<p/>", {"userId": "u"})
    assert version.version_number == 1
