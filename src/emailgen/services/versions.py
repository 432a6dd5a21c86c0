from typing import Any, Dict, List, Optional

import structlog

from emailgen.diff import generate_modifications
from emailgen.errors import MissingParameterError, NotFoundError, StoreError
from emailgen.models import EmailVersion, Modification, utc_now
from emailgen.store import Store

logger = structlog.get_logger(__name__)

VERSIONS_TABLE = "email_versions"
NOTIFICATIONS_TABLE = "notifications"


class VersionControl:
    """
    Append-only history of an email's HTML. Rolling back never rewrites
    history; it saves the old content as a new version.
    """
    def __init__(self, store: Store):
        self.store = store

    def _latest_number(self, email_id: str) -> int:
        rows = self.store.select(
            VERSIONS_TABLE,
            {"email_id": email_id},
            order_by="version_number",
            descending=True,
            limit=1,
        )
        return rows[0]["version_number"] if rows else 0

    def save_version(self, email_id: str, html: str, metadata: Optional[Dict[str, Any]] = None) -> EmailVersion:
        metadata = dict(metadata or {})
        user_id = metadata.get("userId")
        if not user_id:
            raise MissingParameterError("metadata.userId is required to save a version")

        version_number = self._latest_number(email_id) + 1
        row = self.store.insert(
            VERSIONS_TABLE,
            {
                "email_id": email_id,
                "user_id": user_id,
                "version_number": version_number,
                "html_content": html,
                "metadata": metadata,
                "created_at": utc_now(),
            },
        )
        version = EmailVersion.model_validate(row)
        logger.info(f"Saved version {version_number} of email {email_id}")

        self._notify(user_id, email_id, version_number)
        return version

    def _notify(self, user_id: str, email_id: str, version_number: int):
        try:
            self.store.insert(
                NOTIFICATIONS_TABLE,
                {
                    "user_id": user_id,
                    "type": "version_created",
                    "title": "New Version Created",
                    "message": f"Version {version_number} has been created",
                    "metadata": {"email_id": email_id, "version_number": version_number},
                    "read": False,
                    "created_at": utc_now(),
                },
            )
        except StoreError as exc:
            logger.error("Failed to create version notification", error=str(exc))

    def get_versions(self, email_id: str) -> List[EmailVersion]:
        rows = self.store.select(
            VERSIONS_TABLE, {"email_id": email_id}, order_by="version_number", descending=True
        )
        return [EmailVersion.model_validate(row) for row in rows]

    def get_version(self, email_id: str, version_number: int) -> EmailVersion:
        row = self.store.first(
            VERSIONS_TABLE, {"email_id": email_id, "version_number": version_number}
        )
        if row is None:
            raise NotFoundError(f"Version {version_number} of email {email_id} not found")
        return EmailVersion.model_validate(row)

    def get_version_by_id(self, version_id: str) -> EmailVersion:
        row = self.store.first(VERSIONS_TABLE, {"id": version_id})
        if row is None:
            raise NotFoundError(f"Version {version_id} not found")
        return EmailVersion.model_validate(row)

    def latest_version(self, email_id: str) -> EmailVersion:
        versions = self.get_versions(email_id)
        if not versions:
            raise NotFoundError(f"Email {email_id} has no versions")
        return versions[0]

    def rollback_to_version(self, email_id: str, version_number: int, user_id: Optional[str] = None) -> EmailVersion:
        target = self.get_version(email_id, version_number)
        logger.info(f"Rolling back email {email_id} to version {version_number}")
        return self.save_version(
            email_id,
            target.html_content,
            {
                "userId": user_id or target.user_id,
                "rollback_from": version_number,
                "comment": f"Rollback to version {version_number}",
            },
        )

    def diff_versions(self, email_id: str, from_version: int, to_version: int) -> List[Modification]:
        old = self.get_version(email_id, from_version)
        new = self.get_version(email_id, to_version)
        return generate_modifications(old.html_content, new.html_content)
