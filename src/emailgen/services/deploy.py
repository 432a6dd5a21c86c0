"""
Deployment to Salesforce Marketing Cloud and client render tests.

Both external calls are simulated: the credentials are checked and the
outcome is recorded in the store exactly as a real integration would.
"""

import time
from typing import Any, Dict, List, Optional

import structlog

from emailgen.config import Settings
from emailgen.errors import ConfigurationError, MissingParameterError, NotFoundError
from emailgen.models import RenderProvider, utc_now
from emailgen.services.versions import VersionControl
from emailgen.store import Store

logger = structlog.get_logger(__name__)

DEPLOYMENTS_TABLE = "sfmc_deployments"
RENDER_TESTS_TABLE = "render_tests"

RENDER_TEST_URL = "https://example.com/render-test/{test_id}"


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class DeploymentService:
    def __init__(self, settings: Settings, store: Store, versions: VersionControl):
        self.settings = settings
        self.store = store
        self.versions = versions

    def deploy_email(
        self,
        email_id: str,
        email_name: str,
        user_id: str,
        version_id: Optional[str] = None,
        folder_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not email_id or not email_name:
            raise MissingParameterError("emailId and emailName are required")

        # 1. Resolve the version to ship
        if version_id:
            version = self.versions.get_version_by_id(version_id)
        else:
            version = self.versions.latest_version(email_id)

        # 2. Authenticate against SFMC
        if not self.settings.sfmc_configured:
            raise ConfigurationError("SFMC credentials are not configured")

        asset_id = f"asset-{_epoch_ms()}"
        deployed_at = utc_now()
        logger.info(
            f"Deployed email {email_id} version {version.version_number} to SFMC",
            asset_id=asset_id,
        )

        # 3. Record the deployment
        self.store.insert(
            DEPLOYMENTS_TABLE,
            {
                "email_id": email_id,
                "version_id": version.id,
                "user_id": user_id,
                "sfmc_asset_id": asset_id,
                "email_name": email_name,
                "folder_id": folder_id,
                "status": "deployed",
                "deployed_at": deployed_at,
            },
        )

        return {
            "success": True,
            "sfmcAssetId": asset_id,
            "message": "Email successfully deployed to SFMC",
            "deployedAt": deployed_at,
        }

    def list_deployments(self, email_id: str) -> List[Dict[str, Any]]:
        return self.store.select(
            DEPLOYMENTS_TABLE, {"email_id": email_id}, order_by="deployed_at", descending=True
        )


class RenderTestService:
    def __init__(self, settings: Settings, store: Store):
        self.settings = settings
        self.store = store

    def _api_key(self, provider: RenderProvider) -> str:
        if provider == RenderProvider.LITMUS:
            key = self.settings.litmus_api_key
        else:
            key = self.settings.email_on_acid_api_key
        if not key:
            raise ConfigurationError(f"{provider.value} API key is not configured")
        return key

    def submit_render_test(
        self,
        html: str,
        user_id: str,
        subject: Optional[str] = None,
        provider: RenderProvider = RenderProvider.LITMUS,
    ) -> Dict[str, Any]:
        if not html:
            raise MissingParameterError("HTML content is required")
        provider = RenderProvider(provider)
        self._api_key(provider)

        test_id = f"test-{_epoch_ms()}"
        result_url = RENDER_TEST_URL.format(test_id=test_id)

        self.store.insert(
            RENDER_TESTS_TABLE,
            {
                "test_id": test_id,
                "user_id": user_id,
                "provider": provider.value,
                "subject": subject or "Email Render Test",
                "status": "pending",
                "result_url": result_url,
                "created_at": utc_now(),
            },
        )
        logger.info(f"Submitted {provider.value} render test {test_id}")

        return {"testId": test_id, "resultUrl": result_url, "status": "pending"}

    def render_test_status(self, test_id: str) -> Dict[str, Any]:
        row = self.store.first(RENDER_TESTS_TABLE, {"test_id": test_id})
        if row is None:
            raise NotFoundError(f"Render test {test_id} not found")
        return {
            "testId": row["test_id"],
            "status": row["status"],
            "resultUrl": row.get("result_url"),
            "provider": row.get("provider"),
        }
