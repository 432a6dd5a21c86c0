import pytest

from emailgen.config import Settings
from emailgen.errors import ConfigurationError, MissingParameterError, NotFoundError
from emailgen.models import RenderProvider
from emailgen.services.deploy import (
    DEPLOYMENTS_TABLE,
    DeploymentService,
    RenderTestService,
)
from emailgen.services.versions import VersionControl


@pytest.fixture
def versions(store):
    versions = VersionControl(store)
    versions.save_version("email-1", "<table></table>", {"userId": "u"})
    return versions


def test_deploy_latest_version(settings, store, versions):
    result = DeploymentService(settings, store, versions).deploy_email("email-1", "Spring sale", "u")

    assert result["success"] is True
    assert result["sfmcAssetId"].startswith("asset-")

    [row] = store.select(DEPLOYMENTS_TABLE)
    assert row["sfmc_asset_id"] == result["sfmcAssetId"]
    assert row["status"] == "deployed"
    assert row["version_id"] == versions.latest_version("email-1").id


def test_deploy_specific_version(settings, store, versions):
    second = versions.save_version("email-1", "<table>2</table>", {"userId": "u"})
    first = versions.get_version("email-1", 1)

    service = DeploymentService(settings, store, versions)
    service.deploy_email("email-1", "Sale", "u", version_id=first.id)

    [row] = service.list_deployments("email-1")
    assert row["version_id"] == first.id != second.id


def test_deploy_requires_sfmc_credentials(store, versions):
    with pytest.raises(ConfigurationError):
        DeploymentService(Settings(), store, versions).deploy_email("email-1", "Sale", "u")


def test_deploy_requires_a_version(settings, store):
    service = DeploymentService(settings, store, VersionControl(store))
    with pytest.raises(NotFoundError):
        service.deploy_email("unknown", "Sale", "u")


def test_deploy_requires_a_name(settings, store, versions):
    with pytest.raises(MissingParameterError):
        DeploymentService(settings, store, versions).deploy_email("email-1", "", "u")


def test_render_test_lifecycle(settings, store):
    service = RenderTestService(settings, store)

    submitted = service.submit_render_test("<table></table>", "u", subject="Hi")
    assert submitted["testId"].startswith("test-")
    assert submitted["resultUrl"] == f"https://example.com/render-test/{submitted['testId']}"

    status = service.render_test_status(submitted["testId"])
    assert status["status"] == "pending"
    assert status["provider"] == "litmus"


def test_render_test_needs_provider_key(settings, store):
    service = RenderTestService(settings, store)
    with pytest.raises(ConfigurationError):
        service.submit_render_test("<p/>", "u", provider=RenderProvider.EMAIL_ON_ACID)


def test_unknown_render_test(settings, store):
    with pytest.raises(NotFoundError):
        RenderTestService(settings, store).render_test_status("test-0")
