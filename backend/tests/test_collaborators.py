"""Storage, authorization and distribution collaborators."""

import json
from datetime import datetime

import httpx
import pytest

from vidforge.errors import AuthorizationError
from vidforge.models.schemas import ArtifactRef, DistributionRecord
from vidforge.services.authorization import Authorizer, HttpEntitlementProvider, StaticEntitlementProvider
from vidforge.services.distribution import DistributionEnqueuer, HttpDistributionQueue
from vidforge.services.storage import HttpObjectStorage, LocalArchiveStorage, StorageError, create_storage

from conftest import FakeQueue


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestLocalArchiveStorage:
    async def test_put_copies_into_folder(self, tmp_path):
        archive = tmp_path / "archive"
        storage = LocalArchiveStorage(archive, "http://files.test/files/")
        local = tmp_path / "02_generateCaptions.mp4"
        local.write_bytes(b"final")

        uri = await storage.put(local, "outputs")

        assert uri.startswith("http://files.test/files/outputs/")
        assert uri.endswith(".mp4")
        stored = archive / "outputs" / uri.rsplit("/", 1)[1]
        assert stored.read_bytes() == b"final"
        assert local.exists()

    async def test_delete_removes_stored_file(self, tmp_path):
        storage = LocalArchiveStorage(tmp_path, "http://files.test/files")
        local = tmp_path / "in.gif"
        local.write_bytes(b"GIF89a")
        uri = await storage.put(local, "outputs")

        await storage.delete(uri)

        assert list((tmp_path / "outputs").iterdir()) == []

    async def test_delete_refuses_foreign_and_escaping_uris(self, tmp_path):
        storage = LocalArchiveStorage(tmp_path / "archive", "http://files.test/files")

        with pytest.raises(StorageError):
            await storage.delete("https://elsewhere.test/outputs/x.mp4")
        with pytest.raises(StorageError):
            await storage.delete("http://files.test/files/../../etc/passwd")

    async def test_put_missing_file(self, tmp_path):
        with pytest.raises(StorageError):
            await LocalArchiveStorage(tmp_path, "http://x").put(tmp_path / "gone.mp4", "outputs")


async def test_http_storage_delete_passes_uri():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path, request.url.params["uri"]))
        return httpx.Response(204)

    storage = HttpObjectStorage("http://objects.test/", api_key="k")
    storage.http_client = _mock_client(handler)

    await storage.delete("https://cdn.test/outputs/1.mp4")

    assert seen == [("DELETE", "/v1/objects", "https://cdn.test/outputs/1.mp4")]


def test_create_storage_rejects_unknown_backend(settings):
    settings.storage_backend = "ftp"

    with pytest.raises(ValueError):
        create_storage(settings)


class TestAuthorizer:
    async def test_elevated_tier_allowed(self, entitlements):
        assert await Authorizer(entitlements, ["pro", "business"]).authorize("biz-user") == "business"

    async def test_unknown_user_denied(self, entitlements):
        with pytest.raises(AuthorizationError) as exc_info:
            await Authorizer(entitlements, ["pro"]).authorize("stranger")

        assert exc_info.value.status_code == 403

    async def test_default_tier_applies(self):
        provider = StaticEntitlementProvider({}, default_tier="pro")

        assert await Authorizer(provider, ["pro"]).authorize("anyone") == "pro"

    async def test_lookup_failure_denies(self):
        class BrokenProvider:
            async def get_tier(self, user_id):
                raise httpx.ConnectError("entitlements down")

        with pytest.raises(AuthorizationError, match="lookup failed"):
            await Authorizer(BrokenProvider(), ["pro"]).authorize("pro-user", "cid123")

    async def test_static_provider_reads_yaml(self, settings):
        settings.config_dir.mkdir()
        (settings.config_dir / "entitlements.yaml").write_text(
            "default_tier: free\nusers:\n  alice: enterprise\n"
        )

        provider = StaticEntitlementProvider.from_settings(settings)

        assert await provider.get_tier("alice") == "enterprise"
        assert await provider.get_tier("bob") == "free"


async def test_http_entitlements():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/users/alice/entitlement":
            return httpx.Response(200, json={"tier": "pro"})
        return httpx.Response(404)

    provider = HttpEntitlementProvider("http://entitlements.test")
    provider.http_client = _mock_client(handler)

    assert await provider.get_tier("alice") == "pro"
    assert await provider.get_tier("bob") is None


class TestDistribution:
    async def test_http_queue_posts_camel_case_record(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.read()))
            return httpx.Response(202)

        queue = HttpDistributionQueue("http://scheduler.test")
        queue.http_client = _mock_client(handler)
        record = DistributionRecord(
            video_url="https://cdn.test/outputs/1.mp4",
            owner_id="pro-user",
            platforms=["tiktok"],
            scheduled_at=datetime(2026, 11, 1, 9, 30),
        )

        await queue.enqueue(record)

        assert bodies[0]["videoUrl"] == "https://cdn.test/outputs/1.mp4"
        assert bodies[0]["ownerId"] == "pro-user"
        assert bodies[0]["scheduledAt"] == "2026-11-01T09:30:00"

    async def test_enqueuer_defaults_schedule_to_now(self):
        queue = FakeQueue()
        video = ArtifactRef(locator="https://cdn.test/outputs/1.mp4")

        warning = await DistributionEnqueuer(queue).enqueue(video, "pro-user", {"youtube"})

        assert warning is None
        assert queue.records[0].scheduled_at <= datetime.now()

    async def test_enqueuer_reports_failure_as_warning(self):
        video = ArtifactRef(locator="https://cdn.test/outputs/1.mp4")

        warning = await DistributionEnqueuer(FakeQueue(fail=True)).enqueue(video, "pro-user", ["x"])

        assert warning == "distribution enqueue failed"
