"""
Shared fixtures: temp directories, fake stage adapters and collaborators.

No network and no ffmpeg: stages write marker bytes, storage records
uploads in memory.
"""

from pathlib import Path

import pytest

from vidforge.config import Settings
from vidforge.errors import new_correlation_id
from vidforge.models.schemas import ArtifactRef, DistributionRecord
from vidforge.services.artifacts import ArtifactWorkspace, CleanupSet
from vidforge.services.authorization import StaticEntitlementProvider
from vidforge.services.broadcaster import ProgressBroadcaster
from vidforge.services.container import ServiceContainer
from vidforge.services.media_engine import MediaEngineError
from vidforge.services.stages.base import STAGE_ORDER, BaseStage, StageKind, StageRegistry
from vidforge.services.storage import StorageError

SOURCE_BYTES = b"source"


# ═══════════════════════════════════════════════════════════════════════════
# Fakes
# ═══════════════════════════════════════════════════════════════════════════


class FakeStage(BaseStage):
    """Appends "|<name>" to the input bytes; records every call."""

    def __init__(self, kind: StageKind, calls: list, fail_with: Exception | None = None):
        self.kind = kind
        self.calls = calls
        self.fail_with = fail_with

    async def transform(self, input_ref, output_ref, params):
        self.calls.append((self.name, input_ref.locator, output_ref.locator, dict(params)))
        data = Path(input_ref.locator).read_bytes()
        if self.fail_with is not None:
            Path(output_ref.locator).write_bytes(b"partial")
            raise self.fail_with
        Path(output_ref.locator).write_bytes(data + f"|{self.name}".encode())
        return output_ref


class FakeStorage:
    """In-memory durable storage."""

    def __init__(self, fail_folders: set[str] | None = None):
        self.fail_folders = fail_folders or set()
        self.uploads: list[dict] = []
        self.deleted: list[str] = []

    async def put(self, local_path: Path, folder: str) -> str:
        if folder in self.fail_folders:
            raise StorageError(f"{folder} unavailable")
        local_path = Path(local_path)
        uri = f"https://cdn.test/{folder}/{len(self.uploads) + 1}{local_path.suffix}"
        self.uploads.append({
            "folder": folder,
            "name": local_path.name,
            "content": local_path.read_bytes(),
            "uri": uri,
        })
        return uri

    async def delete(self, uri: str) -> None:
        self.deleted.append(uri)

    def in_folder(self, folder: str) -> list[dict]:
        return [u for u in self.uploads if u["folder"] == folder]


class FakeMedia:
    """Derivative generation used by fan-out."""

    def __init__(self, fail_gif: bool = False, fail_thumbnail: bool = False):
        self.fail_gif = fail_gif
        self.fail_thumbnail = fail_thumbnail
        self.calls: list[str] = []

    async def make_gif(self, input_path: Path, output_path: Path, **kwargs) -> Path:
        self.calls.append("gif")
        if self.fail_gif:
            raise MediaEngineError("make_gif", "ffmpeg error (code 1)")
        output_path.write_bytes(b"GIF89a")
        return output_path

    async def extract_thumbnail(self, input_path: Path, output_path: Path, at_seconds: float = 1.0) -> Path:
        self.calls.append("thumbnail")
        if self.fail_thumbnail:
            raise MediaEngineError("extract_thumbnail", "ffmpeg error (code 1)")
        output_path.write_bytes(b"\xff\xd8jpeg")
        return output_path


class FakeQueue:
    """Distribution queue that records (or refuses) records."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.records: list[DistributionRecord] = []

    async def enqueue(self, record: DistributionRecord) -> None:
        if self.fail:
            raise ConnectionError("scheduler down")
        self.records.append(record)


def drain(queue) -> list[dict]:
    """Take every pending message from a subscriber queue."""
    messages = []
    while not queue.empty():
        messages.append(queue.get_nowait())
    return messages


# ═══════════════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    return Settings(
        _env_file=None,
        uploads_dir=uploads,
        work_dir=tmp_path / "work",
        archive_dir=tmp_path / "archive",
        config_dir=tmp_path / "config",
        storage_backend="local",
        entitlements_backend="static",
    )


@pytest.fixture
def source_file(settings: Settings) -> Path:
    path = settings.uploads_dir / "clip.mp4"
    path.write_bytes(SOURCE_BYTES)
    return path


@pytest.fixture
def source_ref(source_file: Path) -> ArtifactRef:
    return ArtifactRef(locator=str(source_file))


@pytest.fixture
def stage_calls() -> list:
    return []


@pytest.fixture
def registry(stage_calls: list) -> StageRegistry:
    registry = StageRegistry()
    for kind in STAGE_ORDER:
        registry.register(FakeStage(kind, stage_calls))
    return registry


@pytest.fixture
def workspace(settings: Settings) -> ArtifactWorkspace:
    return ArtifactWorkspace(settings.work_dir, new_correlation_id())


@pytest.fixture
def cleanup() -> CleanupSet:
    return CleanupSet()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def media() -> FakeMedia:
    return FakeMedia()


@pytest.fixture
def queue() -> FakeQueue:
    return FakeQueue()


@pytest.fixture
def broadcaster() -> ProgressBroadcaster:
    return ProgressBroadcaster(subscriber_queue_size=100)


@pytest.fixture
def entitlements() -> StaticEntitlementProvider:
    return StaticEntitlementProvider(
        {"pro-user": "pro", "biz-user": "business", "free-user": "free"}
    )


@pytest.fixture
def services(settings, storage, media, registry, entitlements, queue) -> ServiceContainer:
    return ServiceContainer(
        settings,
        storage=storage,
        media=media,
        registry=registry,
        entitlements=entitlements,
        distribution_queue=queue,
        stage_defaults={},
    )
