"""End-to-end processing service tests with fake adapters."""

from datetime import datetime
from pathlib import Path

import pytest

from vidforge.errors import AuthorizationError, InvalidRequestError, ProcessingFailedError
from vidforge.models.schemas import ProcessRequest
from vidforge.services.container import ServiceContainer
from vidforge.services.stages.base import StageKind, StageRegistry

from conftest import SOURCE_BYTES, FakeMedia, FakeQueue, FakeStage, FakeStorage, drain


def _request(source_ref: str | None = "clip.mp4", **options) -> ProcessRequest:
    return ProcessRequest.model_validate({"sourceRef": source_ref, "options": options})


def _work_files(settings) -> list[Path]:
    if not settings.work_dir.exists():
        return []
    return sorted(p for p in settings.work_dir.rglob("*") if p.is_file())


async def test_crop_captions_gif_scenario(services, storage, stage_calls, source_file, settings):
    request = _request(autoCrop=True, generateCaptions=True, createGif=True)

    result = await services.processing.process(request, "pro-user")

    assert result.video_url.startswith("https://cdn.test/outputs/")
    assert result.gif_url.startswith("https://cdn.test/outputs/")
    assert result.thumbnail_url is None
    assert result.features_used == ["autoCrop", "generateCaptions"]
    assert result.warnings == []
    assert result.session_id is None

    videos = [u for u in storage.in_folder("outputs") if u["name"].endswith(".mp4")]
    assert len(videos) == 1
    assert videos[0]["content"] == SOURCE_BYTES + b"|autoCrop|generateCaptions"

    # Uploaded local copies go too; only the source remains
    assert _work_files(settings) == []
    assert list(settings.work_dir.iterdir()) == []
    assert source_file.read_bytes() == SOURCE_BYTES


async def test_no_features_uploads_source_unchanged(services, storage, stage_calls, source_file):
    result = await services.processing.process(_request(), "pro-user")

    assert stage_calls == []
    assert result.features_used == []
    assert storage.uploads[0]["content"] == SOURCE_BYTES
    assert source_file.exists()


async def test_missing_source_ref_rejected_before_work(services, stage_calls, settings):
    with pytest.raises(InvalidRequestError):
        await services.processing.process(_request(None, autoCrop=True, realtime=True), "pro-user")

    assert stage_calls == []
    assert services.broadcaster.list_sessions() == []
    assert not settings.work_dir.exists()


@pytest.mark.parametrize("source_ref", ["missing.mp4", "../outside.mp4", "notes.txt"])
async def test_unusable_source_ref_rejected(services, settings, source_ref):
    (settings.uploads_dir.parent / "outside.mp4").write_bytes(b"x")
    (settings.uploads_dir / "notes.txt").write_text("hello")

    with pytest.raises(InvalidRequestError):
        await services.processing.process(_request(source_ref), "pro-user")


async def test_low_tier_rejected_without_side_effects(services, stage_calls, storage, source_file, settings):
    with pytest.raises(AuthorizationError) as exc_info:
        await services.processing.process(_request(autoCrop=True, realtime=True), "free-user")

    assert exc_info.value.status_code == 403
    assert stage_calls == []
    assert storage.uploads == []
    assert services.broadcaster.list_sessions() == []
    assert not settings.work_dir.exists()


async def test_missing_identity_is_unauthenticated(services, source_file):
    with pytest.raises(AuthorizationError) as exc_info:
        await services.processing.process(_request(autoCrop=True), None)

    assert exc_info.value.status_code == 401
    assert exc_info.value.category == "unauthenticated"


async def test_unregistered_feature_rejected(services, source_file):
    services.processing.registry = StageRegistry()

    with pytest.raises(InvalidRequestError, match="generateFromText"):
        await services.processing.process(
            _request(generateFromText={"text": "Welcome to the show"}), "pro-user"
        )


async def test_stage_failure_skips_fanout_and_cleans_up(settings, source_file, entitlements):
    calls = []
    registry = StageRegistry()
    registry.register(FakeStage(StageKind.AUTO_CROP, calls))
    registry.register(FakeStage(StageKind.PRIVACY_BLUR, calls, fail_with=RuntimeError("gpu lost")))
    storage = FakeStorage()
    services = ServiceContainer(
        settings,
        storage=storage,
        media=FakeMedia(),
        registry=registry,
        entitlements=entitlements,
        distribution_queue=FakeQueue(),
        stage_defaults={},
    )

    with pytest.raises(ProcessingFailedError) as exc_info:
        await services.processing.process(
            _request(autoCrop=True, privacyBlur=True, createGif=True), "pro-user"
        )

    assert exc_info.value.category == "processing_failed"
    assert exc_info.value.cause.stage_name == "privacyBlur"
    assert storage.uploads == []
    assert _work_files(settings) == []
    assert source_file.exists()


async def test_primary_upload_failure(settings, source_file, registry, entitlements):
    services = ServiceContainer(
        settings,
        storage=FakeStorage(fail_folders={"outputs"}),
        media=FakeMedia(),
        registry=registry,
        entitlements=entitlements,
        distribution_queue=FakeQueue(),
        stage_defaults={},
    )

    with pytest.raises(ProcessingFailedError, match="Primary upload failed"):
        await services.processing.process(_request(autoCrop=True), "pro-user")

    assert _work_files(settings) == []


async def test_realtime_run_streams_progress(services, source_file):
    processing = services.processing
    broadcaster = services.broadcaster
    accepted = await processing.accept(
        _request(autoCrop=True, generateCaptions=True, realtime=True), "pro-user"
    )
    session_id = processing.open_session(accepted)
    viewer = broadcaster.new_subscriber()
    broadcaster.join(session_id, viewer)

    result = await processing.run(accepted, session_id)

    messages = drain(viewer.queue)
    assert [m["event"] for m in messages] == [
        "joined", "session-start", "progress", "progress", "session-end",
    ]
    assert [m["data"]["feature"] for m in messages if m["event"] == "progress"] == [
        "autoCrop", "generateCaptions",
    ]
    assert messages[-1]["data"]["status"] == "completed"
    assert result.session_id == session_id


async def test_viewer_leaving_before_run_keeps_session(services, source_file):
    processing = services.processing
    broadcaster = services.broadcaster
    accepted = await processing.accept(_request(autoCrop=True, realtime=True), "pro-user")
    session_id = processing.open_session(accepted)
    viewer = broadcaster.new_subscriber()
    broadcaster.join(session_id, viewer)
    broadcaster.disconnect(viewer)

    result = await processing.run(accepted, session_id)

    assert result.session_id == session_id
    assert result.features_used == ["autoCrop"]
    assert not broadcaster.has_session(session_id)


async def test_realtime_session_closes_after_unwatched_run(services, source_file):
    result = await services.processing.process(_request(autoCrop=True, realtime=True), "pro-user")

    assert result.session_id is not None
    assert not services.broadcaster.has_session(result.session_id)


async def test_share_to_social_enqueues_record(services, queue, source_file):
    scheduled = datetime(2026, 11, 1, 9, 30)
    request = _request(
        autoCrop=True,
        shareToSocial=True,
        platforms=["tiktok", "instagram"],
        scheduledAt=scheduled.isoformat(),
    )

    result = await services.processing.process(request, "pro-user")

    assert result.warnings == []
    assert len(queue.records) == 1
    record = queue.records[0]
    assert record.video_url == result.video_url
    assert record.platforms == ["instagram", "tiktok"]
    assert record.scheduled_at == scheduled
    assert record.owner_id == "pro-user"


async def test_distribution_failure_is_a_warning(services, source_file):
    services.processing.distribution.queue = FakeQueue(fail=True)

    result = await services.processing.process(
        _request(shareToSocial=True, platforms=["youtube"]), "pro-user"
    )

    assert result.video_url
    assert result.warnings == ["distribution enqueue failed"]


async def test_share_without_platforms_rejected(services, source_file):
    with pytest.raises(InvalidRequestError):
        await services.processing.process(_request(shareToSocial=True), "pro-user")
