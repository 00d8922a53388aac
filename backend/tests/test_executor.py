"""Pipeline executor tests: ordering, chaining, failure containment, progress."""

from pathlib import Path

import pytest

from vidforge.models.schemas import ProcessingOptions
from vidforge.services.executor import PipelineExecutor
from vidforge.services.stages.base import StageError, StageKind, StageRegistry, build_stage_plan

from conftest import SOURCE_BYTES, FakeStage, FakeStorage, drain


def _plan(**flags):
    return build_stage_plan(ProcessingOptions.model_validate(flags))


async def test_empty_plan_passes_source_through(registry, source_ref, workspace, cleanup, stage_calls):
    result = await PipelineExecutor(registry).execute(source_ref, [], workspace, cleanup)

    assert result.final_ref == source_ref
    assert result.executed == []
    assert stage_calls == []
    assert len(cleanup) == 0


async def test_stages_chain_outputs_in_declared_order(registry, source_ref, workspace, cleanup, stage_calls):
    plan = _plan(generateCaptions=True, autoCrop=True, privacyBlur=True)

    result = await PipelineExecutor(registry).execute(source_ref, plan, workspace, cleanup)

    assert [call[0] for call in stage_calls] == ["autoCrop", "privacyBlur", "generateCaptions"]
    assert stage_calls[0][1] == source_ref.locator
    for previous, current in zip(stage_calls, stage_calls[1:]):
        assert current[1] == previous[2]

    assert result.executed == ["autoCrop", "privacyBlur", "generateCaptions"]
    assert result.final_ref.locator == stage_calls[-1][2]
    assert Path(result.final_ref.locator).read_bytes() == (
        SOURCE_BYTES + b"|autoCrop|privacyBlur|generateCaptions"
    )
    assert [ref.locator for ref in cleanup.pending()] == [call[2] for call in stage_calls]


async def test_failing_stage_stops_chain(source_ref, workspace, cleanup):
    calls = []
    registry = StageRegistry()
    registry.register(FakeStage(StageKind.AUTO_CROP, calls))
    registry.register(FakeStage(StageKind.PRIVACY_BLUR, calls, fail_with=RuntimeError("model crashed")))
    registry.register(FakeStage(StageKind.CAPTION_BURN, calls))
    plan = _plan(autoCrop=True, privacyBlur=True, generateCaptions=True)

    with pytest.raises(StageError) as exc_info:
        await PipelineExecutor(registry).execute(source_ref, plan, workspace, cleanup)

    assert exc_info.value.stage_name == "privacyBlur"
    assert isinstance(exc_info.value.cause, RuntimeError)
    assert [call[0] for call in calls] == ["autoCrop", "privacyBlur"]
    # Completed output and the partial output stay tracked for cleanup
    assert [ref.locator for ref in cleanup.pending()] == [calls[0][2], calls[1][2]]


async def test_stage_error_from_adapter_propagates_unchanged(source_ref, workspace, cleanup):
    original = StageError("autoCrop", "Crop failed")
    registry = StageRegistry()
    registry.register(FakeStage(StageKind.AUTO_CROP, [], fail_with=original))

    with pytest.raises(StageError) as exc_info:
        await PipelineExecutor(registry).execute(source_ref, _plan(autoCrop=True), workspace, cleanup)

    assert exc_info.value is original


async def test_progress_events_follow_stage_completion_order(
    registry, broadcaster, storage, source_ref, workspace, cleanup
):
    session_id = broadcaster.create_session("pro-user")
    viewer = broadcaster.new_subscriber()
    broadcaster.join(session_id, viewer)
    executor = PipelineExecutor(registry, broadcaster, storage, preview_folder="previews")
    plan = _plan(autoCrop=True, removeBackground=True, generateCaptions=True)

    await executor.execute(source_ref, plan, workspace, cleanup, session_id=session_id)

    progress = [m for m in drain(viewer.queue) if m["event"] == "progress"]
    assert [m["data"]["feature"] for m in progress] == [
        "autoCrop", "removeBackground", "generateCaptions",
    ]
    assert [m["data"]["previewUrl"] for m in progress] == [
        u["uri"] for u in storage.in_folder("previews")
    ]


async def test_failed_preview_upload_still_publishes(registry, broadcaster, source_ref, workspace, cleanup):
    session_id = broadcaster.create_session("pro-user")
    viewer = broadcaster.new_subscriber()
    broadcaster.join(session_id, viewer)
    storage = FakeStorage(fail_folders={"previews"})
    executor = PipelineExecutor(registry, broadcaster, storage)

    result = await executor.execute(
        source_ref, _plan(autoCrop=True), workspace, cleanup, session_id=session_id
    )

    progress = [m for m in drain(viewer.queue) if m["event"] == "progress"]
    assert progress[0]["data"] == {
        "feature": "autoCrop",
        "previewUrl": None,
        "timestamp": progress[0]["data"]["timestamp"],
    }
    assert result.executed == ["autoCrop"]


async def test_no_progress_without_session(registry, broadcaster, storage, source_ref, workspace, cleanup):
    executor = PipelineExecutor(registry, broadcaster, storage)

    await executor.execute(source_ref, _plan(autoCrop=True), workspace, cleanup)

    assert storage.uploads == []
