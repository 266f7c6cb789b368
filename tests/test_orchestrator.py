"""Tests for the angle loop and session state transitions."""

import pytest

from conftest import FakeRenderer, FakeStorage, RecordingNotifier
from photoset.core.errors import AllAnglesFailed, RenderFailure
from photoset.models.domain import (
    AngleStatus,
    AngleTask,
    CameraAngle,
    IntentSignals,
    ReferenceImage,
    SceneBlueprint,
    order_angles,
)
from photoset.orchestrator.orchestrator import GenerationOrchestrator
from photoset.orchestrator.state import SessionState, apply_outcome
from photoset.prompts.angle import AnglePromptContext


@pytest.fixture
def context() -> AnglePromptContext:
    return AnglePromptContext(
        identity_anchor="Product type: ceramic coffee mug",
        blueprint=SceneBlueprint(scene="studio scene", lighting="soft", composition="stable"),
        signals=IntentSignals(),
    )


def _ref(tag: str) -> ReferenceImage:
    return ReferenceImage(data=tag.encode(), url=f"/uploads/{tag}.png")


class TestSessionState:
    def test_canonical_set_once(self):
        """Only the first success becomes the canonical anchor; previous tracks the latest."""
        state = SessionState(original_image=_ref("original"))
        first = AngleTask(CameraAngle.MEDIUM).start().complete("/uploads/a.png")
        second = AngleTask(CameraAngle.WIDE).start().complete("/uploads/b.png")

        state = apply_outcome(state, first, _ref("a"))
        state = apply_outcome(state, second, _ref("b"))

        assert state.canonical_anchor_image.url == "/uploads/a.png"
        assert state.previous_angle_image.url == "/uploads/b.png"
        assert [r.url for r in state.references()] == [
            "/uploads/original.png", "/uploads/a.png", "/uploads/b.png",
        ]

    def test_failure_leaves_references(self):
        """Failed angles never touch canonical or previous images."""
        state = apply_outcome(
            SessionState(original_image=_ref("original")),
            AngleTask(CameraAngle.MEDIUM).start().fail("boom", retry_count=3),
        )
        assert state.canonical_anchor_image is None
        assert state.previous_angle_image is None
        assert state.references() == [state.original_image]
        assert len(state.failed) == 1

    def test_unsettled_task_rejected(self):
        with pytest.raises(ValueError):
            apply_outcome(SessionState(original_image=_ref("o")), AngleTask(CameraAngle.WIDE).start())

    def test_settled_task_is_terminal(self):
        done = AngleTask(CameraAngle.WIDE).start().complete("/uploads/x.png")
        with pytest.raises(ValueError):
            done.fail("late failure")


class TestAngleOrder:
    def test_preferred_order(self):
        angles = [CameraAngle.TOPDOWN, CameraAngle.WIDE, CameraAngle.DETAIL, CameraAngle.MEDIUM]
        assert order_angles(angles) == [
            CameraAngle.MEDIUM, CameraAngle.WIDE, CameraAngle.DETAIL, CameraAngle.TOPDOWN,
        ]


class TestGenerationOrchestrator:
    async def test_medium_generated_before_wide(self, context, original_image):
        """[wide, medium] runs medium first; medium becomes the canonical anchor."""
        renderer = FakeRenderer()
        storage = FakeStorage()
        orchestrator = GenerationOrchestrator(renderer, storage, max_attempts=3)

        state = await orchestrator.run(context, original_image, [CameraAngle.WIDE, CameraAngle.MEDIUM])

        assert [t.angle for t in state.tasks] == [CameraAngle.MEDIUM, CameraAngle.WIDE]
        assert all(t.status == AngleStatus.COMPLETED for t in state.tasks)
        assert state.canonical_anchor_image.url == state.tasks[0].image_url
        assert state.previous_angle_image.url == state.tasks[1].image_url

        medium_prompt, medium_refs = renderer.calls[0]
        wide_prompt, wide_refs = renderer.calls[1]
        assert "canonical anchor image for this batch" in medium_prompt
        assert len(medium_refs) == 1
        assert "non-anchor angle" in wide_prompt
        # original + canonical + previous (the same medium image twice)
        assert len(wide_refs) == 3
        assert wide_refs[0] is original_image
        assert wide_refs[1].url == state.tasks[0].image_url

    async def test_retry_until_success(self, context, original_image):
        """Two failures then success: completed, retry_count 2, no error message."""
        renderer = FakeRenderer(outcomes=[RenderFailure("no image"), RenderFailure("timeout")])
        orchestrator = GenerationOrchestrator(renderer, FakeStorage(), max_attempts=3)

        state = await orchestrator.run(context, original_image, [CameraAngle.CLOSEUP])

        task = state.tasks[0]
        assert task.status == AngleStatus.COMPLETED
        assert task.retry_count == 2
        assert task.error_message == ""
        assert len(renderer.calls) == 3
        assert "RETRY MODE" not in renderer.calls[0][0]
        assert "### RETRY MODE (attempt 3)" in renderer.calls[2][0]
        # Retries reuse the same references.
        assert all(len(refs) == 1 for _, refs in renderer.calls)

    async def test_failed_angle_does_not_block_next(self, context, original_image):
        """An exhausted angle is recorded and the loop continues."""
        renderer = FakeRenderer(outcomes=[RenderFailure("bad"), RenderFailure("bad"), RenderFailure("worse")])
        orchestrator = GenerationOrchestrator(renderer, FakeStorage(), max_attempts=3)

        state = await orchestrator.run(context, original_image, [CameraAngle.MEDIUM, CameraAngle.WIDE])

        medium, wide = state.tasks
        assert medium.status == AngleStatus.FAILED
        assert medium.error_message == "worse"
        assert medium.retry_count == 3
        assert medium.image_url == ""
        assert wide.status == AngleStatus.COMPLETED
        # Wide is the first success, so it becomes canonical.
        assert state.canonical_anchor_image.url == wide.image_url
        # Wide is not first in order, so it is still a follower.
        assert "non-anchor angle" in renderer.calls[-1][0]

    async def test_all_angles_failed(self, context, original_image):
        """Every angle failing raises with the first angle's error."""
        renderer = FakeRenderer(fail_when=lambda prompt: True)
        orchestrator = GenerationOrchestrator(renderer, FakeStorage(), max_attempts=2)

        with pytest.raises(AllAnglesFailed) as exc_info:
            await orchestrator.run(context, original_image, [CameraAngle.WIDE, CameraAngle.DETAIL])

        assert str(exc_info.value) == "render rejected"
        assert [t.status for t in exc_info.value.tasks] == [AngleStatus.FAILED, AngleStatus.FAILED]
        assert len(renderer.calls) == 4

    async def test_compositor_applied_before_storage(self, context, original_image):
        class StampCompositor:
            async def composite(self, image):
                return type(image)(data=b"stamped", mime_type=image.mime_type)

        storage = FakeStorage()
        orchestrator = GenerationOrchestrator(FakeRenderer(), storage, compositor=StampCompositor())
        state = await orchestrator.run(context, original_image, [CameraAngle.WIDE])

        assert list(storage.saved.values()) == [b"stamped"]
        assert state.previous_angle_image.data == b"stamped"

    async def test_storage_failure_counts_as_attempt(self, context, original_image):
        class FlakyStorage(FakeStorage):
            def __init__(self):
                super().__init__()
                self.failures = 1

            async def save_image(self, data, mime_type, folder="product-images"):
                if self.failures:
                    self.failures -= 1
                    raise OSError("disk full")
                return await super().save_image(data, mime_type, folder)

        orchestrator = GenerationOrchestrator(FakeRenderer(), FlakyStorage(), max_attempts=3)
        state = await orchestrator.run(context, original_image, [CameraAngle.WIDE])
        assert state.tasks[0].retry_count == 1

    async def test_progress_events(self, context, original_image):
        notifier = RecordingNotifier()
        renderer = FakeRenderer(outcomes=[RenderFailure("x")])
        orchestrator = GenerationOrchestrator(renderer, FakeStorage(), max_attempts=1, notifier=notifier)

        await orchestrator.run(context, original_image, [CameraAngle.MEDIUM, CameraAngle.WIDE])

        assert notifier.types == [
            "angle_started", "angle_failed",
            "angle_started", "angle_completed",
            "session_completed",
        ]
        assert notifier.events[-1][1]["successCount"] == 1
