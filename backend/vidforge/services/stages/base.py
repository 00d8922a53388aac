"""
Stage abstraction for the transform chain.

Each stage adapter is a `transform(input, output, params) -> output`
capability that delegates its real work to an external engine. The set
of variants is closed and their order is fixed:

    autoCrop -> generateFromText -> privacyBlur -> removeBackground -> generateCaptions

Which stages run for a request is decided by build_stage_plan() from the
request options, walking STAGE_ORDER, so the executed order never
depends on the order in which flags were checked.

Example:
    registry = StageRegistry()
    registry.register(AutoCropStage(media))

    plan = build_stage_plan(options)
    for spec in plan:
        stage = registry.get(spec.kind)
        current = await stage.transform(current, workspace.allocate(spec.name), spec.params)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from vidforge.models.schemas import ArtifactRef, ProcessingOptions


class StageKind(str, Enum):
    """Transform variant. Values are the option names reported in featuresUsed."""
    AUTO_CROP = "autoCrop"
    TEXT_TO_VIDEO = "generateFromText"
    PRIVACY_BLUR = "privacyBlur"
    BACKGROUND_REMOVAL = "removeBackground"
    CAPTION_BURN = "generateCaptions"


# Fixed evaluation order: later stages operate on earlier outputs
STAGE_ORDER = [
    StageKind.AUTO_CROP,
    StageKind.TEXT_TO_VIDEO,
    StageKind.PRIVACY_BLUR,
    StageKind.BACKGROUND_REMOVAL,
    StageKind.CAPTION_BURN,
]


class StageError(Exception):
    """Error during stage execution.

    Attributes:
        stage_name: Name of the stage that failed
        message: Error description
        cause: Original exception (if any)
    """

    def __init__(
        self,
        stage_name: str,
        message: str,
        cause: Exception | None = None,
    ):
        self.stage_name = stage_name
        self.message = message
        self.cause = cause
        super().__init__(f"[{stage_name}] {message}")


@dataclass(frozen=True)
class StageSpec:
    """One configured step: variant plus its parameters."""

    kind: StageKind
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        """Stage name as reported to callers and viewers."""
        return self.kind.value


def _flag(attr: str) -> Callable[[ProcessingOptions], dict | None]:
    """Selector for boolean options: empty params when set, None otherwise."""
    def select(options: ProcessingOptions) -> dict | None:
        return {} if getattr(options, attr) else None
    return select


def _text_to_video(options: ProcessingOptions) -> dict | None:
    if options.generate_from_text is None:
        return None
    return options.generate_from_text.model_dump(exclude_none=True)


STAGE_SELECTORS: dict[StageKind, Callable[[ProcessingOptions], dict | None]] = {
    StageKind.AUTO_CROP: _flag("auto_crop"),
    StageKind.TEXT_TO_VIDEO: _text_to_video,
    StageKind.PRIVACY_BLUR: _flag("privacy_blur"),
    StageKind.BACKGROUND_REMOVAL: _flag("remove_background"),
    StageKind.CAPTION_BURN: _flag("generate_captions"),
}


def build_stage_plan(
    options: ProcessingOptions,
    defaults: dict[str, dict] | None = None,
) -> list[StageSpec]:
    """
    Resolve request options into an ordered stage sequence.

    Args:
        options: Request options
        defaults: Per-stage default parameters keyed by option name,
            overridden by request-supplied parameters

    Returns:
        Stages to run, in STAGE_ORDER
    """
    defaults = defaults or {}
    plan = []
    for kind in STAGE_ORDER:
        params = STAGE_SELECTORS[kind](options)
        if params is None:
            continue
        plan.append(StageSpec(kind, {**defaults.get(kind.value, {}), **params}))
    return plan


class BaseStage(ABC):
    """Abstract base class for stage adapters.

    Subclasses must implement:
    - kind: The variant this adapter handles
    - transform(): Async method that produces output_ref from input_ref

    Adapters own their retry policy (HTTP clients retry transient
    errors); the executor never retries.

    Example:
        class AutoCropStage(BaseStage):
            kind = StageKind.AUTO_CROP

            async def transform(self, input_ref, output_ref, params):
                await self.media.crop(...)
                return output_ref
    """

    kind: StageKind

    @property
    def name(self) -> str:
        """Stage name (option name of the variant)."""
        return self.kind.value

    @abstractmethod
    async def transform(
        self,
        input_ref: ArtifactRef,
        output_ref: ArtifactRef,
        params: dict[str, Any],
    ) -> ArtifactRef:
        """Run the transform.

        Args:
            input_ref: Current chain output (or the source)
            output_ref: Freshly allocated ephemeral locator to write to
            params: Stage parameters

        Returns:
            Reference to the produced artifact

        Raises:
            StageError: If the transform fails
        """
        pass

    def input_path(self, input_ref: ArtifactRef) -> Path:
        """Resolve the input locator to a readable local file.

        Raises:
            StageError: If the input file does not exist
        """
        path = Path(input_ref.locator)
        if not path.exists():
            raise StageError(self.name, f"Input not found: {path.name}")
        return path

    def scratch_path(self, output_ref: ArtifactRef, suffix: str) -> Path:
        """Stage-private temporary file next to the output."""
        output = Path(output_ref.locator)
        return output.with_name(f"{output.stem}.{suffix}")


class StageRegistry:
    """Registry of stage adapters keyed by variant.

    Example:
        registry = StageRegistry()
        registry.register(AutoCropStage(media))
        stage = registry.get(StageKind.AUTO_CROP)
    """

    def __init__(self) -> None:
        """Initialize empty registry."""
        self._stages: dict[StageKind, BaseStage] = {}

    def register(self, stage: BaseStage) -> None:
        """Register a stage adapter.

        Raises:
            ValueError: If an adapter for the same variant is registered
        """
        if stage.kind in self._stages:
            raise ValueError(f"Stage '{stage.name}' already registered")
        self._stages[stage.kind] = stage

    def get(self, kind: StageKind) -> BaseStage:
        """Get adapter by variant.

        Raises:
            KeyError: If no adapter is registered for the variant
        """
        if kind not in self._stages:
            raise KeyError(
                f"Stage '{kind.value}' not registered. "
                f"Available: {[k.value for k in self._stages]}"
            )
        return self._stages[kind]

    def missing(self, plan: list[StageSpec]) -> list[str]:
        """Names of planned stages with no registered adapter."""
        return [spec.name for spec in plan if spec.kind not in self._stages]

    def __contains__(self, kind: object) -> bool:
        return kind in self._stages

    def __len__(self) -> int:
        return len(self._stages)
