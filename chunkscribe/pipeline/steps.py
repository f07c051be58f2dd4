"""
chunkscribe.pipeline.steps - Pure step-tracker transforms.

Every function here takes a ProcessingSteps tree and returns a new one;
nothing is mutated. Steps move pending → inProgress → completed | error |
skipped and never leave a terminal state within one run.
"""

from __future__ import annotations

from chunkscribe.logging import logger
from chunkscribe.models import FIXED_STEP_IDS, ProcessingStep, ProcessingSteps, StepStatus

CHUNK_STEP_PREFIX = "chunk_"


def create_initial_steps() -> ProcessingSteps:
    """All fixed steps pending at zero progress, no chunk steps."""
    return ProcessingSteps(
        **{
            step_id: ProcessingStep(id=step_id, title_key=f"steps.{step_id}")
            for step_id in FIXED_STEP_IDS
        }
    )


def get_chunk_step_id(index: int) -> str:
    return f"{CHUNK_STEP_PREFIX}{index}"


def parse_chunk_index(step_id: str) -> int | None:
    """Chunk index encoded in a ``chunk_<index>`` id, or None."""
    if not step_id.startswith(CHUNK_STEP_PREFIX):
        return None
    try:
        return int(step_id[len(CHUNK_STEP_PREFIX) :])
    except ValueError:
        return None


def create_chunk_steps(chunk_count: int) -> tuple[ProcessingStep, ...]:
    """One pending step per chunk. A single chunk is titled as plain transcription."""
    return tuple(
        ProcessingStep(
            id=get_chunk_step_id(i),
            title_key="steps.transcription" if chunk_count == 1 else "steps.chunkProcessing",
            title_params={"current": i + 1, "total": chunk_count} if chunk_count > 1 else None,
            kind="chunk",
        )
        for i in range(chunk_count)
    )


def with_chunk_steps(steps: ProcessingSteps, chunk_count: int) -> ProcessingSteps:
    return steps.model_copy(update={"chunks": create_chunk_steps(chunk_count)}, deep=True)


def _replace_step(steps: ProcessingSteps, step_id: str, **changes) -> ProcessingSteps:
    chunk_index = parse_chunk_index(step_id)
    if chunk_index is not None:
        if chunk_index < 0 or chunk_index >= len(steps.chunks):
            return steps
        if "status" in changes and steps.chunks[chunk_index].is_terminal:
            logger.debug("Ignoring %s -> %s on terminal step", step_id, changes["status"])
            return steps
        # The new tree must not share title_params dicts with the old one
        tree = steps.model_copy(deep=True)
        chunks = list(tree.chunks)
        chunks[chunk_index] = chunks[chunk_index].model_copy(update=changes)
        return tree.model_copy(update={"chunks": tuple(chunks)})

    if step_id not in FIXED_STEP_IDS:
        return steps
    if "status" in changes and getattr(steps, step_id).is_terminal:
        logger.debug("Ignoring %s -> %s on terminal step", step_id, changes["status"])
        return steps
    tree = steps.model_copy(deep=True)
    return tree.model_copy(update={step_id: getattr(tree, step_id).model_copy(update=changes)})


def apply_status(
    steps: ProcessingSteps,
    step_id: str,
    status: StepStatus,
    error: str | None = None,
    skip_reason: str | None = None,
) -> ProcessingSteps:
    """Set a step's status (and error / skip reason). Unknown ids are a no-op."""
    return _replace_step(steps, step_id, status=status, error=error, skip_reason=skip_reason)


def apply_progress(steps: ProcessingSteps, step_id: str, progress: float) -> ProcessingSteps:
    """Set a step's progress, clamped to 0-100. Unknown ids are a no-op."""
    return _replace_step(steps, step_id, progress=min(100.0, max(0.0, progress)))
