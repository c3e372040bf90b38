"""Pipeline definition types shared by every entity type."""

from __future__ import annotations

from dataclasses import dataclass

from app.core.exceptions import InvalidPipelineDefinitionError
from app.services.steps.base_step import StepAdapter


@dataclass(frozen=True, slots=True)
class StepDefinition:
    """One step of a pipeline.

    ``fatal`` steps stop the run on failure; tolerable steps are recorded as
    ``skipped_with_error`` and the run continues. ``requires`` names snapshot
    fields the step needs; when one is missing the step is skipped if
    ``skip_if_missing`` is set, otherwise it fails with a permanent error.
    """

    name: str
    adapter: StepAdapter
    fatal: bool = True
    requires: tuple[str, ...] = ()
    skip_if_missing: bool = False


@dataclass(frozen=True, slots=True)
class PipelineDefinition:
    """Ordered, uniquely-named steps for one entity type."""

    entity_type: str
    steps: tuple[StepDefinition, ...]

    def __post_init__(self) -> None:
        if not self.steps:
            raise InvalidPipelineDefinitionError(
                f"Pipeline for {self.entity_type} has no steps"
            )
        names = [step.name for step in self.steps]
        if any(not name for name in names):
            raise InvalidPipelineDefinitionError(
                f"Pipeline for {self.entity_type} has an unnamed step"
            )
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise InvalidPipelineDefinitionError(
                f"Pipeline for {self.entity_type} repeats steps: {', '.join(duplicates)}",
                details={"duplicates": duplicates},
            )

    @property
    def step_names(self) -> tuple[str, ...]:
        return tuple(step.name for step in self.steps)

    def get_step(self, name: str) -> StepDefinition | None:
        for step in self.steps:
            if step.name == name:
                return step
        return None

    def is_fatal(self, name: str) -> bool:
        step = self.get_step(name)
        return step is not None and step.fatal
