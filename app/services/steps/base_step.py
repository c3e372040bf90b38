"""Base class for extraction step adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class StepContext:
    """Input handed to a step adapter.

    ``snapshot`` is the entity as accumulated so far (identity columns merged
    with ``data``); ``inputs`` holds only the fields the step declared in
    ``requires``.
    """

    entity_id: str
    entity_type: str
    step_name: str
    snapshot: dict[str, Any]
    inputs: dict[str, Any] = field(default_factory=dict)
    attempt: int = 1

    def get(self, key: str, default: Any = None) -> Any:
        """Read a field from declared inputs first, then the snapshot."""
        value = self.inputs.get(key)
        if value is None:
            value = self.snapshot.get(key)
        return default if value is None else value


@dataclass(slots=True)
class StepResult:
    """Output of a step adapter.

    ``fields`` is the patch merged into the entity record. ``raw`` is the
    provider payload, kept for auditing and digested into progress.
    """

    fields: dict[str, Any] = field(default_factory=dict)
    raw: Any = None


class StepAdapter(ABC):
    """Wraps one external call (or pure computation) for the orchestrator.

    Adapters never write storage. They raise ``TransientProviderError`` for
    failures worth retrying and ``PermanentInputError`` when the input cannot
    produce a result; anything else is treated as unexpected. The step name
    and its fatal/tolerable policy live on the ``StepDefinition``.
    """

    @abstractmethod
    async def execute(self, context: StepContext) -> StepResult:
        """Run the step against the accumulated entity snapshot."""
        pass
