"""Base class for Pydantic AI agents."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Generic, TypeVar, cast

from pydantic import BaseModel
from pydantic_ai import Agent
from pydantic_ai.exceptions import ModelHTTPError, UnexpectedModelBehavior

from app.config import settings
from app.core.exceptions import ExternalAPIError, ProviderRejectedRequestError, RateLimitExceededError

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT", bound=BaseModel)
OutputT = TypeVar("OutputT", bound=BaseModel)


class BaseAgent(ABC, Generic[InputT, OutputT]):
    """Abstract base class for Pydantic AI agents.

    Each agent should:
    1. Define the system_prompt property
    2. Define the output_type property
    3. Implement _build_prompt to construct the user prompt

    Model failures are translated into provider errors so the extraction
    orchestrator can apply its retry policy.
    """

    # Model tier for environment-aware resolution (standard / fast)
    model_tier: str = "standard"
    # Explicit model override at the class level (bypasses tier resolution)
    model: str | None = None
    max_retries: int = settings.llm_max_retries

    def __init__(self, model_override: str | None = None) -> None:
        if model_override:
            self._model = model_override
        elif self.model:
            self._model = self.model
        else:
            self._model = settings.get_model(self.model_tier)
        self._agent: Agent[None, OutputT] | None = None

    @property
    def agent(self) -> Agent[None, OutputT]:
        """Lazily initialize and return the Pydantic AI agent."""
        if self._agent is None:
            self._agent = cast(
                Agent[None, OutputT],
                Agent(
                    model=self._model,
                    output_type=self.output_type,
                    system_prompt=self.system_prompt,
                    retries=self.max_retries,
                ),
            )
        return self._agent

    @property
    @abstractmethod
    def system_prompt(self) -> str:
        """System prompt for the agent."""
        pass

    @property
    @abstractmethod
    def output_type(self) -> type[OutputT]:
        """Pydantic model type for structured output."""
        pass

    async def run(self, input_data: InputT) -> OutputT:
        """Run the agent with input data.

        Raises:
            RateLimitExceededError: provider throttled the request.
            ExternalAPIError: provider failed or returned unusable output.
            ProviderRejectedRequestError: credentials were refused.
        """
        agent_name = self.__class__.__name__
        prompt = self._build_prompt(input_data)
        logger.info(
            "Agent run started",
            extra={
                "agent": agent_name,
                "model": self._model,
                "prompt_length": len(prompt),
            },
        )

        t0 = time.perf_counter()
        try:
            result = await self.agent.run(prompt)
        except ModelHTTPError as e:
            if e.status_code == 429:
                raise RateLimitExceededError("LLM") from e
            if e.status_code in (401, 403):
                raise ProviderRejectedRequestError("LLM", e.status_code) from e
            raise ExternalAPIError("LLM", f"HTTP {e.status_code}") from e
        except UnexpectedModelBehavior as e:
            raise ExternalAPIError("LLM", str(e)) from e
        elapsed = time.perf_counter() - t0

        logger.info(
            "Agent run completed",
            extra={
                "agent": agent_name,
                "duration_s": round(elapsed, 2),
                "total_tokens": result.usage().total_tokens,
                "output_type": type(result.output).__name__,
            },
        )
        return result.output

    @abstractmethod
    def _build_prompt(self, input_data: InputT) -> str:
        """Build the user prompt from input data."""
        pass
