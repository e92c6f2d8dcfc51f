"""Tests for container wiring."""

import asyncio

from meal_assistant.containers import build_container
from meal_assistant.services.intents import (
    HeuristicIntentClassifier,
    ReasoningIntentClassifier,
)


def test_build_container_creates_services(settings) -> None:
    container = build_container(settings)
    assert container.agent is not None
    assert container.draft_log_service is not None
    assert isinstance(container.agent.classifier, HeuristicIntentClassifier)
    assert container.agent.selector.nominator is None
    assert container.agent.agent_model is None
    asyncio.run(container.close_resources())


def test_build_container_wires_reasoning_backend(settings) -> None:
    container = build_container(
        settings.model_copy(update={"openai_api_key": "sk-test"})
    )
    assert isinstance(container.agent.classifier, ReasoningIntentClassifier)
    assert container.agent.selector.nominator is not None
    assert container.agent.agent_model == settings.openai_model
    asyncio.run(container.close_resources())
