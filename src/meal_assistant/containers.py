"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from meal_assistant.adapters.openai_reasoning_client import OpenAIReasoningClient
from meal_assistant.adapters.openfoodfacts_client import HttpxOpenFoodFactsClient
from meal_assistant.adapters.supabase_meal_repository import SupabaseMealRepository
from meal_assistant.adapters.supabase_product_repository import (
    SupabaseProductRepository,
)
from meal_assistant.adapters.supabase_session_repository import (
    SupabaseConversationRepository,
)
from meal_assistant.config import Settings, has_reasoning_backend
from meal_assistant.services.agent import MealAgent
from meal_assistant.services.cache import InMemoryCache
from meal_assistant.services.clock import Clock, ZoneClock
from meal_assistant.services.drafts import DraftLogService
from meal_assistant.services.intents import (
    HeuristicIntentClassifier,
    IntentClassifier,
    ReasoningIntentClassifier,
)
from meal_assistant.services.meals import MealLogService
from meal_assistant.services.nutrition import NutritionResolver
from meal_assistant.services.reasoning import ReasoningCandidateNominator
from meal_assistant.services.selection import CandidateSelector
from meal_assistant.services.sessions import SessionService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    nutrition_resolver: NutritionResolver
    meal_log_service: MealLogService
    session_service: SessionService
    agent: MealAgent
    draft_log_service: DraftLogService
    clock: Clock
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    meal_repository = SupabaseMealRepository(supabase_client)
    conversation_repository = SupabaseConversationRepository(supabase_client)
    product_repository = SupabaseProductRepository(supabase_client)

    openfoodfacts_client = HttpxOpenFoodFactsClient.create(
        base_url=resolved_settings.openfoodfacts_base_url,
        web_search_url=resolved_settings.web_search_url,
        user_agent=resolved_settings.http_user_agent,
    )
    nutrition_resolver = NutritionResolver(
        client=openfoodfacts_client,
        cache=InMemoryCache(),
        product_repository=product_repository,
        base_url=resolved_settings.openfoodfacts_base_url,
        country_tag=resolved_settings.openfoodfacts_country_tag,
        ttl_seconds=resolved_settings.lookup_cache_ttl_seconds,
    )

    reasoning_client: OpenAIReasoningClient | None = None
    classifier: IntentClassifier = HeuristicIntentClassifier()
    nominator: ReasoningCandidateNominator | None = None
    if has_reasoning_backend(resolved_settings):
        reasoning_client = OpenAIReasoningClient.create(
            resolved_settings.openai_api_key
        )
        classifier = ReasoningIntentClassifier(
            client=reasoning_client,
            model=resolved_settings.openai_model,
            reasoning_effort=resolved_settings.openai_reasoning_effort,
            store=resolved_settings.openai_store,
        )
        nominator = ReasoningCandidateNominator(
            client=reasoning_client,
            model=resolved_settings.openai_model,
            reasoning_effort=resolved_settings.openai_reasoning_effort,
            store=resolved_settings.openai_store,
        )

    clock = ZoneClock(resolved_settings.reference_timezone)
    meal_log_service = MealLogService(meal_repository)
    session_service = SessionService(conversation_repository)
    agent = MealAgent(
        classifier=classifier,
        selector=CandidateSelector(ranker=nutrition_resolver, nominator=nominator),
        meal_service=meal_log_service,
        session_service=session_service,
        clock=clock,
        agent_model=resolved_settings.openai_model if reasoning_client else None,
    )
    draft_log_service = DraftLogService(
        ranker=nutrition_resolver,
        meal_service=meal_log_service,
        clock=clock,
    )

    async def close_resources() -> None:
        await openfoodfacts_client.close()
        if reasoning_client is not None:
            await reasoning_client.close()

    return AppContainer(
        settings=resolved_settings,
        nutrition_resolver=nutrition_resolver,
        meal_log_service=meal_log_service,
        session_service=session_service,
        agent=agent,
        draft_log_service=draft_log_service,
        clock=clock,
        close_resources=close_resources,
    )
