import logging
import typing

from krydd_backend.cloudwatch.metrics import MetricsManager
from krydd_backend.dynamodb.recipes_table import RecipesTable
from krydd_backend.models.chat_models import (
    ChatMessageInputModel,
    ChatResponseModel,
    ChatSearchResponseModel,
    MealPlanGenerationInputModel,
    MealPlanGenerationPreferencesModel,
    MealPlanGenerationResponseModel,
    SubstitutionsInputModel,
    SubstitutionsResponseModel,
    SuggestInputModel,
    SuggestResponseModel,
)
from krydd_backend.models.validation import EntityValidationError
from krydd_backend.s3.object_store import ObjectStore
from krydd_backend.utils.apig_utils import (
    ErrorCode,
    create_error_response,
    create_success_response,
    get_method,
    get_path,
    get_route_segments,
    get_user_id_from_event,
    parse_event_body,
)
from krydd_backend.utils.aws_env_vars import get_embedding_prefix, get_table_name, get_vector_bucket_name
from krydd_backend.utils.bedrock_utils import BedrockApiError, BedrockWrapper
from krydd_backend.utils.input_validator import InputValidator, SuspiciousInputError
from krydd_backend.utils.time_utils import IdFactory, new_id
from krydd_backend.vectors.vector_search import VectorSearch

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

CHAT_SEARCH_MAX_RESULTS = 10


def _preference_strings(preferences: typing.Optional[dict[str, typing.Any]]) -> list[str]:
    """Every free-text value in a preferences map, including strings inside lists."""
    values: list[str] = []
    for value in (preferences or {}).values():
        if isinstance(value, str):
            values.append(value)
        elif isinstance(value, list):
            values.extend(item for item in value if isinstance(item, str))
    return values


class ChatApiHandler:
    def __init__(
        self,
        recipes_table: RecipesTable,
        vector_search: VectorSearch,
        bedrock_wrapper: BedrockWrapper,
        metrics_manager: MetricsManager,
        id_factory: IdFactory = new_id,
    ) -> None:
        self.recipes_table = recipes_table
        self.vector_search = vector_search
        self.bedrock_wrapper = bedrock_wrapper
        self.metrics_manager = metrics_manager
        self.id_factory = id_factory

    def _chat(self, event: dict) -> dict:
        chat_input = parse_event_body(event, ChatMessageInputModel)
        InputValidator.validate_chat_input(chat_input.message)

        recipe_titles: list[str] = []
        preferences = None
        if chat_input.context:
            preferences = chat_input.context.preferences
            InputValidator.validate_preferences(_preference_strings(preferences))
            if chat_input.context.recentRecipes:
                recent = self.recipes_table.batch_get_recipes(chat_input.context.recentRecipes)
                recipe_titles = [recipe.title for recipe in recent]

        _LOGGER.info(f"Chat message: {InputValidator.sanitize_for_logging(chat_input.message)}")
        reply = self.bedrock_wrapper.chat(chat_input.message, recipe_titles=recipe_titles, preferences=preferences)
        response = ChatResponseModel(response=reply, messageId=self.id_factory())
        return create_success_response(response.model_dump(), event=event)

    def _chat_search(self, event: dict) -> dict:
        chat_input = parse_event_body(event, ChatMessageInputModel)
        InputValidator.validate_search_input(chat_input.message)

        matches = self.vector_search.semantic_recipe_search(chat_input.message, max_results=CHAT_SEARCH_MAX_RESULTS)
        recipes = self.recipes_table.batch_get_recipes([match.recipeId for match in matches])
        summary = self.bedrock_wrapper.summarize_search_results(
            chat_input.message,
            [f"{recipe.title}: {recipe.description or 'No description'}" for recipe in recipes],
        )

        response = ChatSearchResponseModel(
            recipes=recipes, summary=summary, searchQuery=chat_input.message, totalResults=len(recipes)
        )
        return create_success_response(response.model_dump(exclude_none=True), event=event)

    def _suggest(self, event: dict) -> dict:
        suggest_input = parse_event_body(event, SuggestInputModel)
        InputValidator.validate_ingredients(suggest_input.ingredients)
        InputValidator.validate_preferences(_preference_strings(suggest_input.preferences))

        suggestions = self.bedrock_wrapper.suggest_recipes_from_ingredients(
            suggest_input.ingredients, suggest_input.preferences
        )
        response = SuggestResponseModel(suggestions=suggestions, basedOnIngredients=suggest_input.ingredients)
        return create_success_response(response.model_dump(), event=event)

    def _generate_meal_plan(self, event: dict) -> dict:
        generation_input = parse_event_body(event, MealPlanGenerationInputModel)
        preferences = generation_input.preferences or MealPlanGenerationPreferencesModel()
        InputValidator.validate_preferences([*(preferences.cuisines or []), *(preferences.dietaryRestrictions or [])])

        meal_plan = self.bedrock_wrapper.generate_weekly_meal_plan(
            meals_per_day=preferences.mealsPerDay,
            cuisines=preferences.cuisines,
            dietary_restrictions=preferences.dietaryRestrictions,
            calories_per_day=preferences.caloriesPerDay,
        )
        response = MealPlanGenerationResponseModel(mealPlan=meal_plan, preferences=generation_input.preferences)
        return create_success_response(response.model_dump(exclude_none=True), event=event)

    def _substitutions(self, event: dict) -> dict:
        substitution_input = parse_event_body(event, SubstitutionsInputModel)
        InputValidator.validate_substitution_input(
            substitution_input.ingredient, substitution_input.dietaryRestriction
        )

        substitutions = self.bedrock_wrapper.suggest_substitutions(
            substitution_input.ingredient, substitution_input.dietaryRestriction
        )
        response = SubstitutionsResponseModel(
            ingredient=substitution_input.ingredient,
            substitutions=substitutions,
            dietaryRestriction=substitution_input.dietaryRestriction,
        )
        return create_success_response(response.model_dump(exclude_none=True), event=event)

    def handle(self, event: dict) -> dict:
        _LOGGER.info(f"ChatApiHandler.handle invoked for path: {get_path(event)}, method: {get_method(event)}")
        if not get_user_id_from_event(event):
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, event=event)

        http_method = get_method(event).upper()
        segments = get_route_segments(event, "chat")

        routes = {
            (): self._chat,
            ("search",): self._chat_search,
            ("suggest",): self._suggest,
            ("meal-plan",): self._generate_meal_plan,
            ("substitutions",): self._substitutions,
        }
        route = routes.get(tuple(segments)) if segments is not None else None
        if route is None:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Route not found", event=event)
        if http_method != "POST":
            return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

        try:
            return route(event)

        except EntityValidationError as e:
            _LOGGER.info(f"Rejected chat request: {e}")
            return create_error_response(ErrorCode.VALIDATION_ERROR, details=e.details(), event=event)
        except SuspiciousInputError as e:
            _LOGGER.warning(f"Suspicious chat input rejected: {e}")
            return create_error_response(ErrorCode.VALIDATION_ERROR, str(e), event=event)
        except BedrockApiError as e:
            _LOGGER.error(f"AI Service communication error during chat: {str(e)}")
            self.metrics_manager.put_metric("BedrockApiFailure", 1)
            if e.status_code == 429:
                return create_error_response(ErrorCode.RATE_LIMIT_EXCEEDED, event=event)
            return create_error_response(ErrorCode.AI_SERVICE_UNAVAILABLE, event=event)
        except Exception as e:
            _LOGGER.error(f"Unexpected error in ChatApiHandler: {str(e)}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR, event=event)


def chat_lambda_handler(event: dict, context: typing.Any) -> dict:
    _LOGGER.info(f"Global handler. Method: {get_method(event)}, Path: {get_path(event)}")
    metrics_manager = MetricsManager(service="Chat")

    try:
        bedrock_wrapper = BedrockWrapper()
        api_handler = ChatApiHandler(
            recipes_table=RecipesTable(get_table_name()),
            vector_search=VectorSearch(
                bedrock_wrapper=bedrock_wrapper,
                object_store=ObjectStore(),
                bucket_name=get_vector_bucket_name(),
                prefix=get_embedding_prefix(),
            ),
            bedrock_wrapper=bedrock_wrapper,
            metrics_manager=metrics_manager,
        )
        return api_handler.handle(event)
    except Exception as e:
        _LOGGER.critical(f"Critical error in global handler setup: {str(e)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
    finally:
        metrics_manager.flush()
