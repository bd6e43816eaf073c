import logging
import typing

from krydd_backend.cloudwatch.metrics import MetricsManager
from krydd_backend.dynamodb.recipes_table import RecipesTable
from krydd_backend.models.recipe_models import RecipeFilterModel
from krydd_backend.models.search_models import (
    IngredientsSearchInputModel,
    RecommendationsResponseModel,
    ScoredRecipeModel,
    SearchInputModel,
    SearchResponseModel,
    SimilarRecipe,
)
from krydd_backend.models.validation import EntityValidationError, validate_entity
from krydd_backend.s3.object_store import ObjectStore
from krydd_backend.utils.apig_utils import (
    ErrorCode,
    create_error_response,
    create_success_response,
    get_method,
    get_path,
    get_query_string_parameters,
    get_route_segments,
    get_user_id_from_event,
    parse_event_body,
)
from krydd_backend.utils.aws_env_vars import get_embedding_prefix, get_table_name, get_vector_bucket_name
from krydd_backend.utils.bedrock_utils import BedrockApiError, BedrockWrapper
from krydd_backend.vectors.vector_search import VectorSearch

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

# Candidate pool for ingredient search and size of the recommendations list.
INGREDIENT_SEARCH_POOL_SIZE = 100
RECOMMENDATIONS_LIMIT = 10


class SearchApiHandler:
    def __init__(
        self,
        recipes_table: RecipesTable,
        vector_search: VectorSearch,
        metrics_manager: MetricsManager,
    ) -> None:
        self.recipes_table = recipes_table
        self.vector_search = vector_search
        self.metrics_manager = metrics_manager

    def _scored_recipes(
        self,
        matches: list[SimilarRecipe],
        cuisine: typing.Optional[str] = None,
        difficulty: typing.Optional[str] = None,
    ) -> list[ScoredRecipeModel]:
        """Loads the matched recipes, best match first, dropping those that fail the filters."""
        scores = {match.recipeId: match.similarity for match in matches}
        recipes = self.recipes_table.batch_get_recipes([match.recipeId for match in matches])

        scored = []
        for recipe in recipes:
            if cuisine and recipe.cuisine != cuisine:
                continue
            if difficulty and recipe.difficulty != difficulty:
                continue
            scored.append(ScoredRecipeModel(**recipe.model_dump(), similarityScore=scores.get(recipe.id)))
        return scored

    def _search_response(self, event: dict, recipes: list[ScoredRecipeModel], query: typing.Any) -> dict:
        response = SearchResponseModel(recipes=recipes, query=query, totalResults=len(recipes))
        return create_success_response(response.model_dump(exclude_none=True), event=event)

    def _semantic_search(self, event: dict, search_input: SearchInputModel) -> dict:
        matches = self.vector_search.semantic_recipe_search(search_input.query, max_results=search_input.maxResults)
        recipes = self._scored_recipes(matches, cuisine=search_input.cuisine, difficulty=search_input.difficulty)
        return self._search_response(event, recipes, search_input.query)

    def _search_from_body(self, event: dict) -> dict:
        return self._semantic_search(event, parse_event_body(event, SearchInputModel))

    def _search_from_query(self, event: dict) -> dict:
        query_params = get_query_string_parameters(event)
        candidate: dict[str, typing.Any] = {"query": query_params.get("q", "")}
        if "maxResults" in query_params:
            candidate["maxResults"] = query_params["maxResults"]
        return self._semantic_search(event, validate_entity(SearchInputModel, candidate))

    def _search_by_ingredients(self, event: dict) -> dict:
        search_input = parse_event_body(event, IngredientsSearchInputModel)

        candidates, _ = self.recipes_table.list_recipes(RecipeFilterModel(limit=INGREDIENT_SEARCH_POOL_SIZE))
        query_embedding = self.vector_search.create_query_embedding(" ".join(search_input.ingredients))
        matches = self.vector_search.find_similar_recipes(
            query_embedding, [recipe.id for recipe in candidates], top_k=search_input.maxResults
        )
        return self._search_response(event, self._scored_recipes(matches), search_input.ingredients)

    def _recommendations(self, event: dict) -> dict:
        recipes, _ = self.recipes_table.list_recipes(RecipeFilterModel(limit=RECOMMENDATIONS_LIMIT))
        response = RecommendationsResponseModel(recipes=recipes, recommendations="Based on popular recipes")
        return create_success_response(response.model_dump(exclude_none=True), event=event)

    def handle(self, event: dict) -> dict:
        _LOGGER.info(f"SearchApiHandler.handle invoked for path: {get_path(event)}, method: {get_method(event)}")
        if not get_user_id_from_event(event):
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, event=event)

        http_method = get_method(event).upper()
        segments = get_route_segments(event, "search")

        try:
            if segments == []:
                if http_method == "POST":
                    return self._search_from_body(event)
                if http_method == "GET":
                    return self._search_from_query(event)
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            if segments == ["ingredients"]:
                if http_method != "POST":
                    return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)
                return self._search_by_ingredients(event)

            if segments == ["recommendations"]:
                if http_method != "GET":
                    return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)
                return self._recommendations(event)

            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Route not found", event=event)

        except EntityValidationError as e:
            _LOGGER.info(f"Rejected search request: {e}")
            return create_error_response(ErrorCode.VALIDATION_ERROR, details=e.details(), event=event)
        except BedrockApiError as e:
            _LOGGER.error(f"Language model error during search: {e}")
            self.metrics_manager.put_metric("BedrockApiFailure", 1)
            if e.status_code == 429:
                return create_error_response(ErrorCode.RATE_LIMIT_EXCEEDED, event=event)
            return create_error_response(ErrorCode.AI_SERVICE_UNAVAILABLE, event=event)
        except Exception as e:
            _LOGGER.error(f"Unexpected error in SearchApiHandler: {str(e)}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR, "Search failed", event=event)


def search_lambda_handler(event: dict, context: typing.Any) -> dict:
    _LOGGER.info(f"Global handler. Method: {get_method(event)}, Path: {get_path(event)}")
    metrics_manager = MetricsManager(service="Search")

    try:
        api_handler = SearchApiHandler(
            recipes_table=RecipesTable(get_table_name()),
            vector_search=VectorSearch(
                bedrock_wrapper=BedrockWrapper(),
                object_store=ObjectStore(),
                bucket_name=get_vector_bucket_name(),
                prefix=get_embedding_prefix(),
            ),
            metrics_manager=metrics_manager,
        )
        return api_handler.handle(event)
    except Exception as e:
        _LOGGER.critical(f"Critical error in global handler setup: {str(e)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
    finally:
        metrics_manager.flush()
