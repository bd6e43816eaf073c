import logging
import typing

from krydd_backend.cloudwatch.metrics import MetricsManager
from krydd_backend.dynamodb.keys import KeyEncodingError
from krydd_backend.dynamodb.recipes_table import RecipesTable
from krydd_backend.models.recipe_models import (
    CreateRecipeInputModel,
    ListOfRecipesResponseModel,
    RecipeFilterModel,
    RecipeModel,
    RecipePageParamsModel,
    UpdateRecipeInputModel,
)
from krydd_backend.models.validation import EntityValidationError, validate_entity
from krydd_backend.s3.object_store import ObjectStore
from krydd_backend.utils.apig_utils import (
    ErrorCode,
    QueryParams,
    create_error_response,
    create_success_response,
    get_method,
    get_pagination_params,
    get_path,
    get_query_string_parameters,
    get_route_segments,
    get_user_id_from_event,
    parse_event_body,
)
from krydd_backend.utils.aws_env_vars import get_embedding_prefix, get_table_name, get_vector_bucket_name
from krydd_backend.utils.base_types import RecipeId
from krydd_backend.utils.bedrock_utils import BedrockWrapper
from krydd_backend.utils.pagination import InvalidCursorError
from krydd_backend.vectors.vector_search import VectorSearch

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

_FILTER_PARAMS = ("authorId", "cuisine", "difficulty")


def _recipe_filter_from_query(query_params: QueryParams) -> dict[str, typing.Any]:
    candidate = get_pagination_params(query_params, default_limit=20)
    for name in _FILTER_PARAMS:
        if query_params.get(name):
            candidate[name] = query_params[name]
    # ?dietaryTags=vegan,gluten-free
    if query_params.get("dietaryTags"):
        candidate["dietaryTags"] = [tag.strip() for tag in query_params["dietaryTags"].split(",") if tag.strip()]
    return candidate


def _page_params_from_query(query_params: QueryParams) -> RecipePageParamsModel:
    candidate = get_pagination_params(query_params, default_limit=20)
    if "newestFirst" in query_params:
        candidate["newestFirst"] = query_params["newestFirst"]
    return validate_entity(RecipePageParamsModel, candidate)


class RecipesApiHandler:
    def __init__(
        self,
        recipes_table: RecipesTable,
        vector_search: VectorSearch,
        metrics_manager: MetricsManager,
    ) -> None:
        self.recipes_table = recipes_table
        self.vector_search = vector_search
        self.metrics_manager = metrics_manager

    def _refresh_embedding(self, recipe: RecipeModel) -> None:
        """Best effort: the recipe is already saved, so a failure here is logged and counted only."""
        try:
            self.vector_search.refresh_recipe_embedding(recipe)
        except Exception as e:
            _LOGGER.error(f"Error refreshing embedding for recipe {recipe.id}: {e}", exc_info=True)
            self.metrics_manager.put_metric("EmbeddingFailure", 1)

    def _delete_embedding(self, recipe_id: RecipeId) -> None:
        try:
            self.vector_search.delete_recipe_embedding(recipe_id)
        except Exception as e:
            _LOGGER.error(f"Error deleting embedding for recipe {recipe_id}: {e}", exc_info=True)
            self.metrics_manager.put_metric("EmbeddingFailure", 1)

    def _list_response(self, event: dict, recipes: list[RecipeModel], cursor: typing.Optional[str]) -> dict:
        response = ListOfRecipesResponseModel(recipes=recipes, cursor=cursor)
        return create_success_response(response.model_dump(exclude_none=True), event=event)

    def _list_recipes(self, event: dict) -> dict:
        query_params = get_query_string_parameters(event)
        recipe_filter = validate_entity(RecipeFilterModel, _recipe_filter_from_query(query_params))
        recipes, cursor = self.recipes_table.list_recipes(recipe_filter)
        return self._list_response(event, recipes, cursor)

    def _list_by_author(self, event: dict, author_id: str) -> dict:
        page = _page_params_from_query(get_query_string_parameters(event))
        recipes, cursor = self.recipes_table.list_recipes_by_author(
            author_id, limit=page.limit, cursor=page.cursor, newest_first=page.newestFirst
        )
        return self._list_response(event, recipes, cursor)

    def _list_by_cuisine(self, event: dict, cuisine: str) -> dict:
        page = _page_params_from_query(get_query_string_parameters(event))
        recipes, cursor = self.recipes_table.list_recipes_by_cuisine(
            cuisine, limit=page.limit, cursor=page.cursor, newest_first=page.newestFirst
        )
        return self._list_response(event, recipes, cursor)

    def _get_recipe(self, event: dict, recipe_id: RecipeId) -> dict:
        recipe = self.recipes_table.get_recipe(recipe_id)
        if recipe is None:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Recipe not found", event=event)
        return create_success_response(recipe.model_dump(exclude_none=True), event=event)

    def _create_recipe(self, event: dict) -> dict:
        recipe_input = parse_event_body(event, CreateRecipeInputModel)
        recipe = self.recipes_table.create_recipe(recipe_input)
        self._refresh_embedding(recipe)
        return create_success_response(recipe.model_dump(exclude_none=True), 201, event=event)

    def _update_recipe(self, event: dict, recipe_id: RecipeId) -> dict:
        patch = parse_event_body(event, UpdateRecipeInputModel)
        recipe = self.recipes_table.update_recipe(recipe_id, patch)
        if recipe is None:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Recipe not found", event=event)
        self._refresh_embedding(recipe)
        return create_success_response(recipe.model_dump(exclude_none=True), event=event)

    def _delete_recipe(self, event: dict, recipe_id: RecipeId) -> dict:
        if not self.recipes_table.delete_recipe(recipe_id):
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Recipe not found", event=event)
        self._delete_embedding(recipe_id)
        return create_success_response({"id": recipe_id, "deleted": True}, event=event)

    def handle(self, event: dict) -> dict:
        _LOGGER.info(f"RecipesApiHandler.handle invoked for path: {get_path(event)}, method: {get_method(event)}")
        if not get_user_id_from_event(event):
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, event=event)

        http_method = get_method(event).upper()
        segments = get_route_segments(event, "recipes")

        try:
            if segments == []:
                if http_method == "GET":
                    return self._list_recipes(event)
                if http_method == "POST":
                    return self._create_recipe(event)
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            if segments is not None and len(segments) == 2 and segments[0] in ("author", "cuisine"):
                if http_method != "GET":
                    return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)
                if segments[0] == "author":
                    return self._list_by_author(event, segments[1])
                return self._list_by_cuisine(event, segments[1])

            if segments is not None and len(segments) == 1:
                recipe_id = RecipeId(segments[0])
                if http_method == "GET":
                    return self._get_recipe(event, recipe_id)
                if http_method == "PUT":
                    return self._update_recipe(event, recipe_id)
                if http_method == "DELETE":
                    return self._delete_recipe(event, recipe_id)
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Route not found", event=event)

        except EntityValidationError as e:
            _LOGGER.info(f"Rejected recipe request: {e}")
            return create_error_response(ErrorCode.VALIDATION_ERROR, details=e.details(), event=event)
        except (KeyEncodingError, InvalidCursorError) as e:
            _LOGGER.info(f"Rejected recipe request: {e}")
            return create_error_response(ErrorCode.VALIDATION_ERROR, str(e), event=event)
        except Exception as e:
            _LOGGER.error(f"Unexpected error in RecipesApiHandler: {str(e)}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR, event=event)


def recipes_lambda_handler(event: dict, context: typing.Any) -> dict:
    _LOGGER.info(f"Global handler. Method: {get_method(event)}, Path: {get_path(event)}")
    metrics_manager = MetricsManager(service="Recipes")

    try:
        api_handler = RecipesApiHandler(
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
