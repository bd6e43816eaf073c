#!/usr/bin/env python3
from unittest.mock import Mock

import pytest

from krydd_backend.lambdas.search_lambda import INGREDIENT_SEARCH_POOL_SIZE, RECOMMENDATIONS_LIMIT, SearchApiHandler
from krydd_backend.models.recipe_models import RecipeModel
from krydd_backend.models.search_models import SimilarRecipe
from krydd_backend.utils.bedrock_utils import BedrockApiError

from test_utils.events import create_api_event, response_body


def make_recipe(recipe_id: str, **overrides) -> RecipeModel:
    fields = {
        "id": recipe_id,
        "title": f"Recipe {recipe_id}",
        "ingredients": [{"name": "Salt"}],
        "instructions": ["Cook"],
        "prepTime": 5,
        "cookTime": 10,
        "servings": 2,
        "difficulty": "easy",
        "authorId": "u1",
        "createdAt": "2024-01-01T12:00:00.000000Z",
        "updatedAt": "2024-01-01T12:00:00.000000Z",
    }
    fields.update(overrides)
    return RecipeModel(**fields)


def create_search_api_handler(recipes_table=None, vector_search=None, metrics_manager=None) -> SearchApiHandler:
    return SearchApiHandler(recipes_table or Mock(), vector_search or Mock(), metrics_manager or Mock())


def test_search_api_handler_requires_authentication() -> None:
    response = create_search_api_handler().handle(create_api_event("POST", "/search", user_id=None))
    assert response["statusCode"] == 401


@pytest.mark.parametrize(
    "method, path, status_code",
    [
        ("DELETE", "/search", 405),
        ("GET", "/search/ingredients", 405),
        ("POST", "/search/recommendations", 405),
        ("GET", "/search/elsewhere", 404),
    ],
)
def test_search_api_handler_routing_errors(method: str, path: str, status_code: int) -> None:
    assert create_search_api_handler().handle(create_api_event(method, path))["statusCode"] == status_code


def test_semantic_search_keeps_ranking_and_scores() -> None:
    vector_search = Mock()
    vector_search.semantic_recipe_search.return_value = [SimilarRecipe("r2", 0.9), SimilarRecipe("r1", 0.5)]
    recipes_table = Mock()
    recipes_table.batch_get_recipes.return_value = [make_recipe("r2"), make_recipe("r1")]

    response = create_search_api_handler(recipes_table, vector_search).handle(
        create_api_event("POST", "/search", body={"query": "salty", "maxResults": 5})
    )

    assert response["statusCode"] == 200
    data = response_body(response)["data"]
    assert [(recipe["id"], recipe["similarityScore"]) for recipe in data["recipes"]] == [("r2", 0.9), ("r1", 0.5)]
    assert data["query"] == "salty"
    assert data["totalResults"] == 2
    vector_search.semantic_recipe_search.assert_called_once_with("salty", max_results=5)
    recipes_table.batch_get_recipes.assert_called_once_with(["r2", "r1"])


def test_semantic_search_filters_cuisine_and_difficulty() -> None:
    vector_search = Mock()
    vector_search.semantic_recipe_search.return_value = [
        SimilarRecipe("r1", 0.9),
        SimilarRecipe("r2", 0.8),
        SimilarRecipe("r3", 0.7),
    ]
    recipes_table = Mock()
    recipes_table.batch_get_recipes.return_value = [
        make_recipe("r1", cuisine="Thai"),
        make_recipe("r2", cuisine="Thai", difficulty="hard"),
        make_recipe("r3", cuisine="French"),
    ]

    response = create_search_api_handler(recipes_table, vector_search).handle(
        create_api_event("POST", "/search", body={"query": "curry", "cuisine": "Thai", "difficulty": "easy"})
    )

    data = response_body(response)["data"]
    assert [recipe["id"] for recipe in data["recipes"]] == ["r1"]
    assert data["totalResults"] == 1


def test_search_from_query_string() -> None:
    vector_search = Mock()
    vector_search.semantic_recipe_search.return_value = []
    recipes_table = Mock()
    recipes_table.batch_get_recipes.return_value = []

    response = create_search_api_handler(recipes_table, vector_search).handle(
        create_api_event("GET", "/search", query={"q": "pasta", "maxResults": "3"})
    )

    assert response["statusCode"] == 200
    assert response_body(response)["data"] == {"recipes": [], "query": "pasta", "totalResults": 0}
    vector_search.semantic_recipe_search.assert_called_once_with("pasta", max_results=3)


@pytest.mark.parametrize(
    "body",
    [{"query": ""}, {"query": "x", "maxResults": 51}, {"query": "x", "maxResults": 0}, {"q": "x"}],
)
def test_search_invalid_body(body: dict) -> None:
    vector_search = Mock()
    response = create_search_api_handler(vector_search=vector_search).handle(
        create_api_event("POST", "/search", body=body)
    )
    assert response["statusCode"] == 400
    assert "details" in response_body(response)
    vector_search.semantic_recipe_search.assert_not_called()


def test_search_missing_query_string() -> None:
    response = create_search_api_handler().handle(create_api_event("GET", "/search"))
    assert response["statusCode"] == 400


def test_search_by_ingredients() -> None:
    recipes_table = Mock()
    recipes_table.list_recipes.return_value = ([make_recipe("r1"), make_recipe("r2")], "more")
    recipes_table.batch_get_recipes.return_value = [make_recipe("r2")]
    vector_search = Mock()
    vector_search.create_query_embedding.return_value = [0.1, 0.2]
    vector_search.find_similar_recipes.return_value = [SimilarRecipe("r2", 0.75)]

    response = create_search_api_handler(recipes_table, vector_search).handle(
        create_api_event("POST", "/search/ingredients", body={"ingredients": ["eggs", "leek"], "maxResults": 4})
    )

    assert response["statusCode"] == 200
    data = response_body(response)["data"]
    assert data["query"] == ["eggs", "leek"]
    assert [recipe["similarityScore"] for recipe in data["recipes"]] == [0.75]
    assert recipes_table.list_recipes.call_args.args[0].limit == INGREDIENT_SEARCH_POOL_SIZE
    vector_search.create_query_embedding.assert_called_once_with("eggs leek")
    vector_search.find_similar_recipes.assert_called_once_with([0.1, 0.2], ["r1", "r2"], top_k=4)


def test_search_by_ingredients_requires_ingredients() -> None:
    response = create_search_api_handler().handle(
        create_api_event("POST", "/search/ingredients", body={"ingredients": []})
    )
    assert response["statusCode"] == 400


def test_recommendations() -> None:
    recipes_table = Mock()
    recipes_table.list_recipes.return_value = ([make_recipe("r1")], None)

    response = create_search_api_handler(recipes_table).handle(create_api_event("GET", "/search/recommendations"))

    assert response["statusCode"] == 200
    data = response_body(response)["data"]
    assert [recipe["id"] for recipe in data["recipes"]] == ["r1"]
    assert data["recommendations"] == "Based on popular recipes"
    assert recipes_table.list_recipes.call_args.args[0].limit == RECOMMENDATIONS_LIMIT


@pytest.mark.parametrize("status_code, error_code", [(503, "AI_SERVICE_UNAVAILABLE"), (429, "RATE_LIMIT_EXCEEDED")])
def test_search_language_model_failure(status_code: int, error_code: str) -> None:
    vector_search = Mock()
    vector_search.semantic_recipe_search.side_effect = BedrockApiError("nope", status_code)
    metrics_manager = Mock()

    response = create_search_api_handler(vector_search=vector_search, metrics_manager=metrics_manager).handle(
        create_api_event("POST", "/search", body={"query": "soup"})
    )

    assert response["statusCode"] == status_code
    assert response_body(response)["errorCode"] == error_code
    metrics_manager.put_metric.assert_called_once_with("BedrockApiFailure", 1)


def test_search_unexpected_error() -> None:
    recipes_table = Mock()
    recipes_table.list_recipes.side_effect = RuntimeError("boom")
    response = create_search_api_handler(recipes_table).handle(create_api_event("GET", "/search/recommendations"))
    assert response["statusCode"] == 500
    assert response_body(response)["error"] == "Search failed"
