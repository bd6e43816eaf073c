import json
import logging
from unittest.mock import Mock

import pytest

from krydd_backend.models.recipe_models import RecipeModel
from krydd_backend.s3.object_store import ObjectStore
from krydd_backend.vectors.vector_search import (
    EmbeddingDimensionError,
    VectorSearch,
    cosine_similarity,
    recipe_embedding_text,
)

from test_utils.fakes import make_frozen_clock

VECTOR_BUCKET_NAME = "test-vector-bucket"


def make_recipe(**overrides) -> RecipeModel:
    fields = {
        "id": "r1",
        "title": "Tomato Soup",
        "description": "Warming",
        "ingredients": [{"name": "tomato"}, {"name": "basil"}],
        "instructions": ["Simmer"],
        "prepTime": 5,
        "cookTime": 20,
        "servings": 2,
        "difficulty": "easy",
        "authorId": "u1",
        "createdAt": "2024-01-01T12:00:00.000000Z",
        "updatedAt": "2024-01-01T12:00:00.000000Z",
    }
    fields.update(overrides)
    return RecipeModel(**fields)


@pytest.fixture
def bedrock_wrapper() -> Mock:
    return Mock()


@pytest.fixture
def vector_search(vector_bucket, bedrock_wrapper) -> VectorSearch:
    return VectorSearch(
        bedrock_wrapper,
        ObjectStore(vector_bucket),
        VECTOR_BUCKET_NAME,
        prefix="embeddings/",
        clock=make_frozen_clock(),
    )


def test_cosine_similarity_identical() -> None:
    assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)


def test_cosine_similarity_orthogonal() -> None:
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


def test_cosine_similarity_opposite() -> None:
    assert cosine_similarity([1.0, 1.0], [-2.0, -2.0]) == pytest.approx(-1.0)


def test_cosine_similarity_ignores_magnitude() -> None:
    assert cosine_similarity([1.0, 2.0], [10.0, 20.0]) == pytest.approx(1.0)


def test_cosine_similarity_zero_vector() -> None:
    assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0


def test_cosine_similarity_length_mismatch() -> None:
    with pytest.raises(EmbeddingDimensionError):
        cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


def test_recipe_embedding_text() -> None:
    assert recipe_embedding_text(make_recipe()) == (
        "Recipe: Tomato Soup. Description: Warming. Ingredients: tomato, basil"
    )
    assert recipe_embedding_text(make_recipe(description=None)) == "Recipe: Tomato Soup. Ingredients: tomato, basil"


def test_store_and_get_embedding(vector_search, vector_bucket) -> None:
    vector_search.store_recipe_embedding("r1", [0.1, 0.2, 0.3])

    assert vector_search.get_recipe_embedding("r1") == [0.1, 0.2, 0.3]
    stored = json.loads(vector_bucket.get_object(Bucket=VECTOR_BUCKET_NAME, Key="embeddings/r1.json")["Body"].read())
    assert stored == {"recipeId": "r1", "embedding": [0.1, 0.2, 0.3], "createdAt": "2024-01-01T12:00:00.000000Z"}


def test_get_missing_embedding(vector_search) -> None:
    assert vector_search.get_recipe_embedding("nope") is None


def test_get_corrupt_embedding(vector_search, vector_bucket, caplog) -> None:
    vector_bucket.put_object(Bucket=VECTOR_BUCKET_NAME, Key="embeddings/r1.json", Body=b'{"recipeId": "r1"}')
    with caplog.at_level(logging.ERROR):
        assert vector_search.get_recipe_embedding("r1") is None
    assert "Unreadable embedding document for recipe r1" in caplog.text


def test_refresh_recipe_embedding(vector_search, bedrock_wrapper) -> None:
    bedrock_wrapper.create_embedding.return_value = [1.0, 0.0]

    vector_search.refresh_recipe_embedding(make_recipe())

    bedrock_wrapper.create_embedding.assert_called_once_with(
        "Recipe: Tomato Soup. Description: Warming. Ingredients: tomato, basil"
    )
    assert vector_search.get_recipe_embedding("r1") == [1.0, 0.0]


def test_delete_recipe_embedding(vector_search) -> None:
    vector_search.store_recipe_embedding("r1", [1.0])
    vector_search.delete_recipe_embedding("r1")
    assert vector_search.get_recipe_embedding("r1") is None


def test_list_recipe_embeddings(vector_search, vector_bucket) -> None:
    vector_search.store_recipe_embedding("r1", [1.0])
    vector_search.store_recipe_embedding("r2", [1.0])
    vector_bucket.put_object(Bucket=VECTOR_BUCKET_NAME, Key="embeddings/nested/r3.json", Body=b"{}")
    vector_bucket.put_object(Bucket=VECTOR_BUCKET_NAME, Key="embeddings/readme.txt", Body=b"")
    vector_bucket.put_object(Bucket=VECTOR_BUCKET_NAME, Key="other/r4.json", Body=b"{}")

    assert sorted(vector_search.list_recipe_embeddings()) == ["r1", "r2"]


def test_find_similar_recipes_ranks_and_truncates(vector_search) -> None:
    vector_search.store_recipe_embedding("close", [1.0, 0.1])
    vector_search.store_recipe_embedding("closest", [1.0, 0.0])
    vector_search.store_recipe_embedding("far", [0.0, 1.0])

    results = vector_search.find_similar_recipes([1.0, 0.0], ["far", "close", "closest"], top_k=2)

    assert [result.recipeId for result in results] == ["closest", "close"]
    assert results[0].similarity == pytest.approx(1.0)


def test_find_similar_recipes_skips_unusable_embeddings(vector_search) -> None:
    vector_search.store_recipe_embedding("good", [1.0, 0.0])
    vector_search.store_recipe_embedding("wrong-size", [1.0, 0.0, 0.0])

    results = vector_search.find_similar_recipes([1.0, 0.0], ["good", "wrong-size", "missing"])

    assert [result.recipeId for result in results] == ["good"]


def test_semantic_recipe_search(vector_search, bedrock_wrapper) -> None:
    vector_search.store_recipe_embedding("soup", [1.0, 0.0])
    vector_search.store_recipe_embedding("cake", [0.0, 1.0])
    bedrock_wrapper.create_embedding.return_value = [0.9, 0.1]

    results = vector_search.semantic_recipe_search("hot soup", max_results=5)

    bedrock_wrapper.create_embedding.assert_called_once_with("hot soup")
    assert [result.recipeId for result in results] == ["soup", "cake"]


def test_semantic_recipe_search_with_no_embeddings(vector_search, bedrock_wrapper) -> None:
    bedrock_wrapper.create_embedding.return_value = [0.9, 0.1]
    assert vector_search.semantic_recipe_search("hot soup") == []
