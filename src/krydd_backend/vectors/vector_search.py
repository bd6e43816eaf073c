import json
import logging
import typing

import numpy as np
import pydantic

from krydd_backend.models.embedding_models import RecipeEmbeddingModel
from krydd_backend.models.recipe_models import RecipeModel
from krydd_backend.models.search_models import SimilarRecipe
from krydd_backend.s3.object_store import ObjectStore
from krydd_backend.utils.base_types import RecipeId
from krydd_backend.utils.bedrock_utils import BedrockWrapper
from krydd_backend.utils.time_utils import Clock, utc_now_iso

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

_EMBEDDING_SUFFIX = ".json"


class EmbeddingDimensionError(ValueError):
    pass


def cosine_similarity(vec_a: typing.Sequence[float], vec_b: typing.Sequence[float]) -> float:
    """
    Cosine of the angle between two vectors. A zero vector has no direction and scores 0.0.

    :raises EmbeddingDimensionError: if the vectors differ in length.
    """
    if len(vec_a) != len(vec_b):
        raise EmbeddingDimensionError(f"Cannot compare vectors of length {len(vec_a)} and {len(vec_b)}")

    a = np.asarray(vec_a, dtype=np.float64)
    b = np.asarray(vec_b, dtype=np.float64)
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


def recipe_embedding_text(recipe: RecipeModel) -> str:
    parts = [f"Recipe: {recipe.title}"]
    if recipe.description:
        parts.append(f"Description: {recipe.description}")
    parts.append(f"Ingredients: {', '.join(ingredient.name for ingredient in recipe.ingredients)}")
    return ". ".join(parts)


class VectorSearch:
    """
    Recipe embeddings kept as one JSON document per recipe in S3, ranked by brute-force cosine similarity.
    """

    def __init__(
        self,
        bedrock_wrapper: BedrockWrapper,
        object_store: ObjectStore,
        bucket_name: str,
        prefix: str = "embeddings",
        clock: Clock = utc_now_iso,
    ) -> None:
        self.bedrock_wrapper = bedrock_wrapper
        self.object_store = object_store
        self.bucket_name = bucket_name
        self.prefix = prefix.strip("/")
        self.clock = clock

    def _object_key(self, recipe_id: RecipeId) -> str:
        return f"{self.prefix}/{recipe_id}{_EMBEDDING_SUFFIX}"

    def create_recipe_embedding(self, recipe: RecipeModel) -> list[float]:
        return self.bedrock_wrapper.create_embedding(recipe_embedding_text(recipe))

    def create_query_embedding(self, text: str) -> list[float]:
        return self.bedrock_wrapper.create_embedding(text)

    def store_recipe_embedding(self, recipe_id: RecipeId, embedding: list[float]) -> None:
        document = RecipeEmbeddingModel(recipeId=recipe_id, embedding=embedding, createdAt=self.clock())
        self.object_store.put(
            bucket=self.bucket_name,
            key=self._object_key(recipe_id),
            contents=document.model_dump_json().encode("utf-8"),
            content_type="application/json",
        )
        _LOGGER.info(f"Stored {len(embedding)}-dim embedding for recipe {recipe_id}")

    def refresh_recipe_embedding(self, recipe: RecipeModel) -> None:
        self.store_recipe_embedding(recipe.id, self.create_recipe_embedding(recipe))

    def get_recipe_embedding(self, recipe_id: RecipeId) -> typing.Optional[list[float]]:
        """:return: the stored embedding, or None if there is none or it cannot be read."""
        contents = self.object_store.get(bucket=self.bucket_name, key=self._object_key(recipe_id))
        if contents is None:
            return None
        try:
            return RecipeEmbeddingModel.model_validate_json(contents).embedding
        except pydantic.ValidationError as e:
            _LOGGER.error(f"Unreadable embedding document for recipe {recipe_id}: {e}")
            return None

    def delete_recipe_embedding(self, recipe_id: RecipeId) -> None:
        self.object_store.delete(bucket=self.bucket_name, key=self._object_key(recipe_id))
        _LOGGER.info(f"Deleted embedding for recipe {recipe_id}")

    def list_recipe_embeddings(self) -> list[RecipeId]:
        """Ids of every recipe that has a stored embedding."""
        key_prefix = f"{self.prefix}/"
        recipe_ids = []
        for key in self.object_store.list_keys(bucket=self.bucket_name, prefix=key_prefix):
            name = key[len(key_prefix) :]
            if name.endswith(_EMBEDDING_SUFFIX) and "/" not in name:
                recipe_ids.append(RecipeId(name[: -len(_EMBEDDING_SUFFIX)]))
        return [recipe_id for recipe_id in recipe_ids if recipe_id]

    def find_similar_recipes(
        self,
        query_embedding: typing.Sequence[float],
        recipe_ids: typing.Iterable[RecipeId],
        top_k: int = 10,
    ) -> list[SimilarRecipe]:
        """
        Scores each recipe's stored embedding against the query and returns the `top_k` best,
        most similar first. Recipes without a usable embedding are left out.
        """
        similarities: list[SimilarRecipe] = []
        for recipe_id in recipe_ids:
            embedding = self.get_recipe_embedding(recipe_id)
            if embedding is None:
                continue
            try:
                similarity = cosine_similarity(query_embedding, embedding)
            except EmbeddingDimensionError as e:
                _LOGGER.warning(f"Skipping recipe {recipe_id}: {e}")
                continue
            similarities.append(SimilarRecipe(recipeId=recipe_id, similarity=similarity))

        similarities.sort(key=lambda result: result.similarity, reverse=True)
        return similarities[:top_k]

    def semantic_recipe_search(self, query: str, max_results: int = 10) -> list[SimilarRecipe]:
        """Embeds the query text and ranks every stored recipe embedding against it."""
        query_embedding = self.create_query_embedding(query)
        results = self.find_similar_recipes(query_embedding, self.list_recipe_embeddings(), top_k=max_results)
        _LOGGER.info(f"Semantic search returned {len(results)} recipes (query: {json.dumps(query[:100])})")
        return results
