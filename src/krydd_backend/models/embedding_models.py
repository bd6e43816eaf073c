from pydantic import BaseModel, Field

from krydd_backend.utils.base_types import IsoTimestamp, RecipeId


class RecipeEmbeddingModel(BaseModel):
    """
    JSON document stored at {prefix}/{recipeId}.json in the vector bucket.
    """

    recipeId: RecipeId
    embedding: list[float] = Field(min_length=1)
    createdAt: IsoTimestamp
