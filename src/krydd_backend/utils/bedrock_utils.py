import json
import logging
import typing

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from krydd_backend.models.bedrock_models import ModelResponse, ModelToolCall
from krydd_backend.utils.aws_env_vars import get_chat_model_id, get_embedding_model_id

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

ANTHROPIC_VERSION = "bedrock-2023-05-31"
EMBEDDING_DIMENSIONS = 1024

_THROTTLING_CODES = {"ThrottlingException", "ServiceQuotaExceededException", "TooManyRequestsException"}


class BedrockApiError(Exception):
    def __init__(self, msg: str, status_code: int = 503) -> None:
        super().__init__(msg)
        self.status_code = status_code


class ToolDefinition(typing.TypedDict):
    name: str
    description: str
    inputSchema: dict[str, typing.Any]


_CHAT_SYSTEM_PROMPT_TEMPLATE = """
You are Krydd, a helpful recipe assistant.

Your expertise includes:
- Finding recipes based on ingredients
- Providing cooking tips and substitutions
- Creating meal plans
- Answering recipe questions

Be friendly, encouraging, and provide practical advice.
When suggesting recipes, be specific with measurements and instructions.

Current context: {preferences}
"""

_CHAT_WITH_RECIPES_PROMPT_TEMPLATE = """
Context: The user has been looking at these recipes:
{recipe_titles}

User question: {message}
"""

_SUGGEST_RECIPES_SYSTEM_PROMPT = """
You are Krydd, a helpful recipe assistant.
Provide recipe suggestions with:
- Recipe name
- Brief description
- Key ingredients needed (besides the ones listed)
- Estimated cooking time
- Difficulty level

Format as a numbered list with clear sections.
"""

_SUGGEST_RECIPES_PROMPT_TEMPLATE = """
Suggest 5 recipes that can be made with these ingredients: {ingredients}.
{preferences}
"""

_MEAL_PLAN_SYSTEM_PROMPT = """
You are Krydd, a meal planning assistant.
Create a diverse weekly meal plan that:
- Varies cuisine types throughout the week
- Considers dietary restrictions
- Balances nutrition
- Includes breakfast, lunch, dinner (and snacks if 4+ meals)

Format by day with meal names and brief descriptions.
"""

_MEAL_PLAN_PROMPT_TEMPLATE = """
Generate a weekly meal plan with {meals_per_day} meals per day.
Preferences:
- Cuisines: {cuisines}
- Dietary restrictions: {dietary_restrictions}
- Target calories: {calories} per day
"""

_SUBSTITUTIONS_SYSTEM_PROMPT = """
You are Krydd, a recipe assistant.
Provide 3-5 substitution options with:
- The substitute ingredient
- Conversion ratio
- When it works best

Format as a concise list.
"""

_SEARCH_SUMMARY_PROMPT_TEMPLATE = """
The user searched for "{query}". Here are the found recipes: {recipes}
"""


class BedrockWrapper:
    def __init__(
        self,
        bedrock_client: typing.Any = None,
        chat_model_id: typing.Optional[str] = None,
        embedding_model_id: typing.Optional[str] = None,
    ) -> None:
        self.client = bedrock_client or boto3.client("bedrock-runtime")
        self.chat_model_id = chat_model_id or get_chat_model_id()
        self.embedding_model_id = embedding_model_id or get_embedding_model_id()

    def _invoke(self, model_id: str, body: dict[str, typing.Any]) -> dict[str, typing.Any]:
        """
        Sends one InvokeModel request and returns the decoded JSON response body.
        """
        try:
            response = self.client.invoke_model(
                modelId=model_id,
                contentType="application/json",
                accept="application/json",
                body=json.dumps(body),
            )
            return json.loads(response["body"].read())
        except ClientError as e:
            code = e.response["Error"]["Code"]
            _LOGGER.error(f"Bedrock call to {model_id} failed ({code}): {e.response['Error']['Message']}")
            raise BedrockApiError(f"Language model request failed: {code}", 429 if code in _THROTTLING_CODES else 503)
        except BotoCoreError as e:
            _LOGGER.error(f"Bedrock call to {model_id} failed: {e}", exc_info=True)
            raise BedrockApiError("Failed to communicate with the language model service.")
        except (KeyError, ValueError) as e:
            _LOGGER.error(f"Unreadable Bedrock response from {model_id}: {e}", exc_info=True)
            raise BedrockApiError("Language model returned an unreadable response.")

    def _messages_body(
        self,
        prompt: str,
        system_prompt: typing.Optional[str],
        max_tokens: int,
        temperature: float,
    ) -> dict[str, typing.Any]:
        body: dict[str, typing.Any] = {
            "anthropic_version": ANTHROPIC_VERSION,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            body["system"] = system_prompt
        return body

    def invoke_model(
        self,
        prompt: str,
        *,
        system_prompt: typing.Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> str:
        """
        :return: the first text block of the model's reply.
        :raises BedrockApiError: if the call fails or the reply has no text.
        """
        response_body = self._invoke(
            self.chat_model_id, self._messages_body(prompt, system_prompt, max_tokens, temperature)
        )
        content = response_body.get("content")
        if not isinstance(content, list):
            _LOGGER.error(f"Missing content in Bedrock response: {response_body}")
            raise BedrockApiError("Language model returned an unexpected response structure (no content).")

        for block in content:
            if block.get("type") == "text":
                generated_text = str(block.get("text", ""))
                _LOGGER.info(f"Raw model response text (first 500 chars): {generated_text[:500]}")
                return generated_text

        _LOGGER.error(f"No text block in Bedrock response: {response_body}")
        raise BedrockApiError("Language model returned an unexpected response structure (no text).")

    def invoke_model_with_tools(
        self,
        prompt: str,
        tools: typing.Sequence[ToolDefinition],
        *,
        system_prompt: typing.Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> ModelResponse:
        """
        Offers `tools` to the model and returns its text along with any tool calls it made.
        """
        body = self._messages_body(prompt, system_prompt, max_tokens, temperature)
        body["tools"] = [
            {"name": tool["name"], "description": tool["description"], "input_schema": tool["inputSchema"]}
            for tool in tools
        ]
        response_body = self._invoke(self.chat_model_id, body)

        text_parts: list[str] = []
        tool_calls: list[ModelToolCall] = []
        for block in response_body.get("content") or []:
            if block.get("type") == "text":
                text_parts.append(str(block.get("text", "")))
            elif block.get("type") == "tool_use":
                tool_calls.append(
                    ModelToolCall(toolUseId=block.get("id", ""), name=block.get("name", ""), input=block.get("input") or {})
                )
        return ModelResponse(text="".join(text_parts), tool_calls=tool_calls)

    def create_embedding(self, text: str) -> list[float]:
        """Titan text embedding of `text`, EMBEDDING_DIMENSIONS long."""
        response_body = self._invoke(
            self.embedding_model_id, {"inputText": text, "dimensions": EMBEDDING_DIMENSIONS}
        )
        embedding = response_body.get("embedding")
        if not isinstance(embedding, list) or not embedding:
            _LOGGER.error(f"Invalid embedding response from {self.embedding_model_id}")
            raise BedrockApiError("Invalid embedding response from the language model service.")
        return [float(value) for value in embedding]

    def chat(
        self,
        message: str,
        *,
        recipe_titles: typing.Sequence[str] = (),
        preferences: typing.Optional[dict[str, typing.Any]] = None,
    ) -> str:
        system_prompt = _CHAT_SYSTEM_PROMPT_TEMPLATE.format(
            preferences=json.dumps(preferences) if preferences else "No specific preferences"
        )
        prompt = message
        if recipe_titles:
            prompt = _CHAT_WITH_RECIPES_PROMPT_TEMPLATE.format(
                recipe_titles="\n".join(f"- {title}" for title in recipe_titles),
                message=message,
            )
        return self.invoke_model(prompt, system_prompt=system_prompt, max_tokens=2048, temperature=0.7)

    def summarize_search_results(self, query: str, recipe_summaries: typing.Sequence[str]) -> str:
        if recipe_summaries:
            recipes = "; ".join(recipe_summaries)
        else:
            recipes = "No recipes found matching this search."
        prompt = _SEARCH_SUMMARY_PROMPT_TEMPLATE.format(query=query, recipes=recipes)
        return self.invoke_model(prompt, max_tokens=512, temperature=0.5)

    def suggest_recipes_from_ingredients(
        self,
        ingredients: typing.Sequence[str],
        preferences: typing.Optional[dict[str, typing.Any]] = None,
    ) -> str:
        prompt = _SUGGEST_RECIPES_PROMPT_TEMPLATE.format(
            ingredients=", ".join(ingredients),
            preferences=f"Preferences: {json.dumps(preferences)}" if preferences else "",
        )
        return self.invoke_model(prompt, system_prompt=_SUGGEST_RECIPES_SYSTEM_PROMPT)

    def generate_weekly_meal_plan(
        self,
        *,
        meals_per_day: int = 3,
        cuisines: typing.Optional[typing.Sequence[str]] = None,
        dietary_restrictions: typing.Optional[typing.Sequence[str]] = None,
        calories_per_day: typing.Optional[float] = None,
    ) -> str:
        prompt = _MEAL_PLAN_PROMPT_TEMPLATE.format(
            meals_per_day=meals_per_day,
            cuisines=", ".join(cuisines) if cuisines else "any",
            dietary_restrictions=", ".join(dietary_restrictions) if dietary_restrictions else "none",
            calories=f"{calories_per_day:g}" if calories_per_day else "not specified",
        )
        return self.invoke_model(prompt, system_prompt=_MEAL_PLAN_SYSTEM_PROMPT)

    def suggest_substitutions(self, ingredient: str, dietary_restriction: typing.Optional[str] = None) -> str:
        prompt = f'Suggest substitutions for "{ingredient}"'
        if dietary_restriction:
            prompt += f" for {dietary_restriction} diet"
        return self.invoke_model(prompt + ".", system_prompt=_SUBSTITUTIONS_SYSTEM_PROMPT)
