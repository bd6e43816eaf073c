import logging
from typing import Iterable, Optional

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class SuspiciousInputError(ValueError):
    pass


class InputValidator:
    """
    Screens free text before it is placed into a language-model prompt.

    Protection mechanisms:
    - Length limits per field type
    - Control character restrictions
    - Excessive formatting limits
    - Character composition checks
    """

    MAX_LENGTHS = {
        "message": 2000,
        "query": 500,
        "ingredient": 100,
        "dietary_restriction": 100,
        "preference": 200,
    }

    # Markdown headers let a user forge prompt sections
    MAX_MARKDOWN_HEADERS = 3

    MAX_CODE_BLOCKS = 2

    MAX_CONTROL_CHAR_PERCENTAGE = 5

    MAX_CONSECUTIVE_SPECIAL_CHARS = 10

    @classmethod
    def validate_chat_input(cls, message: str) -> None:
        """
        :raises SuspiciousInputError: If input validation fails
        """
        cls.validate_field(message, "message")

    @classmethod
    def validate_search_input(cls, query: str) -> None:
        cls.validate_field(query, "query")

    @classmethod
    def validate_ingredients(cls, ingredients: Iterable[str]) -> None:
        for ingredient in ingredients:
            cls.validate_field(ingredient, "ingredient")

    @classmethod
    def validate_substitution_input(cls, ingredient: str, dietary_restriction: Optional[str] = None) -> None:
        cls.validate_field(ingredient, "ingredient")
        if dietary_restriction:
            cls.validate_field(dietary_restriction, "dietary_restriction")

    @classmethod
    def validate_preferences(cls, values: Iterable[str]) -> None:
        for value in values:
            cls.validate_field(value, "preference")

    @classmethod
    def validate_field(cls, text: str, field_name: str) -> None:
        """
        Validate a single input field using objective criteria.

        :raises SuspiciousInputError: If input validation fails
        """
        if not isinstance(text, str):
            raise SuspiciousInputError(f"{field_name} must be a string")

        # 1. Length check
        max_length = cls.MAX_LENGTHS.get(field_name, 2000)
        if len(text) > max_length:
            _LOGGER.warning(f"Length violation: {field_name} is {len(text)} chars (max {max_length})")
            raise SuspiciousInputError(f"{field_name} exceeds maximum length of {max_length} characters")

        # Required-ness is the request model's job
        if not text:
            return

        # 2. Control character check
        control_chars = sum(1 for c in text if ord(c) < 32 and c not in "\n\r\t")
        if control_chars > 0:
            control_percentage = (control_chars / len(text)) * 100
            if control_percentage > cls.MAX_CONTROL_CHAR_PERCENTAGE:
                _LOGGER.warning(f"Excessive control characters in {field_name}: {control_percentage:.1f}%")
                raise SuspiciousInputError(f"{field_name} contains too many control characters")

        # 3. Excessive markdown headers (structure injection)
        header_count = text.count("###")
        if header_count > cls.MAX_MARKDOWN_HEADERS:
            _LOGGER.warning(f"Excessive headers in {field_name}: {header_count} (max {cls.MAX_MARKDOWN_HEADERS})")
            raise SuspiciousInputError(f"{field_name} contains too many section headers")

        # 4. Code fences (context escaping)
        code_block_count = text.count("```")
        if code_block_count > cls.MAX_CODE_BLOCKS:
            _LOGGER.warning(f"Excessive code blocks in {field_name}: {code_block_count} (max {cls.MAX_CODE_BLOCKS})")
            raise SuspiciousInputError(f"{field_name} contains too many code block markers")

        # 5. Consecutive special characters (obfuscation/injection attempts)
        max_consecutive = 0
        current_consecutive = 0
        for char in text:
            if not char.isalnum() and not char.isspace():
                current_consecutive += 1
                max_consecutive = max(max_consecutive, current_consecutive)
            else:
                current_consecutive = 0

        if max_consecutive > cls.MAX_CONSECUTIVE_SPECIAL_CHARS:
            _LOGGER.warning(f"Excessive consecutive special chars in {field_name}: {max_consecutive}")
            raise SuspiciousInputError(f"{field_name} contains unusual character sequences")

    @classmethod
    def sanitize_for_logging(cls, text: str, max_length: int = 100) -> str:
        """
        Sanitize text for safe logging (via truncation).
        """
        if len(text) > max_length:
            return text[:max_length] + "..."
        return text
