import typing


class ModelToolCall(typing.NamedTuple):
    toolUseId: str
    name: str
    input: dict[str, typing.Any]


class ModelResponse(typing.NamedTuple):
    text: str
    tool_calls: list[ModelToolCall]
