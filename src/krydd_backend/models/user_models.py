import typing

import pydantic

from krydd_backend.utils.base_types import Cursor

USER_UPDATABLE_FIELDS: tuple[str, ...] = ("name",)

_EMAIL_ADAPTER = pydantic.TypeAdapter(pydantic.EmailStr)


class UserModel(pydantic.BaseModel):
    """
    A Krydd account, keyed by email address.
    """

    model_config = pydantic.ConfigDict(extra="ignore")

    email: pydantic.EmailStr = pydantic.Field(description="Natural key (SK = USER#email)")
    name: typing.Optional[str] = None


def normalize_email(email: str) -> typing.Optional[str]:
    """
    The form `UserModel.email` stores (domain lowercased), so a lookup by the address as the client
    wrote it finds the stored user. None if `email` is not a valid address.
    """
    try:
        return _EMAIL_ADAPTER.validate_python(email)
    except pydantic.ValidationError:
        return None


class UserPatchModel(pydantic.BaseModel):
    """Body of PUT /user/{email}. The email itself cannot be changed."""

    model_config = pydantic.ConfigDict(extra="forbid")

    name: typing.Optional[str] = None


class ListOfUsersResponseModel(pydantic.BaseModel):
    users: list[UserModel]
    cursor: typing.Optional[Cursor] = None


class UserListParamsModel(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(extra="forbid")

    limit: int = pydantic.Field(default=50, ge=1, le=100)
    cursor: typing.Optional[Cursor] = None
