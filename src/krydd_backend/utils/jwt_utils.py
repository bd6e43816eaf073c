import logging
import typing

import jwt

from krydd_backend.dynamodb.secrets_table import SecretsTable

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

JWT_ALGORITHM = "HS256"


class JwtWrapper:
    def verify_token(self, token: str, secrets_table: SecretsTable) -> typing.Optional[dict[str, typing.Any]]:
        """
        :return: the token's claims, or None if it is expired, tampered with, or cannot be checked.
        """
        try:
            jwt_secret = secrets_table.get_jwt_secret_key()
            return jwt.decode(token, jwt_secret, algorithms=[JWT_ALGORITHM])
        except jwt.PyJWTError as e:
            _LOGGER.info(f"Rejected bearer token: {e}")
            return None
        except KeyError:
            _LOGGER.error("JWT secret unavailable, rejecting token.", exc_info=True)
            return None
