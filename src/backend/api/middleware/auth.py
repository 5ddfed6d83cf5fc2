from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.dependencies import get_credential_verifier
from api.middleware.exception_handlers import AuthenticationError
from api.middleware.request_context import update_request_context
from core.constants import ERROR_NOT_AUTHENTICATED
from models.chat_models import CredentialVerifier, Identity
from models.error_models import ErrorCode

TOKEN_COOKIE = "token"

bearer_scheme = HTTPBearer(auto_error=False)


def extract_token(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str | None:
    """Bearer header first, then the ``token`` cookie."""
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(TOKEN_COOKIE) or None


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    verifier: Annotated[CredentialVerifier, Depends(get_credential_verifier)],
) -> Identity:
    """Authenticate incoming REST requests."""
    token = extract_token(request, credentials)
    if token is None:
        raise AuthenticationError(message=ERROR_NOT_AUTHENTICATED, code=ErrorCode.AUTH_REQUIRED)

    identity = await verifier.verify(token)
    update_request_context(user_id=identity.id)
    return identity


CurrentUser = Annotated[Identity, Depends(get_current_user)]
