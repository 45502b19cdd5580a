"""Auth dependency: request headers -> SecurityContext."""

from typing import Annotated

from fastapi import Depends, Request

from backend.app.auth.credentials import verify_credentials
from backend.app.auth.identity import resolve_identity
from backend.app.auth.tokens import TokenService
from backend.app.db.context import SecurityContext
from backend.app.db.engine import get_store
from backend.app.db.repositories import Store


def get_token_service(request: Request) -> TokenService:
    """FastAPI dependency returning the application's token service."""
    return request.app.state.token_service  # type: ignore[no-any-return]


async def get_current_context(
    request: Request,
    store: Annotated[Store, Depends(get_store)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
) -> SecurityContext:
    """Authenticate the request and resolve its security context.

    Args:
        request: Incoming request (headers are read case-insensitively)
        store: Application store
        tokens: Token service for bearer tokens

    Returns:
        SecurityContext for the caller

    Raises:
        Unauthenticated: Missing or invalid credential
        AccountDisabled: Inactive user or organization
    """
    credential = await verify_credentials(request.headers, tokens, store)
    ctx = await resolve_identity(credential, store)
    request.state.security_context = ctx
    return ctx


CurrentContext = Annotated[SecurityContext, Depends(get_current_context)]
StoreDep = Annotated[Store, Depends(get_store)]
