"""Request dependencies for FastAPI.

Provides a database session and the loaded runtime context to route
handlers via FastAPI dependency injection.

Transaction boundaries are managed here:
- Session is created at request start
- On success (no exception): session is committed automatically
- On exception: session is rolled back automatically
- Session is closed after request completes
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session, sessionmaker

from meshforge.builds.artifacts import UrlSigner
from meshforge.context import RuntimeContext


def get_session_factory(request: Request) -> sessionmaker[Session]:
    """Get session factory from app state.

    Args:
        request: FastAPI request object.

    Returns:
        SQLAlchemy session factory.
    """
    factory: Any = request.app.state.session_factory
    return factory  # type: ignore[no-any-return]


def get_db(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> Generator[Session, None, None]:
    """Provide a database session for a request.

    Commits on successful completion, rolls back on any exception and
    closes the session after the request completes.

    Yields:
        Database session.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_context(request: Request) -> RuntimeContext:
    """Get the loaded registries and collaborators from app state."""
    context: RuntimeContext = request.app.state.context
    return context


def get_signer(context: RuntimeContext = Depends(get_context)) -> UrlSigner:
    """Get the download URL signer.

    Raises:
        HTTPException: 503 if no signing key is configured.
    """
    if context.signer is None:
        raise HTTPException(
            status_code=503,
            detail={
                "code": "signing_not_configured",
                "message": "Download URL signing is not configured",
            },
        )
    return context.signer
