"""Request dependencies for FastAPI.

Provides a database session and the long-lived collaborators created at
startup (settings, provider clients, the status source) to route handlers.

Transaction boundaries are managed here:
- Session is created at request start
- On success (no exception): session is committed automatically
- On exception: session is rolled back automatically
- Session is closed after request completes
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Annotated, Any

from fastapi import Depends, Request
from sqlalchemy.orm import Session, sessionmaker

from appwrap.builds.status import StatusSource
from appwrap.config import Settings, get_settings
from appwrap.eas.client import EasClient
from appwrap.push.service import PushClient


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

    Yields:
        Database session.
    """
    session = session_factory()
    try:
        yield session
        # Commit on success - only reached if no exception was raised
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_settings_dep(request: Request) -> Settings:
    """Get the settings the application was started with."""
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        settings = get_settings()
    return settings  # type: ignore[no-any-return]


def get_eas_client(request: Request) -> EasClient | None:
    """Get the EAS client, or None when credentials are not configured."""
    return getattr(request.app.state, "eas_client", None)


def get_push_client(request: Request) -> PushClient:
    """Get the push relay client."""
    client: Any = request.app.state.push_client
    return client  # type: ignore[no-any-return]


def get_status_source(request: Request) -> StatusSource:
    """Get the status source selected at startup."""
    source: Any = request.app.state.status_source
    return source  # type: ignore[no-any-return]


# Type aliases for dependencies
DbSession = Annotated[Session, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings_dep)]
Eas = Annotated[EasClient | None, Depends(get_eas_client)]
Push = Annotated[PushClient, Depends(get_push_client)]
Status = Annotated[StatusSource, Depends(get_status_source)]
