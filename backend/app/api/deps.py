"""FastAPI dependency injection — session registry, wallet and session lookup."""
from fastapi import Depends, HTTPException, status

from app.services.session_store import ProjectSession, SessionRegistry
from app.services.wallet_service import InMemoryKeyValueStore, WalletService

_registry = SessionRegistry()
_wallet = WalletService(InMemoryKeyValueStore())


def get_registry() -> SessionRegistry:
    return _registry


def get_wallet() -> WalletService:
    return _wallet


def get_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> ProjectSession:
    session = registry.get(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session {session_id} not found")
    return session


def require_unlocked(session: ProjectSession = Depends(get_session)) -> ProjectSession:
    """Exports are only available once the project has been unlocked with a credit."""
    if not session.is_paid:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail="Project is locked. Unlock it with a credit to export.",
        )
    return session
