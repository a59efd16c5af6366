"""Shared API dependencies."""

from fastapi import Header, Request

from trade_signals.services.signal_service import SignalService


def get_signal_service(request: Request) -> SignalService:
    """The service built once in the app lifespan."""
    return request.app.state.signal_service


def get_owner_id(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity. Authentication happens upstream of this service."""
    return (x_user_id or "").strip() or "default-user"
