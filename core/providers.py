from __future__ import annotations

from fastapi import FastAPI, Request

from providers.factory import Providers, close_providers, get_providers


def providers_from_request(request: Request) -> Providers:
    """
    Canonical provider accessor for ALL routers.

    Providers are attached once during app startup as request.app.state.providers.
    """
    try:
        return request.app.state.providers
    except AttributeError as exc:
        raise RuntimeError("Providers not initialized on app.state (startup/lifespan not executed).") from exc


def init_providers(app: FastAPI) -> Providers:
    """
    Canonical provider initialization.
    Called once during app startup/lifespan. Attaches Providers onto app.state.
    """
    app.state.providers = get_providers()
    return app.state.providers


async def shutdown_providers(app: FastAPI) -> None:
    await close_providers()
    if hasattr(app.state, "providers"):
        del app.state.providers
