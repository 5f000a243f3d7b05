"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (LLM client, Twilio client)
- Register routes
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from openai import AsyncOpenAI

from config import AppConfig
from observability.logger import log_event
from server.routes import register_routes
from services.telephony import TwilioTelephony


def create_app(config: AppConfig | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations
    - ASGI server compatibility

    Raises:
        ConfigError if a selected provider has no credentials.
    """
    if config is None:
        config = AppConfig.load_from_env()
    config.validate()

    app = FastAPI(title="Call Orchestrator API")

    app.state.config = config

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Shared clients, created ONCE per process
    app.state.llm_client = build_llm_client(config=config)
    app.state.telephony = TwilioTelephony(config=config)

    # Routes
    register_routes(app)

    log_event({
        "event_type": "APP_CREATED",
        "env": config.env,
        "llm_provider": config.llm_provider,
        "tts_provider": config.tts_provider,
    })

    return app


def build_llm_client(config: AppConfig) -> AsyncOpenAI:
    """Build an LLM client with the provider selected by environment variables."""
    if config.llm_provider.lower() == "groq":
        return AsyncOpenAI(
            api_key=config.groq_api_key,
            base_url="https://api.groq.com/openai/v1",
        )

    return AsyncOpenAI(api_key=config.openai_api_key)
