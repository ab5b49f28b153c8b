"""Main FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clinicbot import __version__
from clinicbot.api.endpoints import router
from clinicbot.services.gateway import close_message_gateway
from clinicbot.utils.logging import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    yield
    await close_message_gateway()


# Create FastAPI application
app = FastAPI(
    title="Clinic WhatsApp Assistant",
    description=(
        "A WhatsApp assistant for a medical clinic that answers patient messages "
        "with a tool-calling language model."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Webhook",
            "description": (
                "Inbound WATI events. New user messages are answered through the "
                "orchestration loop; echoes and status events are acknowledged and ignored."
            ),
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("clinicbot.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
