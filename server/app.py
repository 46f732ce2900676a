"""FastAPI application for agent composition and dispatch."""

import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agentboard.utils.logging import setup_logging
from server.agent_db import db_path
from server.agent_routes import router as agent_router
from server.db import init_all
from server.dispatch_routes import router as dispatch_router

load_dotenv()  # load environment variables from .env file

# CORS origins - configurable via environment variable
# Use comma-separated values for multiple origins, or "*" for all (development only)
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and initialize database tables on startup."""
    setup_logging(os.getenv("AGENTBOARD_LOG_LEVEL", "INFO"), os.getenv("AGENTBOARD_LOG_FILE"))
    init_all()
    yield


app = FastAPI(
    title="Agentboard API",
    description="API server for agent definitions, composition plans and dispatch",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# include routes
app.include_router(agent_router, prefix="/api")
app.include_router(dispatch_router, prefix="/api")


@app.get("/")
def root():
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": "0.1.0",
        "agent_db": str(db_path()),
        "endpoints": {
            "agents": "/api/agents",
            "plan": "/api/agents/{agent_id}/plan",
            "dispatch": "/api/agents/{agent_id}/dispatch",
            "chat": "/api/agent",
        },
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
