#!/usr/bin/env python3
"""
Help Scout Search Web Application
FastAPI server exposing the search tools over HTTP
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from helpscout_search.client import HelpScoutClient
from helpscout_search.config import Settings, configure_logging
from helpscout_search.errors import ApiError, error_payload
from helpscout_search.schemas import parse_tool_request, tool_catalog
from helpscout_search.search_service import SearchService
from helpscout_search.session import SessionContext


# Load settings (.env included) and configure logging
settings = Settings.from_env()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

logger.info(f"Starting Help Scout Search with log level: {settings.log_level}")

app = FastAPI(title="Help Scout Search", description="Search and read Help Scout conversations")

# Global state, created on first use so the app imports without credentials
search_service: Optional[SearchService] = None


def get_search_service() -> SearchService:
    global search_service
    if search_service is None:
        settings.validate()
        search_service = SearchService(HelpScoutClient(settings), settings)
    return search_service


# Request/Response models
class ToolCallRequest(BaseModel):
    arguments: Dict[str, Any] = Field(default_factory=dict)
    session: Dict[str, Any] = Field(default_factory=dict)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, error: ApiError):
    logger.warning(f"{request.url.path} failed: {error.code.value} - {error.message}")
    return JSONResponse(status_code=error.http_status, content=error_payload(error))


@app.exception_handler(Exception)
async def unclassified_error_handler(request: Request, error: Exception):
    logger.error(f"Unexpected error on {request.url.path}: {error}", exc_info=error)
    return JSONResponse(status_code=500, content=error_payload(error))


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


@app.get("/tools")
def list_tools():
    """Describe every available tool and its arguments"""
    return {"tools": tool_catalog()}


@app.post("/tools/{tool_name}")
async def call_tool(
    tool_name: str,
    body: ToolCallRequest,
    service: SearchService = Depends(get_search_service)
):
    """Validate the arguments and run one tool"""
    logger.info(f"Tool call: {tool_name}")

    tool_request = parse_tool_request(tool_name, body.arguments)
    session = SessionContext.from_dict(body.session)

    result, session = await service.call_tool(tool_request, session)
    return {"result": result, "session": session.to_dict()}


# To run this application, use:
# uvicorn helpscout_search.main:app --reload
