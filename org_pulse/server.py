"""
HTTP interface for Org Pulse.

POST /api/analyze accepts {"companies": [...], "token": "..."} and answers with
a server-sent event stream of progress, result, error and done events.

Run with: org-pulse serve (or uvicorn org_pulse.server:app)
"""

import asyncio
import json
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from org_pulse.batch import ProgressStream, analyze_companies
from org_pulse.core import default_since
from org_pulse.models import CompanyInput

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Org Pulse API",
    description="Most active repository and top contributor per GitHub organization",
    version="0.1.0",
)

# Running batches are kept referenced until they finish
_background_batches: set[asyncio.Task] = set()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=400)


def parse_analyze_request(body: Any) -> tuple[list[CompanyInput], str] | str:
    """
    Validate an analyze request body.

    Returns:
        (companies, token) on success, otherwise the validation error message.
    """
    if not isinstance(body, dict):
        return "Invalid JSON"

    token = body.get("token")
    if not token or not isinstance(token, str):
        return "GitHub token is required"

    companies = body.get("companies")
    if not isinstance(companies, list) or not companies:
        return "Companies array is required"

    if not all(isinstance(entry, dict) for entry in companies):
        return "Each company must be an object"

    return [CompanyInput.from_dict(entry) for entry in companies], token


def _finish_batch(task: asyncio.Task, stream: ProgressStream) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("Batch failed: %s", task.exception())
    stream.finish()


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.post("/api/analyze")
async def analyze(request: Request):
    try:
        body = json.loads(await request.body())
    except ValueError:
        return _bad_request("Invalid JSON")

    parsed = parse_analyze_request(body)
    if isinstance(parsed, str):
        return _bad_request(parsed)
    companies, token = parsed

    since = default_since()
    stream = ProgressStream()
    logger.info("Starting analysis of %d companies since %s", len(companies), since)

    # The batch outlives the response if the consumer disconnects
    task = asyncio.create_task(analyze_companies(token, companies, since, stream))
    _background_batches.add(task)
    task.add_done_callback(_background_batches.discard)
    task.add_done_callback(lambda done: _finish_batch(done, stream))

    return StreamingResponse(
        stream.sse(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
