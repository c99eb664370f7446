"""Try-it-out endpoint: explain a pasted diff without a GitHub installation."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from webhook_api.dependencies import OrchestratorDep
from webhook_api.schemas import CommentResponse, DiffSubmission, MessageResponse

router = APIRouter(prefix="/playground", tags=["playground"])


@router.post("/explain", response_model=CommentResponse, responses={400: {"model": MessageResponse}})
async def explain_diff(request: Request, orchestrator: OrchestratorDep) -> JSONResponse:
    """Summarize a raw diff and return the comment text.

    No quota is enforced and nothing is posted to GitHub.  Malformed
    bodies are answered with 400.
    """
    try:
        submission = DiffSubmission.model_validate(await request.json())
    except (ValueError, ValidationError):
        return JSONResponse(status_code=400, content={"message": "Request body must be {\"diff_body\": string}."})

    outcome = await orchestrator.handle_raw_diff(submission.diff_body)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
