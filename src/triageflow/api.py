"""Summary: FastAPI application for TriageFlow.

Importance: Exposes HTTP endpoints for triggering and monitoring mailbox sorts.
Alternatives: Use a CLI-only workflow or a different web framework.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Callable

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel, Field

from triageflow.app import AppContext, build_context
from triageflow.config import AppConfig
from triageflow.errors import (
    AccountNotFound,
    JobAlreadyRunning,
    MessageNotFound,
    NotEntitled,
    ReauthenticationRequired,
)
from triageflow.oauth import build_google_auth_url, create_state_token
from triageflow.ratelimit import RATE_LIMIT_CONFIGS


logger = logging.getLogger(__name__)


class ResetRequest(BaseModel):
    """Summary: Request payload for resetting a sort job.

    Importance: Makes the destructive purge option explicit.
    Alternatives: Use a separate purge endpoint.
    """

    purge: bool = False


class FeedbackRequest(BaseModel):
    """Summary: Request payload for a classification correction.

    Importance: Identifies messages by their remote id, which clients already hold.
    Alternatives: Accept local database ids.
    """

    message_id: str = Field(min_length=1)
    category: str
    comment: str | None = Field(default=None, max_length=500)


def create_app(config: AppConfig, context: AppContext | None = None) -> FastAPI:
    """Summary: Create a FastAPI app wired to TriageFlow services.

    Importance: Ensures the API layer shares the same configuration and storage.
    Alternatives: Instantiate services globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    app = FastAPI(title="TriageFlow API", version="0.1.0")
    context = context or build_context(config)
    sorting = context.sorting

    @app.middleware("http")
    async def rate_limit_headers(request: Request, call_next: Callable[[Request], Any]) -> Any:
        response = await call_next(request)
        result = getattr(request.state, "rate_limit", None)
        if result is not None:
            for name, value in result.headers().items():
                response.headers.setdefault(name, value)
        return response

    def rate_limited(name: str) -> Callable[[Request], None]:
        """Summary: Build a dependency that charges a request to a route budget.

        Importance: Rejected requests get a 429 with retry guidance.
        Alternatives: Apply one global limit in middleware.
        """

        limit_config = RATE_LIMIT_CONFIGS[name]

        def dependency(request: Request) -> None:
            client_key = request.client.host if request.client else "unknown"
            result = context.rate_limiter.allow(client_key, limit_config)
            request.state.rate_limit = result
            if not result.allowed:
                raise HTTPException(
                    status_code=429,
                    detail=f"Rate limit exceeded. Try again in {result.retry_after_seconds} seconds",
                    headers=result.headers(),
                )

        return dependency

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        """Summary: Enforce API key authentication when configured.

        Importance: Adds a minimal security layer for local and private deployments.
        Alternatives: Use OAuth or session-based authentication.
        """

        if not config.api_key:
            return
        if x_api_key is None or not secrets.compare_digest(x_api_key, config.api_key):
            raise HTTPException(status_code=401, detail="Invalid API key")

    def require_cron_secret(authorization: str | None = Header(default=None)) -> None:
        """Summary: Enforce the bearer secret on the scheduled processing route.

        Importance: Only the scheduler may trigger runs across every account.
        Alternatives: Restrict the route by source IP.
        """

        if not config.cron_secret:
            raise HTTPException(status_code=503, detail="Scheduled processing is not configured")
        expected = f"Bearer {config.cron_secret}"
        if authorization is None or not secrets.compare_digest(authorization, expected):
            raise HTTPException(status_code=401, detail="Unauthorized")

    @app.get("/health")
    def health() -> dict[str, str]:
        """Summary: Health check endpoint.

        Importance: Supports uptime checks in local and cloud deployments.
        Alternatives: Use a metrics endpoint only.
        """

        return {"status": "ok"}

    @app.get(
        "/oauth/google/start",
        dependencies=[Depends(require_api_key), Depends(rate_limited("auth"))],
    )
    def oauth_google_start(redirect_uri: str) -> dict[str, str]:
        """Summary: Start a Google OAuth flow for connecting a mailbox.

        Importance: Requests offline access so the pipeline receives a refresh token.
        Alternatives: Use a hosted auth provider for account linking.
        """

        if not config.google_client_id:
            raise HTTPException(status_code=400, detail="Google OAuth is not configured")
        state = create_state_token()
        return {"url": build_google_auth_url(config, redirect_uri, state), "state": state}

    @app.post(
        "/accounts/{account_id}/sort-all",
        status_code=202,
        dependencies=[Depends(require_api_key), Depends(rate_limited("sort"))],
    )
    def start_sort(account_id: int, background_tasks: BackgroundTasks) -> dict[str, Any]:
        """Summary: Start a full mailbox sort in the background.

        Importance: Returns immediately; clients poll progress with GET.
        Alternatives: Block until the sort finishes.
        """

        try:
            job = sorting.trigger_bulk(account_id)
        except AccountNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except NotEntitled as exc:
            raise HTTPException(status_code=403, detail=str(exc)) from exc
        except JobAlreadyRunning as exc:
            raise HTTPException(
                status_code=409,
                detail={"message": str(exc), "job": sorting.get_progress(account_id).to_dict()},
            ) from exc
        background_tasks.add_task(sorting.orchestrator.run_bulk, account_id, job)
        return {"started": True, "job": job.to_dict()}

    @app.get(
        "/accounts/{account_id}/sort-all",
        dependencies=[Depends(require_api_key), Depends(rate_limited("api"))],
    )
    def sort_progress(account_id: int) -> dict[str, Any]:
        try:
            job = sorting.get_progress(account_id)
        except AccountNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return {"job": job.to_dict()}

    @app.post(
        "/accounts/{account_id}/sort-all/reset",
        dependencies=[Depends(require_api_key), Depends(rate_limited("api"))],
    )
    def reset_sort(account_id: int, payload: ResetRequest) -> dict[str, Any]:
        try:
            job = sorting.reset(account_id, purge=payload.purge)
        except AccountNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return {"job": job.to_dict(), "purged": payload.purge}

    @app.post(
        "/accounts/{account_id}/relabel",
        dependencies=[Depends(require_api_key), Depends(rate_limited("api"))],
    )
    async def relabel(account_id: int) -> dict[str, Any]:
        """Summary: Apply missing labels to already classified messages.

        Importance: Repairs labelling gaps without another classification pass.
        Alternatives: Require a purge and full re-sort.
        """

        try:
            summary = await sorting.relabel(account_id)
        except AccountNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except ReauthenticationRequired as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc
        return summary.to_dict()

    @app.post(
        "/accounts/{account_id}/feedback",
        dependencies=[Depends(require_api_key), Depends(rate_limited("feedback"))],
    )
    def feedback(account_id: int, payload: FeedbackRequest) -> dict[str, Any]:
        try:
            return sorting.apply_feedback(account_id, payload.message_id, payload.category, payload.comment)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except (AccountNotFound, MessageNotFound) as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.post(
        "/process",
        dependencies=[Depends(require_cron_secret), Depends(rate_limited("process"))],
    )
    async def process() -> dict[str, Any]:
        """Summary: Run the scheduled incremental sort for all eligible accounts.

        Importance: Keeps connected mailboxes sorted between bulk runs.
        Alternatives: Run the CLI process command from cron.
        """

        results = await sorting.process_all()
        return {"accounts": len(results), "results": results}

    return app


app = create_app(AppConfig.from_env())
