from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sessionguard import __version__
from sessionguard.core.auth.authenticator import Authenticator
from sessionguard.core.auth.outcomes import AuthOutcome, OutcomeKind
from sessionguard.core.errors import NotFoundError, SessionGuardError
from sessionguard.core.sessions.models import ClientInfo
from sessionguard.web.models import (
    ConflictPolicyRequest,
    ConflictPolicyResponse,
    CountResponse,
    LoginRequest,
    ResolveRequest,
    SessionListResponse,
)


_STATUS_BY_KIND: Dict[OutcomeKind, int] = {
    OutcomeKind.success: 200,
    OutcomeKind.invalid_credential: 401,
    OutcomeKind.locked_out: 423,
    OutcomeKind.conflict_prevented: 409,
    OutcomeKind.conflict_pending_choice: 409,
    OutcomeKind.limit_reached: 429,
    OutcomeKind.user_cancelled: 200,
    OutcomeKind.no_pending_conflict: 200,
    OutcomeKind.store_unavailable: 503,
}

_STATUS_BY_CODE: Dict[str, int] = {
    "validation_error": 400,
    "not_found": 404,
    "config_error": 500,
}


def _outcome_response(out: AuthOutcome) -> JSONResponse:
    return JSONResponse(status_code=_STATUS_BY_KIND.get(out.kind, 500), content=out.model_dump(mode="json"))


def create_app(authenticator: Authenticator, *, logger=None, sweeper=None, event_bus=None) -> FastAPI:
    """
    HTTP surface over one Authenticator. The calling client is named by
    the X-Client-Id header; each client id has its own current-session
    pointer.
    """
    app = FastAPI(title="sessionguard", version=__version__)

    @app.exception_handler(SessionGuardError)
    async def sessionguard_error_handler(request: Request, exc: SessionGuardError):
        if logger:
            logger.warning("web %s %s -> %s", request.method, request.url.path, exc.code)
        return JSONResponse(status_code=_STATUS_BY_CODE.get(exc.code, 500), content={"detail": exc.user_message, "code": exc.code})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": "Invalid request.", "code": "validation_error"})

    @app.get("/health")
    async def health():
        out: Dict[str, Any] = {"status": "ok", "version": __version__}
        if sweeper is not None:
            out["sweeper_running"] = bool(sweeper.is_running())
        if event_bus is not None:
            out["events"] = event_bus.get_stats()
        return out

    # ---- auth ----
    @app.post("/v1/auth/login")
    def login(req: LoginRequest, request: Request, x_client_id: str = Header(default="default")):
        desc = req.client
        client = ClientInfo(
            client_id=x_client_id,
            user_agent=(desc.user_agent if desc and desc.user_agent else request.headers.get("user-agent", "")),
            platform=(desc.platform if desc and desc.platform else ""),
            language=(desc.language if desc and desc.language else ""),
        )
        return _outcome_response(authenticator.authenticate(req.name, req.secret, req.duration_profile, client))

    @app.post("/v1/auth/resolve")
    def resolve(req: ResolveRequest):
        return _outcome_response(authenticator.resolve_pending_conflict(req.action))

    @app.post("/v1/auth/logout")
    def logout(x_client_id: str = Header(default="default")):
        return {"logged_out": authenticator.logout(x_client_id)}

    # ---- sessions ----
    @app.get("/v1/sessions", response_model=SessionListResponse)
    def list_sessions(x_client_id: str = Header(default="default")):
        return {"sessions": [v.model_dump(mode="json") for v in authenticator.list_sessions(x_client_id)]}

    @app.get("/v1/sessions/current")
    def current_session(x_client_id: str = Header(default="default")):
        s = authenticator.current_session(x_client_id)
        return {"session": s.model_dump(mode="json") if s is not None else None}

    @app.post("/v1/sessions/{session_id}/switch")
    def switch_session(session_id: str, x_client_id: str = Header(default="default")):
        s = authenticator.switch_session(session_id, x_client_id)
        if s is None:
            raise NotFoundError("Session not found or expired.", session_id=session_id)
        return {"session": s.model_dump(mode="json")}

    @app.delete("/v1/sessions/{session_id}")
    def terminate_session(session_id: str):
        return {"removed": authenticator.terminate_session(session_id)}

    @app.delete("/v1/identities/{name}/sessions", response_model=CountResponse)
    def terminate_identity_sessions(name: str):
        return {"count": authenticator.terminate_all_for(name)}

    # ---- admin ----
    @app.get("/v1/admin/conflict-policy", response_model=ConflictPolicyResponse)
    def get_conflict_policy():
        return {"policy": authenticator.get_conflict_policy()}

    @app.put("/v1/admin/conflict-policy", response_model=ConflictPolicyResponse)
    def put_conflict_policy(req: ConflictPolicyRequest):
        return {"policy": authenticator.set_conflict_policy(req.policy)}

    @app.post("/v1/admin/lockouts/{name}/unlock")
    def unlock(name: str):
        return {"identity": name, "was_locked": authenticator.unlock(name)}

    @app.get("/v1/admin/stats")
    def stats():
        out = authenticator.stats()
        try:
            out["shared"] = authenticator.limiter.usage_all()
        except NotFoundError:
            out["shared"] = {}
        return out

    @app.post("/v1/admin/conflicts/force-logout-duplicates", response_model=CountResponse)
    def force_logout_duplicates():
        return {"count": authenticator.conflict.force_logout_duplicates()}

    @app.delete("/v1/admin/shared/{name}/sessions", response_model=CountResponse)
    def terminate_shared_sessions(name: str):
        return {"count": authenticator.limiter.terminate_sessions(name)}

    return app
