"""FastAPI backend for the Kid Rewards household tracker.

Every route lives under ``/api`` and authenticates with a bearer token. The
role and ownership rules are enforced by :class:`kidrewards.service.RewardsService`;
this module only translates HTTP requests into service calls and domain errors
into status codes. Serve it with ``uvicorn --factory kidrewards.webapp:create_app``.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Security, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..balance import BalanceCalculator
from ..exceptions import (
    ConflictError,
    ForbiddenError,
    KidRewardsError,
    NotFoundError,
    TooManyAttemptsError,
    UnauthenticatedError,
    ValidationError,
)
from ..models import Principal
from ..ops import HealthMonitor, StructuredLogger
from ..persistence import create_db_and_tables, make_engine, open_session, seed_demo_data
from ..security import CredentialCodec, PasswordHasher
from ..service import RewardsService
from .config import Settings, load_settings
from .schemas import (
    CreateKidRequest,
    CreateRewardRequest,
    CreateTaskRequest,
    KidSessionRequest,
    ParentLoginRequest,
    UpdateKidRequest,
    balance_payload,
    credential_payload,
    kid_payload,
    kid_session_payload,
    receipt_payload,
    reward_payload,
    task_payload,
)

# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
_STATUS_BY_ERROR = (
    (TooManyAttemptsError, status.HTTP_429_TOO_MANY_REQUESTS),
    (UnauthenticatedError, status.HTTP_401_UNAUTHORIZED),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
)


def status_for_error(exc: KidRewardsError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _domain_error_handler(_request: Request, exc: KidRewardsError) -> JSONResponse:
    status_code = status_for_error(exc)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse({"error": exc.kind, "detail": str(exc)}, status_code=status_code, headers=headers)


def _request_validation_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        {"error": ValidationError.kind, "detail": jsonable_encoder(exc.errors())},
        status_code=status.HTTP_400_BAD_REQUEST,
    )


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
bearer_scheme = HTTPBearer(auto_error=False)


def get_service(request: Request) -> RewardsService:
    return request.app.state.service


def get_principal(
    service: RewardsService = Depends(get_service),
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> Principal:
    return service.authenticate(credentials.credentials if credentials else None)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
router = APIRouter(prefix="/api")


@router.get("/health")
def health(request: Request) -> dict:
    return request.app.state.health.status()


@router.post("/parent/login")
def parent_login(body: ParentLoginRequest, service: RewardsService = Depends(get_service)) -> dict:
    return credential_payload(service.login(body.username, body.password))


@router.post("/kid-session")
def kid_session(
    body: KidSessionRequest,
    service: RewardsService = Depends(get_service),
    principal: Principal = Depends(get_principal),
) -> dict:
    return kid_session_payload(service.mint_kid_session(principal, body.kid_id))


@router.get("/kids")
def list_kids(
    service: RewardsService = Depends(get_service),
    principal: Principal = Depends(get_principal),
) -> list:
    return [kid_payload(kid) for kid in service.list_kids(principal)]


@router.post("/kids", status_code=status.HTTP_201_CREATED)
def create_kid(
    body: CreateKidRequest,
    service: RewardsService = Depends(get_service),
    principal: Principal = Depends(get_principal),
) -> dict:
    return kid_payload(service.create_kid(principal, body.display_name))


@router.put("/kids/{kid_id}")
def rename_kid(
    kid_id: str,
    body: UpdateKidRequest,
    service: RewardsService = Depends(get_service),
    principal: Principal = Depends(get_principal),
) -> dict:
    return kid_payload(service.rename_kid(principal, kid_id, body.display_name))


@router.get("/tasks")
def list_tasks(
    kid_id: Optional[str] = Query(None, alias="kidId"),
    service: RewardsService = Depends(get_service),
    principal: Principal = Depends(get_principal),
) -> list:
    return [task_payload(task) for task in service.list_tasks(principal, kid_id)]


@router.post("/tasks", status_code=status.HTTP_201_CREATED)
def create_task(
    body: CreateTaskRequest,
    service: RewardsService = Depends(get_service),
    principal: Principal = Depends(get_principal),
) -> dict:
    task = service.create_task(principal, body.title, body.points, body.assigned_kid_id)
    return task_payload(task)


@router.put("/tasks/{task_id}/complete")
def complete_task(
    task_id: int,
    service: RewardsService = Depends(get_service),
    principal: Principal = Depends(get_principal),
) -> dict:
    return task_payload(service.complete_task(principal, task_id))


@router.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
def delete_task(
    task_id: int,
    service: RewardsService = Depends(get_service),
    principal: Principal = Depends(get_principal),
) -> Response:
    service.delete_task(principal, task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/points")
def get_points(
    kid_id: Optional[str] = Query(None, alias="kidId"),
    service: RewardsService = Depends(get_service),
    principal: Principal = Depends(get_principal),
) -> dict:
    return balance_payload(service.get_balance(principal, kid_id))


@router.get("/rewards")
def list_rewards(
    service: RewardsService = Depends(get_service),
    principal: Principal = Depends(get_principal),
) -> list:
    return [reward_payload(reward) for reward in service.list_rewards(principal)]


@router.post("/rewards", status_code=status.HTTP_201_CREATED)
def create_reward(
    body: CreateRewardRequest,
    service: RewardsService = Depends(get_service),
    principal: Principal = Depends(get_principal),
) -> dict:
    return reward_payload(service.create_reward(principal, body.name, body.cost))


@router.post("/rewards/{reward_id}/redeem")
def redeem_reward(
    reward_id: int,
    service: RewardsService = Depends(get_service),
    principal: Principal = Depends(get_principal),
) -> dict:
    return receipt_payload(service.redeem_reward(principal, reward_id))


# ---------------------------------------------------------------------------
# FastAPI application setup
# ---------------------------------------------------------------------------
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the API. Raises ``ConfigurationError`` when no signing secret is configured."""

    settings = settings or load_settings()
    engine = make_engine(settings.database_url)
    create_db_and_tables(engine)

    hasher = PasswordHasher()
    service = RewardsService(
        engine,
        CredentialCodec(settings.jwt_secret, ttl=settings.token_ttl),
        hasher=hasher,
        balances=BalanceCalculator(settings.balance_strategy),
        logger=StructuredLogger(path=settings.event_log_path),
    )
    if settings.seed_demo:
        with open_session(engine) as session:
            seed_demo_data(session, hasher=hasher, parent_password=settings.seed_parent_password)

    app = FastAPI(title="Kid Rewards")
    app.state.settings = settings
    app.state.engine = engine
    app.state.service = service
    app.state.health = HealthMonitor(engine)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(KidRewardsError, _domain_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.include_router(router)
    return app


__all__ = [
    "bearer_scheme",
    "create_app",
    "get_principal",
    "get_service",
    "router",
    "status_for_error",
]
