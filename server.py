from dotenv import load_dotenv
load_dotenv()  # Load .env file
import uuid
import logging
from datetime import date
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, HTTPException, Depends, UploadFile, File, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

# Meridian Imports
from meridian.config import get_settings
from meridian.core.db import (
    check_database,
    get_engine,
    get_session,
    init_db,
    list_environments,
    resolve_environment,
)
from meridian.core.models import Budget, Environment, FindingStatusEnum, Resource, SeverityEnum, Workload
from meridian.core.schemas import (
    AcknowledgeRequest,
    BudgetCreate,
    BudgetResponse,
    DriftFindingResponse,
    DriftScanRequest,
    DriftScanResponse,
    EnvironmentCreate,
    EnvironmentResponse,
    HealthCheckResponse,
    ResolveRequest,
    ResourceResponse,
    ServiceHealthResponse,
    StateImportRequest,
    StateImportResponse,
    WorkloadCreate,
    WorkloadResponse,
)
from meridian.drift import (
    DriftScanner,
    StateEntry,
    acknowledge_finding,
    list_findings,
    list_scans,
    load_terraform_state,
    record_actual_state,
    record_declared_state,
    resolve_finding,
    resource_type_from_address,
)
from meridian.health import compute_uptime, list_checks, run_sweep
from meridian.observability import (
    OperationContext,
    generate_correlation_id,
    log_exception,
    setup_logging_from_settings,
)
from meridian.overview import build_overview
from meridian.resilience import (
    DatabaseError,
    DriftScanError,
    InvalidInputError,
    MeridianError,
    NotFoundError,
    SpendImportError,
)
from meridian.spend import CostImporter, build_spend_summary

settings = get_settings()
logger = logging.getLogger("meridian.server")


# Initialize Database on Startup
@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging_from_settings(settings)
    if settings.AUTO_INIT_DB:
        # create_all is a no-op for tables that exist; Alembic owns real upgrades
        try:
            init_db(get_engine())
            logger.info("Database initialized")
        except Exception as e:
            log_exception(logger, "Database initialization failed. Ensure Postgres is running.", e)
    yield


app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)

# Initialize Limiter
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Enable CORS for the console
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(SlowAPIMiddleware)


@app.middleware("http")
async def correlation_middleware(request: Request, call_next):
    correlation_id = request.headers.get("X-Request-ID") or generate_correlation_id()
    with OperationContext(correlation_id=correlation_id):
        response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


# --- Error mapping ---

ERROR_STATUS = (
    (NotFoundError, 404),
    (InvalidInputError, 400),
    (SpendImportError, 400),
)


@app.exception_handler(MeridianError)
async def meridian_error_handler(request: Request, exc: MeridianError):
    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    if status_code >= 500:
        log_exception(logger, f"{type(exc).__name__} on {request.method} {request.url.path}", exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "error": type(exc).__name__})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    error_id = str(uuid.uuid4())
    # Internal details stay in the log, keyed by error_id
    log_exception(logger, f"Unhandled error [ID: {error_id}] on {request.method} {request.url.path}", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal server error. Error ID: {error_id}", "error_id": error_id},
    )


# --- Helper: Dependency for DB Session ---
def get_db():
    with get_session() as session:
        yield session


# --- Endpoints ---

@app.get("/api/health", response_model=ServiceHealthResponse)
def health_check(db=Depends(get_db)):
    try:
        database = check_database(db.connection())
        status = "ok"
    except DatabaseError as e:
        database = {"connected": False, "error": str(e)}
        status = "degraded"
    return ServiceHealthResponse(status=status, version=settings.APP_VERSION, database=database)


# Environments

@app.get("/api/environments", response_model=list[EnvironmentResponse])
def get_environments(include_inactive: bool = False, db=Depends(get_db)):
    return list_environments(db, include_inactive=include_inactive)


@app.post("/api/environments", response_model=EnvironmentResponse, status_code=201)
def create_environment(req: EnvironmentCreate, db=Depends(get_db)):
    if db.query(Environment).filter(Environment.name == req.name).first():
        raise InvalidInputError(f"Environment '{req.name}' already exists")

    env = Environment(
        name=req.name,
        description=req.description,
        provider=req.provider,
        currency=req.currency or settings.DEFAULT_CURRENCY,
        settings=req.settings,
        is_active=True,
    )
    db.add(env)
    db.flush()
    db.refresh(env)
    logger.info(f"Created environment {env.name}")
    return env


@app.get("/api/environments/{env_id}/overview")
def get_overview(env_id: str, as_of: date | None = None, db=Depends(get_db)):
    return build_overview(db, env_id, as_of)


# Resources / state

@app.get("/api/environments/{env_id}/resources", response_model=list[ResourceResponse])
def get_resources(env_id: str, resource_type: str | None = None, include_inactive: bool = False, db=Depends(get_db)):
    env = resolve_environment(db, env_id)
    query = db.query(Resource).filter(Resource.environment_id == env.id)
    if not include_inactive:
        query = query.filter(Resource.is_active.is_(True))
    if resource_type:
        query = query.filter(Resource.resource_type == resource_type)
    return query.order_by(Resource.address).all()


def _entries(req: StateImportRequest) -> list[StateEntry]:
    if req.terraform_state is not None:
        return load_terraform_state(req.terraform_state)
    return [
        StateEntry(
            address=r.address,
            resource_type=r.type or resource_type_from_address(r.address),
            name=r.name,
            provider=r.provider,
            region=r.region or r.attributes.get("region"),
            attributes=r.attributes,
        )
        for r in req.resources
    ]


@app.put("/api/environments/{env_id}/resources/declared", response_model=StateImportResponse)
def put_declared_state(env_id: str, req: StateImportRequest, db=Depends(get_db)):
    env = resolve_environment(db, env_id)
    counts = record_declared_state(db, env, _entries(req), complete=req.complete)
    return StateImportResponse(environment_id=env.id, counts=counts)


@app.put("/api/environments/{env_id}/resources/actual", response_model=StateImportResponse)
def put_actual_state(env_id: str, req: StateImportRequest, db=Depends(get_db)):
    if req.terraform_state is not None:
        raise InvalidInputError("Actual state must be sent as 'resources', not a Terraform state")
    env = resolve_environment(db, env_id)
    counts = record_actual_state(db, env, _entries(req), complete=req.complete)
    return StateImportResponse(environment_id=env.id, counts=counts)


# Drift

@app.post("/api/environments/{env_id}/drift/scans", status_code=201)
@limiter.limit("10/minute")
def run_drift_scan(request: Request, env_id: str, req: DriftScanRequest | None = None, db=Depends(get_db)):
    scanner = DriftScanner(db)
    try:
        result = scanner.scan_environment(env_id, triggered_by=req.triggered_by if req else "api")
    except DriftScanError:
        # keep the failed scan row
        db.commit()
        raise
    return result.to_dict()


@app.get("/api/environments/{env_id}/drift/scans", response_model=list[DriftScanResponse])
def get_drift_scans(env_id: str, limit: int = 20, db=Depends(get_db)):
    env = resolve_environment(db, env_id)
    return list_scans(db, env.id, limit=min(limit, 200))


@app.get("/api/environments/{env_id}/drift/findings", response_model=list[DriftFindingResponse])
def get_drift_findings(
    env_id: str,
    status: FindingStatusEnum | None = None,
    severity: SeverityEnum | None = None,
    limit: int = 500,
    db=Depends(get_db),
):
    env = resolve_environment(db, env_id)
    return list_findings(db, env.id, status=status, severity=severity, limit=min(limit, 1000))


@app.post("/api/drift/findings/{finding_id}/acknowledge", response_model=DriftFindingResponse)
def post_acknowledge(finding_id: str, req: AcknowledgeRequest | None = None, db=Depends(get_db)):
    req = req or AcknowledgeRequest()
    return acknowledge_finding(db, finding_id, acknowledged_by=req.acknowledged_by, note=req.note)


@app.post("/api/drift/findings/{finding_id}/resolve", response_model=DriftFindingResponse)
def post_resolve(finding_id: str, req: ResolveRequest | None = None, db=Depends(get_db)):
    return resolve_finding(db, finding_id, note=req.note if req else None)


# Spend

@app.post("/api/environments/{env_id}/costs/import")
@limiter.limit("10/minute")
def import_costs(request: Request, env_id: str, file: UploadFile = File(...), db=Depends(get_db)):
    content = file.file.read()
    if not content:
        raise InvalidInputError("Uploaded file is empty")
    result = CostImporter(db).import_csv(env_id, content, source_name=file.filename or "upload.csv")
    return result.to_dict()


@app.get("/api/environments/{env_id}/spend/summary")
def get_spend_summary(env_id: str, as_of: date | None = None, db=Depends(get_db)):
    return build_spend_summary(db, env_id, as_of).to_dict()


@app.get("/api/environments/{env_id}/budgets", response_model=list[BudgetResponse])
def get_budgets(env_id: str, db=Depends(get_db)):
    env = resolve_environment(db, env_id)
    return db.query(Budget).filter(Budget.environment_id == env.id).order_by(Budget.name).all()


@app.post("/api/environments/{env_id}/budgets", response_model=BudgetResponse, status_code=201)
def create_budget(env_id: str, req: BudgetCreate, db=Depends(get_db)):
    env = resolve_environment(db, env_id)
    if db.query(Budget).filter(Budget.environment_id == env.id, Budget.name == req.name).first():
        raise InvalidInputError(f"Budget '{req.name}' already exists")

    budget = Budget(
        environment_id=env.id,
        name=req.name,
        service=req.service,
        monthly_amount=req.monthly_amount,
        currency=req.currency or env.currency,
        warning_threshold=req.warning_threshold or settings.BUDGET_WARNING_THRESHOLD,
        is_active=True,
    )
    db.add(budget)
    db.flush()
    db.refresh(budget)
    return budget


# Workloads / health

@app.get("/api/environments/{env_id}/workloads", response_model=list[WorkloadResponse])
def get_workloads(env_id: str, db=Depends(get_db)):
    env = resolve_environment(db, env_id)
    return (
        db.query(Workload)
        .filter(Workload.environment_id == env.id)
        .order_by(Workload.namespace, Workload.name)
        .all()
    )


@app.post("/api/environments/{env_id}/workloads", response_model=WorkloadResponse, status_code=201)
def create_workload(env_id: str, req: WorkloadCreate, db=Depends(get_db)):
    env = resolve_environment(db, env_id)
    exists = (
        db.query(Workload)
        .filter(Workload.environment_id == env.id, Workload.namespace == req.namespace, Workload.name == req.name)
        .first()
    )
    if exists:
        raise InvalidInputError(f"Workload '{req.namespace}/{req.name}' already exists")

    workload = Workload(environment_id=env.id, **req.model_dump())
    db.add(workload)
    db.flush()
    db.refresh(workload)
    return workload


@app.post("/api/environments/{env_id}/health/sweeps")
@limiter.limit("10/minute")
def run_health_sweep(request: Request, env_id: str, db=Depends(get_db)):
    # Sync endpoint: the sweep runs its own event loop on the threadpool thread
    result = run_sweep(db, env_id, triggered_by="api")
    return result.to_dict()


@app.get("/api/workloads/{workload_id}/checks", response_model=list[HealthCheckResponse])
def get_workload_checks(workload_id: str, limit: int = 100, db=Depends(get_db)):
    return list_checks(db, workload_id, limit=min(limit, 1000))


@app.get("/api/workloads/{workload_id}/uptime")
def get_workload_uptime(workload_id: str, window_hours: int = 24, db=Depends(get_db)):
    if window_hours <= 0:
        raise HTTPException(status_code=400, detail="window_hours must be positive")
    list_checks(db, workload_id, limit=1)  # 404 for unknown workloads
    return {
        "workload_id": workload_id,
        "window_hours": window_hours,
        "uptime_percent": compute_uptime(db, workload_id, window_hours),
    }


if __name__ == "__main__":
    uvicorn.run("server:app", host="0.0.0.0", port=settings.PORT, reload=True)
