"""Servicio FastAPI: datos de "call summary" (PostgreSQL) y registro/login de usuarios (MongoDB)."""

import time
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

from summary_service import auth, schemas
from summary_service.config import Settings, configure_logging, get_settings
from summary_service.db import CallSummaryReader
from summary_service.errors import InvalidCredentialsError, ServiceError
from summary_service.mongo_db import MongoCredentialStore

logger = logging.getLogger(__name__)

# --- Métricas Prometheus ---
REQUEST_COUNT = Counter(
    "summary_requests_total",
    "Total requests processed by Call Summary Service",
    ["method", "endpoint", "status_code"]
)
REQUEST_LATENCY = Histogram(
    "summary_request_latency_seconds",
    "Request latency in seconds for Call Summary Service",
    ["endpoint"]
)
REGISTRATION_COUNT = Counter("summary_registrations_total", "Número total de usuarios registrados")
LOGIN_FAILURE_COUNT = Counter("summary_login_failures_total", "Número total de logins rechazados")

ENDPOINTS = ["/api/data", "/api/login", "/api/users", "/health", "/metrics"]


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


class RequestTimeoutMiddleware:
    """
    Middleware ASGI que corta la petición tras `timeout` segundos y responde 504.

    Se ejecuta en la misma tarea que la ruta, así que la cancelación llega
    hasta la llamada a la base de datos que esté en curso.
    """

    def __init__(self, app, timeout: float):
        self.app = app
        self.timeout = timeout

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message):
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await asyncio.wait_for(self.app(scope, receive, send_wrapper), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Request timed out after {self.timeout}s: {scope['method']} {scope['path']}")
            if response_started:
                # Ya se enviaron cabeceras: no se puede cambiar el status
                raise
            response = error_response(status.HTTP_504_GATEWAY_TIMEOUT, "Request timed out")
            await response(scope, receive, send)


async def _bounded_ping(ping, timeout: float) -> bool:
    """Un ping que no responde dentro de `timeout` cuenta como base de datos caída."""
    try:
        return await asyncio.wait_for(ping, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Database ping timed out after {timeout}s")
        return False


def endpoint_label(request: Request) -> str:
    # Plantilla de la ruta (no la URL cruda) para no crear una serie por cada path desconocido
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unknown"


# --- Dependencias ---
def get_credential_store(request: Request):
    return request.app.state.credential_store


def get_call_summary_reader(request: Request):
    return request.app.state.call_summary_reader


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def create_app(
    settings: Optional[Settings] = None,
    credential_store=None,
    call_summary_reader=None,
) -> FastAPI:
    """
    Construye la aplicación. Los stores se pueden inyectar (tests); si no,
    se crean a partir de Settings. En ambos casos se abren al arrancar y se
    cierran al apagar.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    credential_store = credential_store or MongoCredentialStore(
        settings.mongodb_uri,
        settings.mongodb_database,
        timeout_seconds=settings.store_timeout_seconds,
    )
    call_summary_reader = call_summary_reader or CallSummaryReader(
        settings.postgres_url,
        use_ssl=settings.pg_ssl,
        timeout_seconds=settings.store_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Iniciando {settings.SERVICE_NAME}...")
        # Si alguna base de datos no responde, la excepción aborta el arranque
        await credential_store.open()
        try:
            await call_summary_reader.open()
        except Exception:
            await credential_store.close()
            raise
        try:
            yield
        finally:
            await call_summary_reader.close()
            await credential_store.close()
            logger.info(f"{settings.SERVICE_NAME} detenido.")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Exposes call summary data and handles user registration and authentication.",
        version=settings.VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.credential_store = credential_store
    app.state.call_summary_reader = call_summary_reader

    app.add_middleware(RequestTimeoutMiddleware, timeout=settings.request_timeout_seconds)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Middleware para Métricas ---
    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start_time = time.time()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            latency = time.time() - start_time
            endpoint = endpoint_label(request)
            REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency)
            REQUEST_COUNT.labels(method=request.method, endpoint=endpoint, status_code=status_code).inc()
        return response

    # --- Manejadores de errores ---
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        # JSON mal formado o tipos incorrectos: 400 en lugar del 422 por defecto
        logger.warning(f"Invalid request body on {request.url.path}: {exc.errors()}")
        return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request body")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception during request processing: {exc}", exc_info=True)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    # --- Endpoints de Salud y Métricas ---
    @app.get("/", tags=["Monitoring"])
    def root():
        """Service metadata."""
        return {"service": settings.SERVICE_NAME, "version": settings.VERSION, "endpoints": ENDPOINTS}

    @app.get("/metrics", tags=["Monitoring"])
    def metrics():
        """Exposes application metrics for Prometheus."""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/health", response_model=schemas.HealthResponse, tags=["Monitoring"])
    async def health_check(
        store=Depends(get_credential_store),
        reader=Depends(get_call_summary_reader),
    ):
        """Pings both databases. Returns 503 if either is down."""
        mongo_up, postgres_up = await asyncio.gather(
            _bounded_ping(store.ping(), settings.store_timeout_seconds),
            _bounded_ping(reader.ping(), settings.store_timeout_seconds),
        )
        body = {
            "status": "healthy" if mongo_up and postgres_up else "unhealthy",
            "service": settings.SERVICE_NAME,
            "databases": {
                "mongodb": "up" if mongo_up else "down",
                "postgres": "up" if postgres_up else "down",
            },
        }
        if not (mongo_up and postgres_up):
            logger.warning(f"Health check failed: {body['databases']}")
            return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
        return body

    # --- Endpoints de API ---
    @app.get("/api/data", tags=["Data"])
    async def get_call_summary(reader=Depends(get_call_summary_reader)):
        """Returns every row of the "call summary" table, unchanged."""
        return await reader.fetch_call_summary()

    @app.post(
        "/api/login",
        response_model=schemas.LoginResponse,
        responses={400: {"model": schemas.ErrorResponse}, 401: {"model": schemas.ErrorResponse}},
        tags=["Authentication"],
    )
    async def login(
        credentials: schemas.LoginRequest,
        store=Depends(get_credential_store),
        app_settings: Settings = Depends(get_app_settings),
    ):
        """
        Authenticates a user by email and password (JSON body).
        Unknown email and wrong password both return 401 with the same message.
        """
        try:
            user = await auth.authenticate_user(store, credentials, rounds=app_settings.bcrypt_rounds)
        except InvalidCredentialsError:
            LOGIN_FAILURE_COUNT.inc()
            raise
        return {"success": True, "message": "User authenticated", "user": user}

    @app.post(
        "/api/users",
        response_model=schemas.UserResponse,
        status_code=status.HTTP_201_CREATED,
        responses={400: {"model": schemas.ErrorResponse}, 409: {"model": schemas.ErrorResponse}},
        tags=["Users"],
    )
    async def create_user(
        new_user: schemas.RegisterRequest,
        store=Depends(get_credential_store),
        app_settings: Settings = Depends(get_app_settings),
    ):
        """
        Registers a new user. The password is stored as a bcrypt hash and
        never returned.
        """
        saved = await auth.register_user(store, new_user, rounds=app_settings.bcrypt_rounds)
        REGISTRATION_COUNT.inc()
        return saved

    return app
