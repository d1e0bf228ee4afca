import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from devwp.core.config import APP_VERSION, Settings
from devwp.core.context import AppContext, build_context
from devwp.core.errors import DevWPError
from devwp.core.logger import setup_logging
from devwp.modules.containers.router import router as containers_router
from devwp.modules.settings.router import router as settings_router
from devwp.modules.sites.router import router as sites_router
from devwp.modules.system.router import router as system_router
from devwp.modules.wpcli.router import router as wpcli_router
from devwp.modules.xdebug.router import router as xdebug_router

logger = logging.getLogger(__name__)

# UI dev servers allowed to call the API
ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


async def bootstrap_services(context: AppContext) -> None:
    """
    Bring the stack to a usable state. Every step logs its own failure and
    the next one still runs, so the API comes up even without Docker.
    """
    settings = context.settings
    store = context.store

    # 1. MariaDB container
    try:
        await context.docker.start_mariadb()
    except DevWPError as e:
        logger.error("❌ MariaDB container failed to start: %s", e)

    # 2. Wait until it accepts connections
    try:
        await context.mariadb.wait_for_database(settings.db_wait_attempts, settings.db_wait_delay)
    except DevWPError as e:
        logger.error("❌ %s", e)

    # 3. Config schema + tables + default settings
    try:
        await context.mariadb.ensure_config_database(settings.config_db_name)
        await asyncio.to_thread(store.initialize)
        context.xdebug_enabled = await asyncio.to_thread(store.get_xdebug_enabled)
        logger.info("✅ Config database initialized")
    except DevWPError as e:
        logger.error("❌ Config database initialization failed: %s", e)

    # 4. Sites created before the config database existed
    try:
        webroot = await asyncio.to_thread(store.get_webroot_path)
        await asyncio.to_thread(store.migrate_existing_sites, webroot)
    except DevWPError as e:
        logger.error("❌ Site migration failed: %s", e)

    # 5. Proxy configs lost from sites-enabled
    try:
        records = await asyncio.to_thread(store.list_sites)
        await context.frankenphp.regenerate_missing(records)
    except DevWPError as e:
        logger.error("❌ Config regeneration failed: %s", e)


def create_app(context: AppContext = None, bootstrap: bool = True) -> FastAPI:
    """
    Build the API. Without a context one is made from the environment.
    Serve with `devwp` or `uvicorn devwp.main:create_app --factory`.
    """
    if context is None:
        settings = Settings.from_env()
        log_dir = setup_logging(settings.log_dir, settings.verbose)
        context = build_context(settings, log_dir=log_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if bootstrap:
            await bootstrap_services(context)
        yield
        context.docker.shutdown()
        if bootstrap:
            try:
                await context.docker.stop_group()
            except DevWPError as e:
                logger.error("Failed to stop Docker containers: %s", e)

    app = FastAPI(title="DevWP API", version=APP_VERSION, lifespan=lifespan)
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(DevWPError)
    async def devwp_error_handler(request: Request, exc: DevWPError):
        if exc.status_code >= 500:
            logger.error("%s: %s", type(exc).__name__, exc)
        else:
            logger.warning("%s: %s", type(exc).__name__, exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": str(exc),
                "kind": type(exc).__name__,
                "log_dir": str(request.app.state.context.log_dir),
            },
        )

    # --- Register Router ---
    app.include_router(sites_router)
    app.include_router(settings_router)
    app.include_router(containers_router)
    app.include_router(wpcli_router)
    app.include_router(xdebug_router)
    app.include_router(system_router)

    @app.get("/")
    def read_root():
        return {"message": "DevWP API is Ready!"}

    return app


def run():
    import uvicorn

    settings = Settings.from_env()
    log_dir = setup_logging(settings.log_dir, settings.verbose)
    context = build_context(settings, log_dir=log_dir)
    uvicorn.run(create_app(context), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
