from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from excelview.config import Settings, load_settings
from excelview.database import build_engine, build_session_factory, create_tables
from excelview.logging_config import configure_logging
from excelview.routers import files
from excelview.services.parser import SUPPORTED_EXTENSIONS
from excelview.services.table_store import SqlTableStore
from excelview.services.table_view import PAGE_SIZE

PACKAGE_DIR = Path(__file__).resolve().parent

# Templates
templates = Jinja2Templates(directory=str(PACKAGE_DIR / "templates"))


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application; missing store settings stop startup here"""
    if settings is None:
        settings = load_settings()
    configure_logging(settings.log_level)

    engine = build_engine(settings.database_url)
    create_tables(engine)

    app = FastAPI(
        title="ExcelView",
        description="A web app for importing spreadsheets and browsing their rows",
        version="0.1.0",
    )
    app.state.settings = settings
    app.state.store = SqlTableStore(build_session_factory(engine))

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Mount static files
    app.mount("/static", StaticFiles(directory=str(PACKAGE_DIR / "static")), name="static")

    app.include_router(files.router)

    # Root route - serve index.html
    @app.get("/")
    async def root(request: Request):
        return templates.TemplateResponse(request, "index.html", {
            "store_config": settings.client_config(),
            "accepted_extensions": ",".join(SUPPORTED_EXTENSIONS),
            "page_size": PAGE_SIZE,
        })

    # Health check
    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


# Load environment variables
load_dotenv()

app = create_app()
