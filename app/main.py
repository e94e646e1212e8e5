import logging
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.database import Base, engine
from app.core.errors import LibraryError
from app.api import routes

logger = logging.getLogger("elibrary")

Base.metadata.create_all(bind=engine)
app = FastAPI(title="E-Library Lending Service")
app.include_router(routes.router)

@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    logger.info(f"{request.method} {request.url.path} -> {exc.kind}: {exc.message}")
    return JSONResponse(status_code=exc.status_code,
                        content={"detail": exc.message, "error": exc.kind})

@app.get("/health")
def health():
    return {"status": "ok", "time": datetime.utcnow().isoformat()}
