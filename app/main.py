from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.fees.router import router as fees_router
from app.api.v1.payments.router import router as payments_router
from app.api.v1.students.router import router as students_router
from app.core.logging import configure_logging


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Fee Ledger")

    # CORS: allow the college portal frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(fees_router)
    app.include_router(students_router)
    app.include_router(payments_router)

    return app


app = create_app()
