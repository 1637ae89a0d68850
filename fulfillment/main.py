import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import fulfillment.models  # noqa: F401  registers every table on Base.metadata
from fulfillment.api import assignments, monitoring, orders, proofs, stores, vendors
from fulfillment.api.errors import fulfillment_error_handler
from fulfillment.database import Base, engine
from fulfillment.exceptions import FulfillmentError
from fulfillment.services.scheduler import init_scheduler, shutdown_scheduler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_scheduler()
    yield
    shutdown_scheduler()


app = FastAPI(
    title="Marketplace Fulfillment Engine",
    description="Order ingestion, vendor assignment, SLA monitoring and proof approval for multi-vendor storefronts",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(FulfillmentError, fulfillment_error_handler)

app.include_router(stores.router)
app.include_router(vendors.router)
app.include_router(orders.router)
app.include_router(assignments.router)
app.include_router(assignments.tracking_router)
app.include_router(proofs.router)
app.include_router(proofs.public_router)
app.include_router(monitoring.router)


@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/")
def root():
    return {
        "message": "Marketplace Fulfillment Engine API",
        "docs": "/docs",
        "health": "/health"
    }
