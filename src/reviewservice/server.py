#!/usr/bin/env python3

"""
Copyright 2024 Google LLC

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

     http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

import sys
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reviewservice.config import get_settings
from reviewservice.database import DatabaseManager
from reviewservice.models import HealthResponse
from reviewservice.policies import get_policy
from reviewservice.routers import product_router, review_router
from reviewservice.service import ReviewService

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_review_service(db_manager: DatabaseManager) -> ReviewService:
    """Create the review service for the configured rating policy."""
    policy = get_policy(settings.rating_policy)
    logger.info(f"Rating policy: {policy.name}")
    return ReviewService(
        db_manager,
        policy=policy,
        max_retries=settings.aggregate_max_retries
    )


def create_app(service: Optional[ReviewService] = None) -> FastAPI:
    """Create the FastAPI app; a prebuilt service skips database startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifecycle - startup and shutdown."""
        db_manager = None
        if service is None:
            logger.info("🚀 Starting Review Service...")
            db_manager = DatabaseManager(settings)
            await db_manager.initialize()
            review_router.set_review_service(build_review_service(db_manager))
            logger.info("✅ Review Service started successfully")

        yield

        if db_manager:
            logger.info("🛑 Shutting down Review Service...")
            await db_manager.close()

    app = FastAPI(
        title="Review Service",
        description="Product reviews, moderation and rating aggregation",
        version="1.0.0",
        lifespan=lifespan
    )

    # Storefront frontends call this service directly
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Malformed bodies and query parameters are client errors like any other validation failure."""
        detail = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        return JSONResponse(status_code=400, content={"detail": detail})

    app.include_router(review_router.router)
    app.include_router(product_router.router)

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(status="healthy", service=settings.service_name)

    if service is not None:
        review_router.set_review_service(service)

    return app


app = create_app()


def main():
    import uvicorn

    logger.info(f"Listening on 0.0.0.0:{settings.port}")
    try:
        uvicorn.run(app, host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())
    except Exception as e:
        logger.error(f"❌ Server error: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
