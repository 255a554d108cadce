"""
API v1 router aggregating all endpoints.
"""
from fastapi import APIRouter

from app.api.v1.projects import router as projects_router
from app.api.v1.audits import router as audits_router
from app.api.v1.queue import router as queue_router
from app.api.v1.maintenance import router as maintenance_router
from app.api.v1.crawl_results import router as crawl_results_router

api_router = APIRouter()

api_router.include_router(projects_router)
api_router.include_router(audits_router)
api_router.include_router(queue_router)
api_router.include_router(maintenance_router)
api_router.include_router(crawl_results_router)
