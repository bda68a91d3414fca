from fastapi import APIRouter
from app.api.v1.endpoints import applications, queries, reviews

api_router = APIRouter(prefix="/api/v1")

# Include all endpoint routers
api_router.include_router(applications.router)
api_router.include_router(queries.router)
api_router.include_router(reviews.router)
