"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from leadqueue.api.agent_queue import router as agent_queue_router
from leadqueue.api.manager_leads import router as manager_leads_router
from leadqueue.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(agent_queue_router)
api_router.include_router(manager_leads_router)
api_router.include_router(health_router)
