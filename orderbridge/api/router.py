"""
API Router - JSON Endpoints
"""
from fastapi import APIRouter
from datetime import datetime

from orderbridge.api.orders import router as orders_router
from orderbridge.api.connections import router as connections_router
from orderbridge.api.sync import router as sync_router

api_router = APIRouter(tags=["API"])

# Include sub-routers
api_router.include_router(orders_router)
api_router.include_router(connections_router)
api_router.include_router(sync_router)


# ===================== HEALTH & STATUS =====================

@api_router.get("/status")
async def api_status():
    return {"status": "ok", "version": "1.0.0", "timestamp": datetime.now().isoformat()}
