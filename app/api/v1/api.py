from fastapi import APIRouter
from app.api.v1.appointments import routes as appointments
from app.api.v1.reschedules import routes as reschedules
from app.api.v1.communication import routes as communication
from app.api.v1.subscriptions import routes as subscriptions

api_router = APIRouter()
api_router.include_router(appointments.router, prefix="/appointments", tags=["appointments"])
api_router.include_router(reschedules.router, prefix="/reschedule-requests", tags=["reschedule-requests"])
api_router.include_router(communication.router, prefix="/conversations", tags=["conversations"])
api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
