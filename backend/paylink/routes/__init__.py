from paylink.routes.payments import router as payments_router
from paylink.routes.admin import router as admin_router

__all__ = ["payments_router", "admin_router"]
