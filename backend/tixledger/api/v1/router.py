from fastapi import APIRouter

from tixledger.api.v1 import (
    admin,
    allocations,
    audit,
    billing,
    coupons,
    health,
    invoices,
    plans,
    reports,
    subscriptions,
)

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(billing.router)
api_router.include_router(allocations.router)
api_router.include_router(subscriptions.router)
api_router.include_router(plans.router)
api_router.include_router(invoices.router)
api_router.include_router(coupons.router)
api_router.include_router(reports.router)
api_router.include_router(audit.router)
api_router.include_router(admin.router)
api_router.include_router(health.router)
