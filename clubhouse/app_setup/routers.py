"""
Registre central des routers.
- API v1: checkout/bookings, promo-codes, payments (webhook + verify), children, cron
- Health: health_router
"""
from fastapi import FastAPI
from clubhouse.bookings import views as bookings_views
from clubhouse.promos import views as promos_views
from clubhouse.payments import views as payments_views
from clubhouse.children import views as children_views
from clubhouse.cron import views as cron_views
from clubhouse.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(bookings_views.router)
    app.include_router(promos_views.router)
    app.include_router(payments_views.router)
    app.include_router(children_views.router)
    app.include_router(cron_views.router)
    # Health & monitoring
    app.include_router(health_router)
