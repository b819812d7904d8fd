from tanggap.api.routes import auth, dashboard, health, media, reports, users, webhook

ROUTERS = [
    webhook.router,
    auth.router,
    health.router,
    reports.router,
    dashboard.router,
    users.router,
    media.router,
]

__all__ = ["ROUTERS"]
