"""Routers for the HTTP surface, one module per resource collection."""

from fastapi import APIRouter

from src.api.routers import admission, apps, builds, orgs, routes, service_bindings, spaces, whoami

ROUTERS: tuple[APIRouter, ...] = (
    whoami.router,
    orgs.router,
    spaces.router,
    apps.router,
    builds.router,
    routes.router,
    service_bindings.router,
    admission.router,
)
