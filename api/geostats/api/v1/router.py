"""
Router principal de la API v1.
Agrupa todos los endpoints de la version 1.
"""
from fastapi import APIRouter

from geostats.api.v1.endpoints import sync


# Router principal de la API v1
api_router = APIRouter(prefix="/v1")

# Incluir routers de endpoints específicos
api_router.include_router(sync.router)
