from __future__ import annotations

from fastapi import APIRouter, Depends

from catalog_sync.api.v1.endpoints import imports, remote_imports, search
from catalog_sync.core.security import require_basic_auth


api_router = APIRouter(dependencies=[Depends(require_basic_auth)])

api_router.include_router(imports.router, prefix="/imports", tags=["imports"])
api_router.include_router(remote_imports.router, prefix="/remote-imports", tags=["remote-imports"])
api_router.include_router(search.router, prefix="/search", tags=["search"])
