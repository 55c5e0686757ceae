"""市町村カタログ API ルート

GET /api/municipalities/{diocese} → 200 { diocese, version, municipalities }
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from parish_accounts.entrypoints.api.deps import ChanceryContext, get_catalog, require_chancery
from parish_accounts.services.municipalities import MunicipalityCatalog

router = APIRouter(prefix="/municipalities", tags=["municipalities"])


class MunicipalitiesResponse(BaseModel):
    diocese: str
    version: str
    municipalities: list[str]


@router.get("/{diocese}", response_model=MunicipalitiesResponse)
async def list_municipalities(
    diocese: str,
    ctx: ChanceryContext = Depends(require_chancery),
    catalog: MunicipalityCatalog = Depends(get_catalog),
) -> MunicipalitiesResponse:
    """司教区に属する市町村の一覧"""
    municipalities = catalog.municipalities(diocese)
    if not municipalities:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Diocese not found"
        )
    return MunicipalitiesResponse(
        diocese=diocese.strip().lower(),
        version=catalog.version,
        municipalities=municipalities,
    )
