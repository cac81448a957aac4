from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
import logging
from typing import Optional
from api.schemas import BomIn, ProductLinksIn
from services.bom_service import BomService
from services.catalog_sync_service import CatalogSyncService
from models.errors import BomEngineError
from config import Config

logger = logging.getLogger(__name__)

app = FastAPI(
    title="BOM Engine API",
    description="Hierarchical bill-of-materials: versions, inclusions, cost rollup",
    version="1.0.0"
)

# CORS for the web frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Single service instances, created on first use
_bom_service: Optional[BomService] = None
_catalog_sync: Optional[CatalogSyncService] = None


def get_bom_service() -> BomService:
    global _bom_service
    if _bom_service is None:
        _bom_service = BomService()
    return _bom_service


def get_catalog_sync(service: BomService = Depends(get_bom_service)) -> CatalogSyncService:
    global _catalog_sync
    if _catalog_sync is None:
        _catalog_sync = CatalogSyncService(service.repo)
    return _catalog_sync


def _http_error(e: BomEngineError) -> HTTPException:
    logger.info(f"API: {e.kind} - {e.message}")
    return HTTPException(status_code=e.status_code, detail=e.to_dict())


def _server_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"API: {action} failed - {e}", exc_info=True)
    return HTTPException(status_code=500, detail=str(e))


@app.get("/")
def root():
    return {"status": "running", "service": "BOM Engine"}


@app.get("/api/boms")
def list_boms(
    level: Optional[int] = None,
    search: Optional[str] = None,
    service: BomService = Depends(get_bom_service),
):
    """List BOMs of a level with total cost and component count"""
    try:
        boms = service.list_boms_by_level(level, search)
        return {"boms": [b.to_dict() for b in boms], "count": len(boms)}
    except BomEngineError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error("List BOMs", e)


@app.get("/api/boms/versions")
def list_versions(
    name: str,
    level: int,
    parent_id: Optional[str] = None,
    service: BomService = Depends(get_bom_service),
):
    """Version history of one (name, level, parent) identity"""
    try:
        versions = service.list_versions(name, level, parent_id)
        return {"versions": [b.to_dict() for b in versions], "count": len(versions)}
    except Exception as e:
        raise _server_error("List versions", e)


@app.post("/api/boms")
def create_or_update_bom(body: BomIn, service: BomService = Depends(get_bom_service)):
    """
    Create a BOM, or edit one
    Level 1 edits update the row in place; other levels always produce a new version
    """
    try:
        logger.info(f"API: Save level {body.level} BOM '{body.name}' requested")
        bom = service.create_or_update_bom(body.to_input())
        return service.get_bom_with_cost(bom.id).to_dict()
    except BomEngineError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error("Save BOM", e)


@app.get("/api/boms/{bom_id}")
def get_bom(bom_id: str, service: BomService = Depends(get_bom_service)):
    """BOM tree with its rolled-up cost"""
    try:
        return service.get_bom_with_cost(bom_id).to_dict()
    except BomEngineError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error("Get BOM", e)


@app.get("/api/boms/{bom_id}/composition")
def get_composition(bom_id: str, service: BomService = Depends(get_bom_service)):
    """Flattened composition (cumulative quantities and extended costs)"""
    try:
        detail, lines = service.get_composition(bom_id)
        return {
            "bom_id": detail.bom.id,
            "name": detail.bom.name,
            "version": detail.bom.version,
            "total_cost": str(detail.total_cost),
            "lines": [line.to_dict() for line in lines],
        }
    except BomEngineError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error("Get composition", e)


@app.post("/api/boms/{bom_id}/duplicate")
def duplicate_bom(bom_id: str, service: BomService = Depends(get_bom_service)):
    try:
        bom = service.duplicate_bom(bom_id)
        return service.get_bom_with_cost(bom.id).to_dict()
    except BomEngineError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error("Duplicate BOM", e)


@app.delete("/api/boms/{bom_id}")
def delete_bom(
    bom_id: str,
    confirm_cascade: bool = Query(False),
    detach_parents: bool = Query(False),
    service: BomService = Depends(get_bom_service),
):
    """
    Delete a BOM
    409 until referencing work orders (confirm_cascade) and parent inclusions
    (detach_parents) are explicitly accepted
    """
    try:
        result = service.delete_bom(bom_id, confirm_cascade=confirm_cascade, detach_parents=detach_parents)
        return result.to_dict()
    except BomEngineError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error("Delete BOM", e)


@app.put("/api/boms/{bom_id}/products")
def set_product_links(bom_id: str, body: ProductLinksIn, service: BomService = Depends(get_bom_service)):
    try:
        product_ids = service.set_product_links(bom_id, body.product_ids)
        return {"bom_id": bom_id, "product_ids": product_ids}
    except BomEngineError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error("Set product links", e)


@app.get("/api/products/{product_id}/boms")
def list_product_boms(product_id: str, service: BomService = Depends(get_bom_service)):
    """Level-1 BOMs linked to a product"""
    try:
        boms = service.list_boms_for_product(product_id)
        return {"boms": [b.to_dict() for b in boms], "count": len(boms)}
    except BomEngineError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error("List product BOMs", e)


@app.get("/api/materials")
def list_materials(service: BomService = Depends(get_bom_service)):
    try:
        materials = service.list_materials()
        return {"materials": [m.to_dict() for m in materials], "count": len(materials)}
    except Exception as e:
        raise _server_error("List materials", e)


@app.get("/api/products")
def list_products(service: BomService = Depends(get_bom_service)):
    try:
        products = service.list_products()
        return {"products": [p.to_dict() for p in products], "count": len(products)}
    except Exception as e:
        raise _server_error("List products", e)


@app.post("/api/catalog/sync")
def sync_catalog(sync: CatalogSyncService = Depends(get_catalog_sync)):
    """Import materials and products from Supabase"""
    try:
        logger.info("API: Catalog sync requested")
        result = sync.run_sync()
        return result.to_dict()
    except Exception as e:
        raise _server_error("Catalog sync", e)


@app.on_event("startup")
def startup():
    """Validate configuration on startup"""
    Config.validate()
    logger.info("API server started")


@app.on_event("shutdown")
def shutdown():
    """Cleanup on shutdown"""
    if _bom_service is not None and hasattr(_bom_service.repo, "close"):
        _bom_service.repo.close()
    logger.info("API server stopped")
