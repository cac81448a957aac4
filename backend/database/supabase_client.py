import logging
from typing import Dict, List
from supabase import create_client
from config import Config

logger = logging.getLogger(__name__)

MATERIAL_COLUMNS = "id, name, code, current_stock, unit, cost"
PRODUCT_COLUMNS = "id, code, name, description, product_type"


class SupabaseCatalogClient:
    """Client for the upstream materials/products catalog in Supabase"""

    def __init__(self, client=None):
        if client is None:
            Config.validate_supabase()
            client = create_client(Config.SUPABASE_URL, Config.SUPABASE_KEY)
        self.client = client
        logger.info("Supabase catalog client initialized")

    def get_materials(self) -> List[Dict]:
        """Fetch all active materials"""
        result = self.client.table("materials")\
            .select(MATERIAL_COLUMNS)\
            .eq("active", True)\
            .order("code")\
            .execute()

        return result.data or []

    def get_products(self) -> List[Dict]:
        """Fetch all sellable products"""
        result = self.client.table("products")\
            .select(PRODUCT_COLUMNS)\
            .order("code")\
            .execute()
        return result.data or []
