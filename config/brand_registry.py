"""
BrandRegistry: loads config/brands.yaml and exposes the per-brand tool
names and data-transform settings.
"""

import pathlib
from typing import Any, Dict, List

import yaml

from utils.schemas import BrandConfig


class BrandRegistry:
    def __init__(self, registry_path: str | None = None):
        if registry_path is None:
            registry_path = str(
                pathlib.Path(__file__).parent / "brands.yaml"
            )
        with open(registry_path, "r", encoding="utf-8") as fh:
            self.registry: Dict[str, Any] = yaml.safe_load(fh)

    def get_brand_config(self, brand_id: str) -> BrandConfig:
        if brand_id not in self.registry["brands"]:
            raise ValueError(f"Unknown brand: {brand_id}")
        return BrandConfig(**self.registry["brands"][brand_id])

    def list_brand_ids(self) -> List[str]:
        return list(self.registry["brands"].keys())
