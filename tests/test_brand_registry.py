"""
Tests for the brand registry loaded from config/brands.yaml.
"""

import pytest

from config.brand_registry import BrandRegistry


class TestBrandRegistry:
    def test_goodreads_tools(self):
        brand = BrandRegistry().get_brand_config("goodreads")
        assert brand.signin_tool == "goodreads_get_book_list"
        assert brand.poll_tool == "check_signin"
        assert brand.data_transform.data_path == "books"
        assert brand.data_transform.result_field == "result"

    def test_unknown_brand(self):
        with pytest.raises(ValueError, match="Unknown brand"):
            BrandRegistry().get_brand_config("nope")

    def test_custom_registry_file(self, tmp_path):
        path = tmp_path / "brands.yaml"
        path.write_text(
            "brands:\n"
            "  shop:\n"
            "    brand_id: shop\n"
            "    brand_name: Shop\n"
            "    signin_tool: shop_get_orders\n"
            "    data_transform:\n"
            "      data_path: orders\n",
            encoding="utf-8",
        )

        registry = BrandRegistry(str(path))

        assert registry.list_brand_ids() == ["shop"]
        assert registry.get_brand_config("shop").data_transform.fields == {}
