"""
Referential lookup：校验层的 Exists / AreaPriced 约束通过它查 catalog 表。

一个 CatalogLookup 实例只服务一次请求，查询结果缓存在实例上，
同一份 payload 里重复引用同一个 id 只查一次库。
"""

from .models import CatalogAreaPrice, CatalogItem


class CatalogLookup:

    def __init__(self):
        self._exists_cache = {}
        self._area_price_cache = {}

    def exists(self, entity_type, entity_id):
        key = (entity_type, entity_id)
        if key not in self._exists_cache:
            self._exists_cache[key] = CatalogItem.objects.filter(
                entity_type=entity_type,
                id=entity_id,
                is_active=True,
            ).exists()
        return self._exists_cache[key]

    def has_area_price(self, entity_type, entity_id, area_id):
        key = (entity_type, entity_id, area_id)
        if key not in self._area_price_cache:
            self._area_price_cache[key] = CatalogAreaPrice.objects.filter(
                item_id=entity_id,
                item__entity_type=entity_type,
                area_id=area_id,
            ).exists()
        return self._area_price_cache[key]
