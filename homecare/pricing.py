"""
Pricing 协作者。

只负责「查价」：按 category 找到被定价的实体，有区域价用区域价，否则用基础价。
折扣统一走 discounted_price()，保证任何地方算出来的折后价都不会小于 0。
"""

import logging
from decimal import ROUND_HALF_UP, Decimal

from .intake.types import EntityType
from .models import CatalogAreaPrice, CatalogItem

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')

# category → 被定价实体的候选字段（按顺序取第一个有值的）
PRICED_ENTITIES = {
    1: (('service_id', EntityType.SERVICE),),
    2: (('test_package_id', EntityType.TEST_PACKAGE), ('test_id', EntityType.TEST)),
    3: (('ray_id', EntityType.RAY),),
    4: (('machine_id', EntityType.MACHINE),),
    5: (('physiotherapist_id', EntityType.PHYSIOTHERAPIST),),
    6: (),
    7: (
        ('nurse_visit_id', EntityType.NURSE_VISIT),
        ('duty_id', EntityType.DUTY),
        ('babysitter_id', EntityType.BABYSITTER),
    ),
    8: (('doctor_id', EntityType.DOCTOR),),
}


def priced_entity(record):
    """返回 (entity_type, entity_id)；该 category 没有可定价实体时返回 None。"""
    for field_name, entity_type in PRICED_ENTITIES.get(record.category_id, ()):
        entity_id = getattr(record, field_name, None)
        if entity_id is not None:
            return entity_type, entity_id
    return None


def quote_price(record):
    """
    区域价 > 基础价 > None。

    record 可以是 CanonicalRequest 也可以是 ServiceRequest，只读属性。
    """
    entity = priced_entity(record)
    if entity is None:
        return None
    entity_type, entity_id = entity

    if record.area_id is not None:
        override = CatalogAreaPrice.objects.filter(
            item_id=entity_id,
            item__entity_type=entity_type,
            area_id=record.area_id,
        ).values_list('price', flat=True).first()
        if override is not None:
            return override

    price = CatalogItem.objects.filter(
        entity_type=entity_type,
        id=entity_id,
    ).values_list('price', flat=True).first()

    if price is None:
        logger.info("No price configured for %s %s", entity_type, entity_id)
    return price


def discounted_price(total_price, discount_percentage):
    """
    max(0, total × (1 − pct/100))，保留两位小数。

    total_price 为 None 时返回 None；pct 为空按 0 处理。
    """
    if total_price is None:
        return None
    pct = Decimal(str(discount_percentage or 0))
    total = Decimal(str(total_price))
    value = total * (Decimal('1') - pct / Decimal('100'))
    return max(Decimal('0'), value).quantize(CENT, rounding=ROUND_HALF_UP)
