"""
开发 / 联调用的 catalog 种子数据。

    python manage.py seed_catalog            # 只补不存在的条目
    python manage.py seed_catalog --reset    # 清空 catalog 后重建
"""

from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from homecare.intake.types import EntityType
from homecare.models import CatalogAreaPrice, CatalogItem

AREAS = ('Downtown', 'Northside', 'Airport District')

# entity_type → [(name, base price)]
CATALOG = {
    EntityType.SERVICE: [('Wound dressing', '25.00'), ('IV therapy', '40.00'), ('Injection at home', '15.00')],
    EntityType.TEST_PACKAGE: [('Full checkup', '120.00'), ('Diabetes panel', '60.00')],
    EntityType.TEST: [('CBC', '10.00'), ('Vitamin D', '18.00')],
    EntityType.RAY: [('Chest X-ray', '35.00'), ('Abdominal ultrasound', '55.00')],
    EntityType.MACHINE: [('Oxygen concentrator', '90.00'), ('Hospital bed', '70.00')],
    EntityType.PHYSIOTHERAPIST: [('Home physiotherapy', '30.00')],
    EntityType.PHYSIO_MACHINE: [('TENS unit', None), ('Ultrasound therapy', None)],
    EntityType.NURSE_VISIT: [('Daily nurse visit', '20.00')],
    EntityType.DUTY: [('Nursing duty', '80.00')],
    EntityType.BABYSITTER: [('Elderly babysitter', '50.00')],
    EntityType.DOCTOR: [('Dr. Lina Haddad', '45.00'), ('Dr. Omar Saleh', '50.00')],
    EntityType.DOCTOR_SLOT: [('Morning slot', None), ('Evening slot', None)],
    EntityType.NURSE: [('Nurse Rana', None), ('Nurse Sami', None)],
}

# 这些类型按区域定价：每个区域在基础价上加价
AREA_PRICED = (EntityType.SERVICE, EntityType.MACHINE, EntityType.RAY, EntityType.PHYSIOTHERAPIST)
AREA_SURCHARGE = (Decimal('0.00'), Decimal('5.00'), Decimal('10.00'))


class Command(BaseCommand):
    help = 'Seed the catalog tables (services, areas, doctors, nurses ...) with development data.'

    def add_arguments(self, parser):
        parser.add_argument('--reset', action='store_true', help='Delete all catalog rows before seeding.')

    @transaction.atomic
    def handle(self, *args, **options):
        if options['reset']:
            CatalogAreaPrice.objects.all().delete()
            CatalogItem.objects.all().delete()
            self.stdout.write('Catalog cleared.')

        areas = [
            CatalogItem.objects.get_or_create(entity_type=EntityType.AREA, name=name)[0]
            for name in AREAS
        ]

        created = 0
        for entity_type, entries in CATALOG.items():
            for name, price in entries:
                item, was_created = CatalogItem.objects.get_or_create(
                    entity_type=entity_type,
                    name=name,
                    defaults={'price': Decimal(price) if price else None},
                )
                created += int(was_created)

                if entity_type in AREA_PRICED and item.price is not None:
                    for area, surcharge in zip(areas, AREA_SURCHARGE):
                        CatalogAreaPrice.objects.get_or_create(
                            item=item,
                            area=area,
                            defaults={'price': item.price + surcharge},
                        )

        self.stdout.write(self.style.SUCCESS(
            f'Catalog ready: {CatalogItem.objects.count()} items ({created} new), '
            f'{CatalogAreaPrice.objects.count()} area prices.'
        ))

        # 打印每种实体的 id，方便手动联调时填 payload
        for entity_type in EntityType.ALL:
            ids = CatalogItem.objects.filter(entity_type=entity_type).order_by('id').values_list('id', flat=True)
            self.stdout.write(f'  {entity_type}: {", ".join(map(str, ids))}')
