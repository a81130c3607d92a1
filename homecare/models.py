import uuid
from decimal import Decimal

from django.db import models

from .intake.types import EntityType, RequestStatus


class CatalogItem(models.Model):
    """
    外键查找表：service / area / ray / machine / doctor ... 全部放在一张表里，
    用 entity_type 区分。referential lookup 和 pricing 都只查这张表。
    """

    ENTITY_TYPE_CHOICES = [(entity_type, entity_type.replace('_', ' ').title()) for entity_type in EntityType.ALL]

    id = models.BigAutoField(primary_key=True)
    entity_type = models.CharField(max_length=30, choices=ENTITY_TYPE_CHOICES, db_index=True)
    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=10, decimal_places=2, blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'catalog_items'

    def __str__(self):
        return f"{self.entity_type}:{self.id} {self.name}"


class CatalogAreaPrice(models.Model):
    """某个区域对某个条目的价格覆盖（area-based pricing）。"""

    id = models.BigAutoField(primary_key=True)
    item = models.ForeignKey(CatalogItem, on_delete=models.CASCADE, related_name='area_prices')
    area = models.ForeignKey(
        CatalogItem,
        on_delete=models.CASCADE,
        related_name='priced_items',
        limit_choices_to={'entity_type': EntityType.AREA},
    )
    price = models.DecimalField(max_digits=10, decimal_places=2)

    class Meta:
        db_table = 'catalog_area_prices'
        constraints = [
            models.UniqueConstraint(fields=['item', 'area'], name='uniq_catalog_area_price'),
        ]


class RequestStatusChoices(models.TextChoices):
    SUBMITTED = RequestStatus.SUBMITTED, 'Submitted'
    ASSIGNED = RequestStatus.ASSIGNED, 'Assigned'
    IN_PROGRESS = RequestStatus.IN_PROGRESS, 'In progress'
    COMPLETED = RequestStatus.COMPLETED, 'Completed'
    CANCELLED = RequestStatus.CANCELLED, 'Cancelled'


# 合法状态流转；completed / cancelled 为终态
ALLOWED_TRANSITIONS = {
    RequestStatus.SUBMITTED: (RequestStatus.ASSIGNED, RequestStatus.CANCELLED),
    RequestStatus.ASSIGNED: (RequestStatus.IN_PROGRESS, RequestStatus.CANCELLED),
    RequestStatus.IN_PROGRESS: (RequestStatus.COMPLETED, RequestStatus.CANCELLED),
    RequestStatus.COMPLETED: (),
    RequestStatus.CANCELLED: (),
}


class ActiveRequestManager(models.Manager):
    def get_queryset(self):
        return super().get_queryset().filter(is_deleted=False)


class ServiceRequest(models.Model):
    """CanonicalRequest 的持久化形态，8 个 category 共用一张表。"""

    NURSE_GENDER_CHOICES = [
        ('male', 'Male'),
        ('female', 'Female'),
        ('any', 'Any'),
        ('none', 'None'),
    ]
    TIME_TYPE_CHOICES = [
        ('full-time', 'Full time'),
        ('part-time', 'Part time'),
    ]
    APPOINTMENT_TYPE_CHOICES = [
        ('check_at_home', 'Check at home'),
        ('check_at_clinic', 'Check at clinic'),
        ('video_call', 'Video call'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.PositiveBigIntegerField(db_index=True)
    category_id = models.PositiveSmallIntegerField(db_index=True)
    status = models.CharField(
        max_length=20,
        choices=RequestStatusChoices.choices,
        default=RequestStatusChoices.SUBMITTED,
    )

    # 通用字段
    first_name = models.CharField(max_length=255, blank=True, null=True)
    last_name = models.CharField(max_length=255, blank=True, null=True)
    full_name = models.CharField(max_length=255, blank=True, null=True)
    phone_number = models.CharField(max_length=20, blank=True, null=True)
    problem_description = models.TextField(blank=True, null=True)
    nurse_gender = models.CharField(max_length=10, choices=NURSE_GENDER_CHOICES, blank=True, null=True)
    name = models.CharField(max_length=255, blank=True, null=True)
    location = models.TextField(blank=True, null=True)
    use_saved_address = models.BooleanField(default=False)
    address_city = models.CharField(max_length=255, blank=True, null=True)
    address_street = models.CharField(max_length=255, blank=True, null=True)
    address_building = models.CharField(max_length=255, blank=True, null=True)
    address_additional_information = models.TextField(blank=True, null=True)
    additional_information = models.TextField(blank=True, null=True)
    notes = models.TextField(blank=True, null=True)

    # Category 1
    service_id = models.PositiveBigIntegerField(blank=True, null=True)
    area_id = models.PositiveBigIntegerField(blank=True, null=True)
    time_type = models.CharField(max_length=20, choices=TIME_TYPE_CHOICES, blank=True, null=True)
    scheduled_time = models.DateTimeField(blank=True, null=True)
    ending_time = models.DateTimeField(blank=True, null=True)

    # Category 2
    test_package_id = models.PositiveBigIntegerField(blank=True, null=True)
    test_id = models.PositiveBigIntegerField(blank=True, null=True)
    request_details_files = models.JSONField(blank=True, null=True)
    request_with_insurance = models.BooleanField(blank=True, null=True)
    attach_front_face = models.CharField(max_length=500, blank=True, null=True)
    attach_back_face = models.CharField(max_length=500, blank=True, null=True)

    # Category 3 / 4
    ray_id = models.PositiveBigIntegerField(blank=True, null=True)
    machine_id = models.PositiveBigIntegerField(blank=True, null=True)
    from_date = models.DateField(blank=True, null=True)
    to_date = models.DateField(blank=True, null=True)

    # Category 5
    physiotherapist_id = models.PositiveBigIntegerField(blank=True, null=True)
    sessions_per_month = models.PositiveIntegerField(blank=True, null=True)
    machines_included = models.BooleanField(blank=True, null=True)
    physio_machines = models.JSONField(blank=True, null=True)

    # Category 7
    nurse_visit_id = models.PositiveBigIntegerField(blank=True, null=True)
    duty_id = models.PositiveBigIntegerField(blank=True, null=True)
    babysitter_id = models.PositiveBigIntegerField(blank=True, null=True)
    visits_per_day = models.PositiveSmallIntegerField(blank=True, null=True)
    duration_hours = models.PositiveSmallIntegerField(blank=True, null=True)
    is_continuous_care = models.BooleanField(blank=True, null=True)
    is_day_shift = models.BooleanField(blank=True, null=True)

    # Category 8
    doctor_id = models.PositiveBigIntegerField(blank=True, null=True)
    slot_id = models.PositiveBigIntegerField(blank=True, null=True)
    appointment_type = models.CharField(max_length=20, choices=APPOINTMENT_TYPE_CHOICES, blank=True, null=True)

    # admin / pricing
    total_price = models.DecimalField(max_digits=10, decimal_places=2, blank=True, null=True)
    discount_percentage = models.DecimalField(max_digits=5, decimal_places=2, blank=True, null=True)
    discounted_price = models.DecimalField(max_digits=10, decimal_places=2, blank=True, null=True)
    nurse_id = models.PositiveBigIntegerField(blank=True, null=True)

    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ActiveRequestManager()
    all_objects = models.Manager()

    class Meta:
        db_table = 'service_requests'
        ordering = ['-created_at']

    def __str__(self):
        return f"ServiceRequest {self.id} (category {self.category_id}, {self.status})"

    def can_transition_to(self, status):
        return status in ALLOWED_TRANSITIONS.get(self.status, ())

    @property
    def is_terminal(self):
        return self.status in RequestStatus.TERMINAL

    @property
    def has_discount(self):
        return bool(self.discount_percentage) and self.discount_percentage > 0

    @property
    def final_price(self):
        if self.discounted_price is not None:
            return self.discounted_price
        return self.total_price

    @property
    def discount_amount(self):
        if self.total_price is None or self.discounted_price is None:
            return Decimal('0.00')
        return self.total_price - self.discounted_price
