from django.urls import path

from .views import (
    AdminRequestAssignView,
    AdminRequestDetailView,
    AdminRequestDiscountView,
    AdminRequestListView,
    AdminRequestRestoreView,
    AdminRequestStatusView,
    AdminUserHistoryView,
    CategoryRequestCreateView,
    CategoryRulesView,
    RequestCollectionView,
    RequestDetailView,
)

urlpatterns = [
    path('requests/', RequestCollectionView.as_view(), name='request-collection'),
    path('requests/<uuid:request_id>/', RequestDetailView.as_view(), name='request-detail'),
    path('categories/<int:category_id>/requests/', CategoryRequestCreateView.as_view(), name='category-request-create'),
    path('categories/<int:category_id>/rules/', CategoryRulesView.as_view(), name='category-rules'),

    path('admin/requests/', AdminRequestListView.as_view(), name='admin-request-list'),
    path('admin/requests/<uuid:request_id>/', AdminRequestDetailView.as_view(), name='admin-request-detail'),
    path('admin/requests/<uuid:request_id>/status/', AdminRequestStatusView.as_view(), name='admin-request-status'),
    path('admin/requests/<uuid:request_id>/assign/', AdminRequestAssignView.as_view(), name='admin-request-assign'),
    path('admin/requests/<uuid:request_id>/discount/', AdminRequestDiscountView.as_view(), name='admin-request-discount'),
    path('admin/requests/<uuid:request_id>/restore/', AdminRequestRestoreView.as_view(), name='admin-request-restore'),
    path('admin/users/<int:user_id>/requests/', AdminUserHistoryView.as_view(), name='admin-user-history'),
]
