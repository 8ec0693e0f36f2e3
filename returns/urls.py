"""
Returns Module URL Configuration
All URLs are prefixed with /api/v1/returns/
"""

from django.urls import path
from . import admin_views
from . import views

urlpatterns = [
    # Customer APIs
    path('', views.create_return, name='create-return'),
    path('check-eligibility/', views.check_eligibility, name='check-eligibility'),
    path('reasons/', views.return_reasons, name='return-reasons'),
    path('validate-image/', views.validate_image, name='validate-image'),
    path('contact/<int:contact_id>/', views.list_contact_returns, name='contact-returns'),
    path('<int:return_id>/', views.get_return_detail, name='return-detail'),
    path('<int:return_id>/status/', views.get_status_history, name='return-status'),
    path('<int:return_id>/cancel/', views.cancel_return, name='cancel-return'),

    # Back office APIs
    path('admin/', admin_views.search_returns, name='admin-search-returns'),
    path('admin/statistics/', admin_views.statistics, name='admin-statistics'),
    path('admin/export/', admin_views.export_returns, name='admin-export'),
    path('admin/statuses/', admin_views.available_statuses, name='admin-statuses'),
    path('admin/<int:return_id>/', admin_views.return_detail, name='admin-return-detail'),
    path('admin/<int:return_id>/approve/', admin_views.approve_return, name='admin-approve'),
    path('admin/<int:return_id>/reject/', admin_views.reject_return, name='admin-reject'),
    path('admin/<int:return_id>/ship/', admin_views.ship_return, name='admin-ship'),
    path('admin/<int:return_id>/receive/', admin_views.receive_return, name='admin-receive'),
    path('admin/<int:return_id>/refund/', admin_views.refund_return, name='admin-refund'),
    path('admin/<int:return_id>/complete/', admin_views.complete_return, name='admin-complete'),
]
