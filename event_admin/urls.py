from django.urls import path
from . import views

app_name = 'event_admin'

urlpatterns = [
    path('dashboard/', views.dashboard, name='dashboard'),
    path('settings/', views.settings_view, name='settings'),
    path('save-all/', views.save_all, name='save-all'),

    # Ledger URLs
    path('dates/', views.date_list, name='date-list'),
    path('dates/<int:pk>/', views.date_detail, name='date-detail'),
    path('times/', views.time_create, name='time-create'),
    path('times/count/', views.time_count, name='time-count'),
    path('times/<int:pk>/', views.time_detail, name='time-detail'),
    path('slots/', views.slot_create, name='slot-create'),
    path('slots/mass-add/', views.slot_mass_add, name='slot-mass-add'),
    path('slots/<int:pk>/', views.slot_detail, name='slot-detail'),

    # Registration URLs
    path('registrations/', views.registration_list, name='registration-list'),
    path('registrations/export/', views.registration_export, name='registration-export'),
    path('registrations/<int:pk>/', views.registration_detail, name='registration-detail'),
]
