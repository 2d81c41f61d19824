from django.urls import path
from . import views

urlpatterns = [
    path('availability/', views.availability, name='availability'),
    path('getuser/', views.get_user, name='get-user'),
    path('register-slot/', views.register_slot, name='register-slot'),
    path('slot-selections/<int:pk>/', views.get_slot_selection, name='slot-selection-detail'),
    path('search-registrations/', views.search_registrations, name='search-registrations'),
]
