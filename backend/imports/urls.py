from django.urls import path
from . import views

urlpatterns = [
    path('imports/preview/', views.import_preview, name='import-preview'),
]
