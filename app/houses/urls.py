"""
URL configuration for the houses app.

Routes:
    /{house_id}/hsi/ - House Status Index (GET)
"""

from django.urls import path

from houses.views import HouseStatusIndexView

app_name = "houses"

urlpatterns = [
    path("<int:house_id>/hsi/", HouseStatusIndexView.as_view(), name="house-hsi"),
]
