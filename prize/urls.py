from django.urls import path

from . import views


app_name = "prize"

urlpatterns = [
    path("draw/", views.draw, name="draw"),
    path("draw/check/", views.check_eligibility, name="check_eligibility"),
    path("allocations/", views.allocations, name="allocations"),
    path(
        "allocations/<int:allocation_id>/",
        views.remove_allocation,
        name="remove_allocation",
    ),
    path("reset/", views.reset, name="reset"),
    path("list/", views.list_prizes, name="list_prizes"),
]
