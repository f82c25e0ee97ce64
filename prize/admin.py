from django.contrib import admin

from .models import Allocation, Prize
from .services import delete_allocation


@admin.register(Prize)
class PrizeAdmin(admin.ModelAdmin):
    list_display = ("id", "name_en", "name_zh", "total", "remaining")
    list_filter = ("remaining",)
    search_fields = ("id", "name_en", "name_zh")
    ordering = ("id",)


@admin.register(Allocation)
class AllocationAdmin(admin.ModelAdmin):
    list_display = ("requester_id", "requester_name", "prize", "prize_name_en", "created_at")
    list_filter = ("prize",)
    search_fields = ("requester_id", "requester_name")
    ordering = ("-created_at", "-id")
    readonly_fields = (
        "requester_id",
        "requester_name",
        "prize",
        "prize_name_zh",
        "prize_name_en",
        "origin_address",
        "created_at",
    )

    def has_add_permission(self, request):
        return False

    def delete_model(self, request, obj):
        delete_allocation(obj.pk)

    def delete_queryset(self, request, queryset):
        for allocation_id in list(queryset.values_list("pk", flat=True)):
            delete_allocation(allocation_id)
