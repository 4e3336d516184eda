from django.contrib import admin
from .models import Itinerary


@admin.register(Itinerary)
class ItineraryAdmin(admin.ModelAdmin):
    """
    Admin interface for Itinerary model.
    """
    list_display = ['title', 'destination', 'user', 'status', 'start_date', 'created_at']
    list_filter = ['status', 'destination', 'created_at']
    search_fields = ['title', 'destination', 'user__username']
    readonly_fields = ['id', 'created_at', 'updated_at']
    date_hierarchy = 'created_at'

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'user', 'title', 'destination', 'created_at', 'updated_at')
        }),
        ('Trip Details', {
            'fields': ('start_date', 'end_date', 'status')
        }),
    )

    def get_queryset(self, request):
        """Optimize queryset with select_related"""
        queryset = super().get_queryset(request)
        return queryset.select_related('user')
