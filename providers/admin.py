from django.contrib import admin
from .models import Break, Closure, Provider, Service, WorkingDay


class WorkingDayInline(admin.TabularInline):
    model = WorkingDay
    extra = 0
    max_num = 7
    can_delete = False
    fields = ["weekday", "is_open", "open_time", "close_time"]
    ordering = ["weekday"]


class BreakInline(admin.TabularInline):
    model = Break
    extra = 0
    fields = ["start_time", "end_time", "label"]


class ClosureInline(admin.TabularInline):
    model = Closure
    extra = 0
    fields = ["start_date", "end_date", "reason"]


class ServiceInline(admin.TabularInline):
    model = Service
    extra = 0
    fields = ["name", "duration_minutes", "price", "discount_price", "is_active"]


@admin.register(Provider)
class ProviderAdmin(admin.ModelAdmin):
    list_display = ["name", "kind", "primary_location", "slot_duration_minutes", "auto_confirm", "is_active"]
    list_filter = ["kind", "auto_confirm", "is_active", "primary_location"]
    search_fields = ["name", "user__name", "user__phone", "primary_location__name"]
    list_editable = ["is_active"]
    raw_id_fields = ["user"]
    inlines = [WorkingDayInline, BreakInline, ClosureInline, ServiceInline]


@admin.register(Closure)
class ClosureAdmin(admin.ModelAdmin):
    list_display = ["provider", "start_date", "end_date", "reason"]
    list_filter = ["provider"]
    search_fields = ["provider__name", "reason"]
    date_hierarchy = "start_date"
    ordering = ["-start_date"]


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ["name", "provider", "duration_minutes", "price", "discount_price", "is_active"]
    list_filter = ["is_active", "provider"]
    search_fields = ["name", "provider__name"]
    list_editable = ["is_active"]
    ordering = ["provider", "name"]
