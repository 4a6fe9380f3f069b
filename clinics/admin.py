from django.contrib import admin
from .models import Clinic, ClinicStaff


class ClinicStaffInline(admin.TabularInline):
    model = ClinicStaff
    extra = 0
    raw_id_fields = ['user']


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ['name', 'main_doctor', 'phone', 'email', 'is_active', 'created_at']
    list_filter = ['is_active', 'created_at']
    search_fields = ['name', 'main_doctor__name', 'main_doctor__phone']
    readonly_fields = ['created_at']
    raw_id_fields = ['main_doctor']
    inlines = [ClinicStaffInline]

    fieldsets = (
        ('Clinic Information', {
            'fields': ('name', 'address', 'phone', 'email', 'description')
        }),
        ('Management', {
            'fields': ('main_doctor', 'is_active')
        }),
        ('Metadata', {
            'fields': ('created_at',)
        }),
    )


@admin.register(ClinicStaff)
class ClinicStaffAdmin(admin.ModelAdmin):
    list_display = ['user', 'clinic', 'role', 'is_active', 'added_at']
    list_filter = ['role', 'is_active', 'clinic']
    search_fields = ['user__name', 'user__phone', 'clinic__name']
    readonly_fields = ['added_at']
    raw_id_fields = ['user', 'clinic']
