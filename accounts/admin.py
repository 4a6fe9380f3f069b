from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from clinics.models import ClinicStaff
from providers.models import Provider

from .models import CustomUser


class OwnedProviderInline(admin.TabularInline):
    model = Provider
    fk_name = "user"
    extra = 0
    fields = ["name", "kind", "primary_location", "slot_duration_minutes", "auto_confirm", "is_active"]
    raw_id_fields = ["primary_location"]
    verbose_name = "Provider profile"
    verbose_name_plural = "Provider profiles"


class EmploymentInline(admin.TabularInline):
    model = ClinicStaff
    fk_name = "user"
    extra = 0
    fields = ["clinic", "role", "is_active"]
    raw_id_fields = ["clinic"]
    verbose_name = "Clinic employment"
    verbose_name_plural = "Clinic employments"


@admin.register(CustomUser)
class CustomUserAdmin(UserAdmin):
    model = CustomUser
    list_display = ['phone', 'name', 'role', 'provider_count', 'is_staff', 'is_active']
    list_filter = ['role', 'is_staff', 'is_active']
    inlines = [OwnedProviderInline, EmploymentInline]

    fieldsets = (
        (None, {'fields': ('phone', 'password')}),
        ('Personal Info', {'fields': ('name', 'email', 'role')}),
        ('Permissions', {'fields': ('is_staff', 'is_active', 'is_superuser', 'groups', 'user_permissions')}),
        ('Important dates', {'fields': ('last_login', 'date_joined')}),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('phone', 'name', 'role', 'password1', 'password2')}
        ),
    )

    search_fields = ('phone', 'name', 'email')
    ordering = ('name',)

    def provider_count(self, obj):
        return obj.providers.count()
    provider_count.short_description = "Providers"
