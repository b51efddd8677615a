from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import Role, User


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "hierarchy_level", "description")
    search_fields = ("name", "code")
    filter_horizontal = ("permissions",)
    ordering = ("-hierarchy_level",)


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ("username", "employee_id", "email", "first_name", "last_name",
                    "department", "is_active", "role", "hsm_key_label")
    search_fields = ("username", "email", "employee_id", "phone_number")
    list_filter = ("is_active", "is_staff", "role", "department")
    filter_horizontal = ("groups", "user_permissions")
    fieldsets = BaseUserAdmin.fieldsets + (
        ("Officer", {"fields": ("employee_id", "department", "phone_number", "role", "hsm_key_label")}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ("Officer", {"fields": ("email", "phone_number", "first_name", "last_name",
                                "employee_id", "department", "role")}),
    )
