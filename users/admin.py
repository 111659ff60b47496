from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from django.utils.translation import gettext_lazy as _

from households.models import HouseholdMembership

from .models import User


class HouseholdMembershipInline(admin.StackedInline):
    model = HouseholdMembership
    fk_name = "user"
    can_delete = False
    extra = 0


@admin.register(User)
class CustomUserAdmin(UserAdmin):
    inlines = (HouseholdMembershipInline,)
    list_display = ("id", "email", "first_name", "last_name", "household", "created")
    list_select_related = ("household_membership__household",)
    list_filter = ("is_active", "is_staff", "groups")
    search_fields = ("email", "first_name", "last_name")
    ordering = ("email",)
    filter_horizontal = (
        "groups",
        "user_permissions",
    )

    fieldsets = (
        (None, {"fields": ("email", "password")}),
        (_("Personal info"), {"fields": ("first_name", "last_name")}),
        (
            _("Permissions"),
            {
                "fields": (
                    "is_active",
                    "is_staff",
                    "is_superuser",
                    "groups",
                    "user_permissions",
                )
            },
        ),
    )
    add_fieldsets = ((None, {"classes": ("wide",), "fields": ("email", "password1", "password2")}),)

    @admin.display(description=_("Household"))
    def household(self, obj):
        membership = getattr(obj, "household_membership", None)
        return membership.household if membership else "-"
