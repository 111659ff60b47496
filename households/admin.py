from django.contrib import admin

from households.models import Household, HouseholdMembership


class HouseholdMembershipInline(admin.TabularInline):
    model = HouseholdMembership
    extra = 0
    raw_id_fields = ("user",)


@admin.register(Household)
class HouseholdAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "created", "modified")
    search_fields = ("name",)
    inlines = (HouseholdMembershipInline,)
