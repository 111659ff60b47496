from rest_framework import serializers

from households.models import Household, HouseholdMembership


class HouseholdMemberSerializer(serializers.ModelSerializer):
    user_id = serializers.IntegerField(source="user.id", read_only=True)
    email = serializers.EmailField(source="user.email", read_only=True)
    name = serializers.CharField(source="user.get_display_name", read_only=True)

    class Meta:
        model = HouseholdMembership
        fields = ("user_id", "email", "name", "created")


class HouseholdSerializer(serializers.ModelSerializer):
    members = HouseholdMemberSerializer(source="memberships", many=True, read_only=True)

    class Meta:
        model = Household
        fields = ("id", "name", "members", "created", "modified")
