from common.types import RouteDict

from .views import HouseholdViewSet


routes: list[RouteDict] = [
    {
        "regex": r"households",
        "viewset": HouseholdViewSet,
        "basename": "Households",
    },
]
