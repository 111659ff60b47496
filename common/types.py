from typing import TypedDict

from rest_framework.viewsets import GenericViewSet, ModelViewSet, ViewSet, ViewSetMixin


class RouteDict(TypedDict):
    """
    A router registration entry: the URL prefix, the viewset serving it and the
    basename used to reverse its URLs.
    """

    regex: str
    viewset: type[GenericViewSet] | type[ViewSet] | type[ModelViewSet] | type[ViewSetMixin]
    basename: str
