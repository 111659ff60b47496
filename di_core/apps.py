from django.apps import AppConfig
from django.conf import settings


class DICoreConfig(AppConfig):
    """
    Builds the service container from the Django settings and wires it into
    every internal app, so views and serializers can receive calendar services
    through `Provide[...]`.
    """

    name = "di_core"

    def ready(self) -> None:
        from di_core import containers

        container = containers.AppContainer()
        container.config.from_dict(settings.__dict__["_wrapped"].__dict__)
        container.wire(packages=getattr(settings, "INTERNAL_INSTALLED_APPS", []))

        containers.container = container
