from django.db import models
from django.utils.translation import gettext_lazy as _

from model_utils.fields import AutoCreatedField, AutoLastModifiedField


class IndexedTimeStampedModel(models.Model):
    created = AutoCreatedField(_("created"), db_index=True)
    modified = AutoLastModifiedField(_("modified"), db_index=True)

    class Meta:
        abstract = True


class BaseModel(IndexedTimeStampedModel):
    """
    Abstract base for every concrete model of the project. Carries the indexed
    `created`/`modified` timestamps used for ordering and feed freshness.
    """

    class Meta(IndexedTimeStampedModel.Meta):
        abstract = True
