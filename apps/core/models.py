from django.db import models


class BaseModel(models.Model):
    """
    An abstract base class that provides created_at and updated_at fields.

    Conditional writes through ``QuerySet.update()`` skip ``auto_now``, so
    those callers must pass ``updated_at=timezone.now()`` themselves.
    """

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
