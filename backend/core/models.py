from django.db import models


class IdempotencyRecord(models.Model):
    """Remembers which entity a keyed command produced so retries can replay it."""

    key = models.CharField(max_length=255, unique=True)
    operation = models.CharField(max_length=60)
    entity_type = models.CharField(max_length=40)
    entity_id = models.PositiveBigIntegerField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.operation} [{self.key}] -> {self.entity_type}:{self.entity_id}"
