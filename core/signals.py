"""
Model signal handlers feeding the realtime change feed.

``pre_save`` snapshots the stored row so update events can carry the
previous state; ``pre_delete`` serializes the row while its relations
are still loadable.
"""
from django.db.models.signals import post_delete, post_save, pre_delete, pre_save
from django.dispatch import receiver

from core.models import FEED_MODELS
from core.serializers.rows import serialize_row
from core.services import changefeed

_OLD_ROW = '_feed_old_row'


def _is_feed_model(sender) -> bool:
    return sender in FEED_MODELS


@receiver(pre_save)
def remember_old_row(sender, instance, raw=False, **kwargs):
    if raw or not _is_feed_model(sender) or instance._state.adding:
        return
    previous = sender._default_manager.filter(pk=instance.pk).first()
    setattr(instance, _OLD_ROW, serialize_row(previous) if previous else None)


@receiver(post_save)
def publish_save(sender, instance, created, raw=False, **kwargs):
    if raw or not _is_feed_model(sender):
        return
    old_row = getattr(instance, _OLD_ROW, None)
    event = changefeed.INSERT if created or old_row is None else changefeed.UPDATE
    changefeed.publish(event, sender.TABLE_NAME, new_row=serialize_row(instance), old_row=old_row)


@receiver(pre_delete)
def remember_deleted_row(sender, instance, **kwargs):
    if _is_feed_model(sender):
        setattr(instance, _OLD_ROW, serialize_row(instance))


@receiver(post_delete)
def publish_delete(sender, instance, **kwargs):
    if not _is_feed_model(sender):
        return
    changefeed.publish(changefeed.DELETE, sender.TABLE_NAME, old_row=getattr(instance, _OLD_ROW, None))
