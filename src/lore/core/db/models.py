import time

from peewee import AutoField, CharField, IntegerField, Model, TextField


class BaseModel(Model):
    """Models are bound per database at call time via ``Database.bind_ctx``."""


class EntryRow(BaseModel):
    """One indexed unit of knowledge. ``(kind, path)`` is unique."""
    id = AutoField()
    kind = CharField()                          # commit, document, pull-request, incident
    title = TextField()
    path = TextField()                          # commit hash, relative file path, PR URL
    content = TextField()                       # ranking text
    metadata_json = TextField(default="{}")     # kind-specific facts, opaque to ranking
    indexed_ts = IntegerField(default=lambda: int(time.time()))

    class Meta:
        table_name = "context_entries"
        indexes = (
            (("kind", "path"), True),
        )


class IndexMetadata(BaseModel):
    """Small key-value table for indexing cursors."""
    key = CharField(primary_key=True)
    value = TextField()
    updated_ts = IntegerField(default=lambda: int(time.time()))

    class Meta:
        table_name = "index_metadata"


MODELS = [EntryRow, IndexMetadata]
