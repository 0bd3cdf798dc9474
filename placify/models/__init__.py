# Import every model here so Alembic autogenerate sees the tables.

from placify.models.user import User  # noqa: F401
from placify.models.experience import Experience  # noqa: F401
from placify.models.contact import Contact  # noqa: F401
from placify.models.audit import AuditEntry  # noqa: F401
