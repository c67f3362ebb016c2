# SQLModel definitions, imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .organization_member import OrganizationMember  # noqa: F401
from .user import UserProfile  # noqa: F401
from .invitation import Invitation  # noqa: F401
from .pipeline_step import PipelineStep  # noqa: F401
from .pipeline_tag import PipelineTag  # noqa: F401
from .lead import Lead  # noqa: F401
