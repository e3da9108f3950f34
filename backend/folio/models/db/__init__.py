"""SQLAlchemy 2.0 ORM models for Folio.

Import all models here so Alembic and ``Base.metadata.create_all`` can
discover them via::

    from folio.models.db import Base  # noqa: F401
"""

from folio.models.db.base import Base, TimestampMixin  # noqa: F401
from folio.models.db.pricing import ProposalPricing, TemplatePricing  # noqa: F401
from folio.models.db.proposal import Proposal  # noqa: F401
from folio.models.db.template import ProposalTemplate, TemplatePage  # noqa: F401
