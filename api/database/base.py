# Import all the models, so that Base has them before being
# imported by Alembic.
from api.models.base import Base  # noqa
from api.models.user import *  # noqa
from api.models.review_request import *  # noqa
from api.models.tasks import *  # noqa
from api.models.payments import *  # noqa
from api.models.job import *  # noqa
from api.models.seo import *  # noqa
