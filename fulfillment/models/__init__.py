# Database models
#
# Import every model module so SQLAlchemy can resolve string-based
# relationship references (e.g. VendorAssignment <-> ProofApproval)
# during mapper configuration.

from . import core
from . import proofs
from . import monitoring
