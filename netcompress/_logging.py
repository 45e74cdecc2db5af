# =============================================================================
# netcompress -- Package Logger
# =============================================================================

import logging

logger = logging.getLogger("netcompress")
logger.addHandler(logging.NullHandler())
