# promoapi/errors.py
import logging
from .extensions import db
from .utils.api import err
from .services.coupon_service import DuplicateCodeError

logger = logging.getLogger(__name__)

def register_error_handlers(app):
    @app.errorhandler(DuplicateCodeError)
    def handle_duplicate(e):
        db.session.rollback()
        return err(str(e), 409)

    @app.errorhandler(ValueError)
    def handle_value_error(e):
        # drop half-applied changes from the failed request
        db.session.rollback()
        logger.debug("rejected input: %s", e)
        return err(str(e), 422)
