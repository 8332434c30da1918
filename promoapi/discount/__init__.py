from flask import Blueprint

bp = Blueprint("discount", __name__, url_prefix="/discounts")

from . import routes  # noqa: E402,F401
