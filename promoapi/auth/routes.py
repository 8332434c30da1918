from flask import request
from werkzeug.security import check_password_hash
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity
from . import bp
from ..extensions import db
from ..model import User
from ..utils.api import ok, err


@bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        return err("Email and password are required", 400)
    user = User.query.filter_by(email=email).first()
    if not user or not check_password_hash(user.password_hash, password):
        return err("Invalid email or password", 401)

    access_token = create_access_token(identity=str(user.id))
    return ok("You've logged in successfully", {"user": user.as_dict(), "token": access_token})


@bp.get("/me")
@jwt_required()
def me():
    user = db.session.get(User, int(get_jwt_identity()))
    if not user:
        return err("user not found", 404)
    return ok("ok", {"user": user.as_dict()})
