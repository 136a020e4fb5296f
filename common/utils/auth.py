"""JWT bearer authentication for the API blueprints."""
import time
from functools import wraps
from typing import Any, Dict

import jwt
from flask import current_app, g, jsonify, request

from ..models.user import User


TOKEN_TTL_SECONDS = 7 * 24 * 3600


def encode_token(user_id: str, secret: str, *, tipe: str = "pengguna", ttl: int = TOKEN_TTL_SECONDS) -> str:
    now = int(time.time())
    payload = {"id": user_id, "tipe": tipe, "iat": now, "exp": now + ttl}
    return jwt.encode(payload, secret, algorithm="HS256")


def decode_token(token: str, secret: str) -> Dict[str, Any]:
    return jwt.decode(token, secret, algorithms=["HS256"])


def _deny(message: str, status: int):
    return jsonify({"success": False, "message": message}), status


def _authenticate():
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return _deny("Token tidak ditemukan", 401)
    try:
        claims = decode_token(token, current_app.config["SECRET_KEY"])
    except jwt.PyJWTError:
        return _deny("Token tidak valid atau expired", 401)
    if claims.get("tipe") != "pengguna":
        return _deny("Akses ditolak. Hanya pengguna yang bisa mengakses.", 403)
    g.user = claims
    return None


def require_user(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        denied = _authenticate()
        if denied is not None:
            return denied
        return view(*args, **kwargs)

    return wrapper


def require_seller(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        denied = _authenticate()
        if denied is not None:
            return denied
        session_factory = current_app.extensions["tanibudaya_components"]["session_factory"]
        with session_factory() as session:
            user = session.get(User, g.user.get("id"))
            if user is None:
                return _deny("Pengguna tidak ditemukan", 404)
            if not user.is_seller:
                return _deny("Akses ditolak. Anda harus menjadi penjual untuk mengakses fitur ini.", 403)
        return view(*args, **kwargs)

    return wrapper
