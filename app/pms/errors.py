"""
Error types raised by store/service code and mapped to HTTP responses at the
handler boundary (see create_app: errorhandler(RepoError)).
"""
from __future__ import annotations


class RepoError(Exception):
    def __init__(self, message: str, status: int = 500):
        super().__init__(message)
        self.message = message
        self.status = status

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.message}


def bad_request(message: str) -> RepoError:
    return RepoError(message, 400)


def not_found(message: str) -> RepoError:
    return RepoError(message, 404)


def unauthorized(message: str = "Unauthorized.") -> RepoError:
    return RepoError(message, 401)
