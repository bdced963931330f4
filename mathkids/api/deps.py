from fastapi import Request

from mathkids.services.container import AuthServices


def get_services(request: Request) -> AuthServices:
    return request.app.state.services


__all__ = ["get_services"]
