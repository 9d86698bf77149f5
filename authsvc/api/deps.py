from fastapi import Request

from authsvc.core.crypto import Signer
from authsvc.integrations.users import UserDirectory
from authsvc.services.tokens import TokenService


def get_tokens(request: Request) -> TokenService:
    return request.app.state.tokens


def get_signer(request: Request) -> Signer:
    return request.app.state.signer


def get_directory(request: Request) -> UserDirectory:
    return request.app.state.directory
