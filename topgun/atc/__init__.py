from .api_client import ConcourseClient, Container, Worker
from .auth_client import AuthClient, BearerAuth, Token
from .garden import GardenClient

__all__ = [
    "AuthClient",
    "BearerAuth",
    "ConcourseClient",
    "Container",
    "GardenClient",
    "Token",
    "Worker",
]
