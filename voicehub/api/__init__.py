from .app import create_app
from .deps import Authenticator, HeaderAuthenticator, Services, build_services

__all__ = ["Authenticator", "HeaderAuthenticator", "Services", "build_services", "create_app"]
