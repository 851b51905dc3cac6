from .hooks import HTTPSession, LoginStatus, SessionHook
from .options import RequestOptions
from .page import Form, Page

__all__ = ["Form", "HTTPSession", "LoginStatus", "Page", "RequestOptions", "SessionHook"]
