from .session_manager import Buffer, Session, SessionManager

__all__ = ["Buffer", "Session", "SessionManager"]
